"""Turn raw package manager output into progress, stage and log updates.

Output arrives in arbitrary chunks that are not guaranteed to be line
aligned, so everything here works on a single chunk at a time and keeps
no state between calls.
"""

import re
from typing import NamedTuple

from dev_manager.tasks import InstallStage

PERCENT_RE = re.compile(r'(\d+(?:\.\d+)?)%')
BARE_PERCENT_RE = re.compile(r'^\d+(?:\.\d+)?%$')

# first match wins
STAGE_KEYWORDS: tuple[tuple[InstallStage, tuple[str, ...]], ...] = (
    (InstallStage.DOWNLOADING, ('downloading', 'fetching')),
    (InstallStage.INSTALLING, ('pouring', 'installing')),
    (InstallStage.LINKING, ('linking', 'symlink')),
    (InstallStage.CLEANUP, ('cleaning', 'removing')),
)


class ParsedOutput(NamedTuple):
    """Structured view of one output chunk."""

    progress: float | None
    stage: InstallStage
    stage_changed: bool
    log: str


def parse_progress(chunk: str) -> float | None:
    """Return the first ``<digits>[.<digits>]%`` value found in ``chunk``."""
    match = PERCENT_RE.search(chunk)
    if match is None:
        return None
    return float(match.group(1))


def classify_stage(chunk: str) -> InstallStage | None:
    lowered = chunk.lower()
    for stage, keywords in STAGE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return stage
    return None


def _is_noise(line: str) -> bool:
    trimmed = line.strip()
    return (
        not trimmed
        or not trimmed.strip('# ')
        or BARE_PERCENT_RE.match(trimmed) is not None
        or '###' in trimmed
    )


def filter_log(chunk: str) -> str:
    """Drop progress bar fragments and blank lines from ``chunk``.

    Lines made only of ``#`` and spaces, bare percentages and anything
    containing ``###`` are progress bar output and never reach the log.
    Each kept line is returned with a trailing newline.
    """
    return ''.join(
        f'{line}\n' for line in chunk.splitlines() if not _is_noise(line)
    )


def parse_output(
    chunk: str, stage: InstallStage = InstallStage.IDLE
) -> ParsedOutput:
    """Parse one chunk of output.

    Parameters
    ----------
    chunk : str
        Raw text as delivered by the installer.
    stage : InstallStage, optional
        Stage of the task before this chunk. It is returned unchanged when
        the chunk mentions no stage keyword.

    Returns
    -------
    ParsedOutput
        The percentage (if any), the resulting stage and the filtered log
        fragment.
    """
    new_stage = classify_stage(chunk)
    return ParsedOutput(
        progress=parse_progress(chunk),
        stage=stage if new_stage is None else new_stage,
        stage_changed=new_stage is not None,
        log=filter_log(chunk),
    )
