"""
Command line interface to the installer queue.

Queues one task per formula, streams the filtered package manager output
and exits with a non-zero code unless every task completed.
"""

import argparse
import logging
import sys
from typing import TextIO

from qtpy.QtCore import QCoreApplication, QThreadPool

from dev_manager.base_installer import InstallerActions
from dev_manager.brew_installer import HomebrewInstaller
from dev_manager.config import QueueSettings, get_configuration
from dev_manager.qt_installer_queue import InstallerQueue
from dev_manager.qt_notifier import LogNotifier
from dev_manager.tasks import RuntimeKind, Task, TaskStatus

log = logging.getLogger(__name__)

# time given to cancelled installer runs to exit
CANCEL_TIMEOUT_MS = 30_000


def cli() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='dev-manager')
    p.add_argument(
        'action',
        choices=[action.value for action in InstallerActions],
        help='Action to perform on every formula.',
    )
    p.add_argument(
        'formulae',
        nargs='+',
        help='Homebrew formulae to handle, e.g. node@20',
    )
    p.add_argument(
        '-k',
        '--kind',
        choices=[kind.value for kind in RuntimeKind],
        required=True,
        help='Runtime the formulae provide.',
    )
    p.add_argument(
        '--version',
        metavar='V',
        help=(
            'Version label shown for every task. Defaults to the part of '
            'the formula after "@", or "latest".'
        ),
    )
    p.add_argument(
        '--timeout',
        type=int,
        default=3600,
        help='Seconds to wait for the whole queue before cancelling it.',
    )
    p.add_argument(
        '-v',
        '--verbose',
        action='store_true',
        help='Increase amount of output',
    )
    return p


def version_label(formula: str) -> str:
    """Version part of a versioned formula (``node@20`` -> ``20``)."""
    _, _, version = formula.partition('@')
    return version or 'latest'


class TaskReporter:
    """Write new log lines and final statuses of tasks to a stream."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._offsets: dict[str, int] = {}

    def on_task_started(self, task: Task) -> None:
        self._write(f'==> {task.status.display_text} {task.display_name}\n')

    def on_task_updated(self, task: Task) -> None:
        offset = self._offsets.get(task.id, 0)
        if len(task.logs) > offset:
            self._write(task.logs[offset:])
            self._offsets[task.id] = len(task.logs)

    def on_task_finished(self, task: Task) -> None:
        self._offsets.pop(task.id, None)
        line = f'==> {task.display_name}: {task.status.display_text}'
        if task.error:
            line += f' ({task.error})'
        self._write(line + '\n')

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()


def main(argv: list[str] | None = None) -> int:
    args = cli().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING
    )

    config = get_configuration()
    installer = HomebrewInstaller(config.get('homebrew', 'executable'))
    if not installer.available():
        log.error(
            'Homebrew is not installed or not found in PATH. '
            'Please install Homebrew first.'
        )
        return 1

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    notifier = (
        LogNotifier()
        if config.getboolean('notifications', 'enabled')
        else None
    )
    queue = InstallerQueue(
        installer,
        notifier,
        app,
        settings=QueueSettings.from_configuration(config),
    )
    reporter = TaskReporter()
    queue.taskStarted.connect(reporter.on_task_started)
    queue.taskUpdated.connect(reporter.on_task_updated)
    queue.taskFinished.connect(reporter.on_task_finished)

    kind = RuntimeKind(args.kind)
    tasks = [
        queue.enqueue(
            kind,
            args.version or version_label(formula),
            formula,
            formula,
            action=InstallerActions(args.action),
        )
        for formula in args.formulae
    ]

    try:
        drained = queue.waitForFinished(args.timeout * 1000)
    except KeyboardInterrupt:
        log.warning('Interrupted, cancelling all tasks.')
        drained = False
    if not drained:
        queue.cancel_all()
        # let the workers reap the cancelled package manager process
        if not QThreadPool.globalInstance().waitForDone(
            CANCEL_TIMEOUT_MS
        ):
            log.warning('Cancelled tasks are still shutting down.')

    return 0 if all(t.status == TaskStatus.COMPLETED for t in tasks) else 1
