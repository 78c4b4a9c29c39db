import configparser
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_PATH = Path.home() / '.dev-manager'
DEFAULT_CONFIG_FILE_PATH = DEFAULT_CONFIG_PATH / 'dev-manager.ini'

DEFAULTS = {
    'queue': {
        'max_completed_tasks': '10',
        'idle_grace_ms': '5000',
        'progress_interval_ms': '500',
    },
    'homebrew': {
        'executable': '',
    },
    'notifications': {
        'enabled': 'True',
    },
}


def get_configuration() -> configparser.ConfigParser:
    """
    Get dev-manager configuration.

    Missing sections and keys are filled in from `DEFAULTS` and the merged
    result is written back, so the file always lists every option:
        * `['queue']['max_completed_tasks']` -> int
        * `['queue']['idle_grace_ms']` -> int
        * `['queue']['progress_interval_ms']` -> int
        * `['homebrew']['executable']` -> str, empty to auto-detect
        * `['notifications']['enabled']` -> bool
    """
    DEFAULT_CONFIG_PATH.mkdir(exist_ok=True)
    config = configparser.ConfigParser()
    config.read_dict(DEFAULTS)

    if DEFAULT_CONFIG_FILE_PATH.exists():
        config.read(DEFAULT_CONFIG_FILE_PATH)

    with open(DEFAULT_CONFIG_FILE_PATH, 'w') as configfile:
        config.write(configfile)

    return config


@dataclass(frozen=True)
class QueueSettings:
    """Tunables of the installer queue."""

    max_completed_tasks: int = 10
    # delay before the activity indicator is cleared once the queue drains
    idle_grace_ms: int = 5000
    # minimum wall-clock time between two progress updates of a task
    progress_interval_ms: int = 500

    @classmethod
    def from_configuration(
        cls, config: configparser.ConfigParser
    ) -> 'QueueSettings':
        return cls(
            max_completed_tasks=config.getint('queue', 'max_completed_tasks'),
            idle_grace_ms=config.getint('queue', 'idle_grace_ms'),
            progress_interval_ms=config.getint(
                'queue', 'progress_interval_ms'
            ),
        )
