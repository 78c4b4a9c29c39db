"""Queue runtime installs and uninstalls through a package manager."""

from dev_manager.base_installer import AbstractInstaller, InstallerActions
from dev_manager.brew_installer import HomebrewInstaller
from dev_manager.progress_parser import ParsedOutput, parse_output
from dev_manager.qt_installer_queue import InstallerQueue
from dev_manager.tasks import InstallStage, RuntimeKind, Task, TaskStatus

__version__ = '0.1.0'

__all__ = [
    'AbstractInstaller',
    'HomebrewInstaller',
    'InstallStage',
    'InstallerActions',
    'InstallerQueue',
    'ParsedOutput',
    'RuntimeKind',
    'Task',
    'TaskStatus',
    'parse_output',
]
