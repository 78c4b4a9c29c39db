"""Queued install/uninstall operations and their observable state.

A `Task` is created in the ``waiting`` status by the installer queue and
ends in exactly one terminal status (``completed``, ``failed`` or
``cancelled``). ``status`` tracks the coarse lifecycle, while ``stage``
tracks the fine-grained phase parsed from the package manager output.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum, auto
from logging import getLogger
from typing import TYPE_CHECKING
from uuid import uuid4

from dev_manager.base_installer import InstallerActions

if TYPE_CHECKING:
    from dev_manager.progress_parser import ParsedOutput

log = getLogger(__name__)

INSTALL_FAILED_MESSAGE = 'Installation failed. Check logs for details.'
UNINSTALL_FAILED_MESSAGE = 'Uninstallation failed. Check logs for details.'


class InvalidTransitionError(ValueError):
    """Raised when a task is asked to leave a state it cannot leave."""


class RuntimeKind(StrEnum):
    "Developer runtimes whose versions can be managed"

    NODE = auto()
    JAVA = auto()
    PYTHON = auto()
    GO = auto()


class TaskStatus(StrEnum):
    "Coarse lifecycle of a queued task"

    WAITING = auto()
    DOWNLOADING = auto()
    INSTALLING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
        )

    @property
    def display_text(self) -> str:
        return _STATUS_TEXT[self]


class InstallStage(StrEnum):
    "Fine-grained phase reported by the package manager"

    IDLE = auto()
    DOWNLOADING = auto()
    INSTALLING = auto()
    LINKING = auto()
    CLEANUP = auto()

    @property
    def display_text(self) -> str:
        return _STAGE_TEXT[self]


_STATUS_TEXT = {
    TaskStatus.WAITING: 'Waiting...',
    TaskStatus.DOWNLOADING: 'Downloading...',
    TaskStatus.INSTALLING: 'Installing...',
    TaskStatus.COMPLETED: 'Completed',
    TaskStatus.FAILED: 'Failed',
    TaskStatus.CANCELLED: 'Cancelled',
}

_STAGE_TEXT = {
    InstallStage.IDLE: '',
    InstallStage.DOWNLOADING: 'Downloading...',
    InstallStage.INSTALLING: 'Installing...',
    InstallStage.LINKING: 'Linking...',
    InstallStage.CLEANUP: 'Cleaning up...',
}


@dataclass(eq=False)
class Task:
    """One queued install or uninstall operation.

    Tasks compare by identity. The descriptors (``kind``, ``version``,
    ``formula``, ``display_name`` and ``action``) never change after
    creation; everything else is updated by the installer queue from the
    thread that owns it.
    """

    kind: RuntimeKind
    version: str
    formula: str
    display_name: str
    action: InstallerActions = InstallerActions.INSTALL
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)

    status: TaskStatus = TaskStatus.WAITING
    progress: float | None = None
    stage: InstallStage = InstallStage.IDLE
    logs: str = ''
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_running(self) -> bool:
        return self.status in (TaskStatus.DOWNLOADING, TaskStatus.INSTALLING)

    def start(self) -> None:
        """Move a waiting task to ``downloading``."""
        if self.status != TaskStatus.WAITING:
            raise InvalidTransitionError(
                f"Cannot start task {self.id} in status '{self.status}'"
            )
        self.started_at = datetime.now()
        self.status = TaskStatus.DOWNLOADING
        self.stage = InstallStage.DOWNLOADING

    def mark_installing(self) -> bool:
        if self.status != TaskStatus.DOWNLOADING:
            return False
        self.status = TaskStatus.INSTALLING
        return True

    def complete(self) -> None:
        self._finish(TaskStatus.COMPLETED)

    def fail(self, message: str | None = None) -> None:
        """Finish the task as failed, attaching ``message`` or a default."""
        if not message:
            message = (
                UNINSTALL_FAILED_MESSAGE
                if self.action == InstallerActions.UNINSTALL
                else INSTALL_FAILED_MESSAGE
            )
        self._finish(TaskStatus.FAILED)
        self.error = message

    def cancel(self) -> bool:
        """Cancel the task. Returns ``False`` if it had already finished."""
        if self.is_terminal:
            return False
        self._finish(TaskStatus.CANCELLED)
        return True

    def update_progress(self, progress: float) -> None:
        # no monotonic guarantee, a lower reading replaces a higher one
        self.progress = progress

    def append_log(self, text: str) -> None:
        self.logs += text

    def apply(self, parsed: 'ParsedOutput') -> bool:
        """Apply the log and stage parts of a parsed output chunk.

        Returns
        -------
        bool
            ``True`` if any observable field changed.
        """
        changed = False
        if parsed.log:
            self.append_log(parsed.log)
            changed = True
        if parsed.stage != self.stage:
            self.stage = parsed.stage
            changed = True
        if parsed.stage == InstallStage.INSTALLING:
            changed = self.mark_installing() or changed
        return changed

    def _finish(self, status: TaskStatus) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Task {self.id} already finished with status '{self.status}'"
            )
        self.status = status
        self.completed_at = datetime.now()
        log.debug('Task %s (%s) -> %s', self.id, self.display_name, status)
