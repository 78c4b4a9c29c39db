"""Serialized install/uninstall queue.

The main object is `InstallerQueue`, a `QObject` that owns the waiting
tasks, the single task in flight and a bounded history of finished tasks.
The installer runs in a worker thread; its output chunks and its final
result travel back to the queue's thread as queued Qt signals, so every
state change happens in the thread that owns the queue, in the order the
installer produced it.
"""

import threading
import time
from collections import deque
from logging import getLogger

from qtpy.QtCore import (
    QCoreApplication,
    QEventLoop,
    QObject,
    QThread,
    QTimer,
    Signal,
    Slot,
)
from superqt.utils import create_worker

from dev_manager.base_installer import AbstractInstaller, InstallerActions
from dev_manager.config import QueueSettings
from dev_manager.progress_parser import parse_output
from dev_manager.qt_notifier import AbstractNotifier
from dev_manager.tasks import RuntimeKind, Task, TaskStatus

log = getLogger(__name__)


class _OutputChannel(QObject):
    # task id, raw output chunk
    output = Signal(str, str)


class InstallerQueue(QObject):
    """Queue for installation and uninstallation tasks.

    Only one task runs at a time; the others wait in FIFO order. All public
    methods must be called from the thread that owns the queue and return
    immediately.
    """

    # emitted with the new task when it is enqueued
    taskAdded = Signal(object)

    # emitted with the task when it leaves the waiting list and starts
    taskStarted = Signal(object)

    # emitted when the log, stage, status or progress of the current task
    # changes because of installer output
    taskUpdated = Signal(object)

    # emitted with the task once it reached a terminal status and was moved
    # to the completed history
    taskFinished = Signal(object)

    # emitted whenever the current task, the waiting list or the completed
    # history changes
    queueChanged = Signal()

    # caller-facing activity indicator; cleared after a grace delay once
    # the queue is drained
    activityChanged = Signal(bool)

    # emitted when the queue drains. Tuple of the terminal statuses of the
    # tasks finished since the previous drain
    allFinished = Signal(tuple)

    def __init__(
        self,
        installer: AbstractInstaller,
        notifier: AbstractNotifier | None = None,
        parent: QObject | None = None,
        *,
        settings: QueueSettings | None = None,
    ) -> None:
        super().__init__(parent)
        self._installer = installer
        self._notifier = notifier
        self._settings = settings or QueueSettings()

        self._current_task: Task | None = None
        self._waiting: deque[Task] = deque()
        # most recent first, the oldest entry drops off the right end
        self._completed: deque[Task] = deque(
            maxlen=self._settings.max_completed_tasks
        )
        self._worker = None
        self._cancel_event: threading.Event | None = None
        self._active = False
        self._finished_statuses: list[TaskStatus] = []
        self._last_progress_update = float('-inf')

        self._channel = _OutputChannel(self)
        self._channel.output.connect(self._on_output)

        self._idle_timer = QTimer(self)
        self._idle_timer.setSingleShot(True)
        self._idle_timer.setInterval(self._settings.idle_grace_ms)
        self._idle_timer.timeout.connect(self._on_idle_timeout)

    # -------------------------- Public API ------------------------------
    @property
    def current_task(self) -> Task | None:
        return self._current_task

    @property
    def waiting_tasks(self) -> tuple[Task, ...]:
        return tuple(self._waiting)

    @property
    def completed_tasks(self) -> tuple[Task, ...]:
        return tuple(self._completed)

    @property
    def is_busy(self) -> bool:
        return self._current_task is not None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    def enqueue(
        self,
        kind: RuntimeKind,
        version: str,
        formula: str,
        display_name: str,
        *,
        action: InstallerActions = InstallerActions.INSTALL,
    ) -> Task:
        """Add a task to the end of the queue.

        The queue starts right away when it is idle.

        Parameters
        ----------
        kind : RuntimeKind
            Runtime the formula provides.
        version : str
            Version label shown to the user.
        formula : str
            Package manager identifier passed to the installer.
        display_name : str
            Human readable name used in logs and notifications.
        action : InstallerActions, optional
            Whether to install or uninstall ``formula``.

        Returns
        -------
        Task
            The queued task. Observe it through the queue signals; use it to
            cancel the operation.
        """
        task = Task(
            kind=RuntimeKind(kind),
            version=version,
            formula=formula,
            display_name=display_name,
            action=InstallerActions(action),
        )
        self._waiting.append(task)
        self._log(f'Queued {task.action} of {formula} ({task.id})')
        self.taskAdded.emit(task)
        self.queueChanged.emit()
        self._process_queue()
        return task

    def install(
        self,
        kind: RuntimeKind,
        version: str,
        formula: str,
        display_name: str,
    ) -> Task:
        """Queue the installation of ``formula``. See `enqueue`."""
        return self.enqueue(
            kind,
            version,
            formula,
            display_name,
            action=InstallerActions.INSTALL,
        )

    def uninstall(
        self,
        kind: RuntimeKind,
        version: str,
        formula: str,
        display_name: str,
    ) -> Task:
        """Queue the removal of ``formula``. See `enqueue`."""
        return self.enqueue(
            kind,
            version,
            formula,
            display_name,
            action=InstallerActions.UNINSTALL,
        )

    def cancel(self, task: Task) -> None:
        """Cancel a task.

        The running task is stopped and the next waiting task starts
        immediately. A waiting task is dropped from the queue. Cancelling a
        finished or unknown task does nothing.

        Parameters
        ----------
        task : Task
            Task returned by `enqueue`.
        """
        if task is self._current_task:
            if self._worker is not None:
                self._worker.quit()
            if self._cancel_event is not None:
                self._cancel_event.set()
            self._installer.cancel()
            task.cancel()
            self._log(f'Task {task.id} was cancelled by the user.')
            self._finish(task)
            return

        try:
            self._waiting.remove(task)
        except ValueError:
            log.debug(
                'Nothing to cancel for task %s (%s)', task.id, task.status
            )
            return

        task.cancel()
        self._log(f'Waiting task {task.id} was cancelled by the user.')
        self._move_to_completed(task)
        self.taskFinished.emit(task)
        self.queueChanged.emit()

    def cancel_all(self) -> None:
        """Cancel every waiting task, then the running one."""
        for task in list(self._waiting):
            self.cancel(task)
        if self._current_task is not None:
            self.cancel(self._current_task)

    def clear_history(self) -> None:
        """Forget finished tasks. Waiting and running tasks are kept."""
        if self._completed:
            self._completed.clear()
            self.queueChanged.emit()

    def hasJobs(self) -> bool:
        """True if a task is running or waiting."""
        return self._current_task is not None or bool(self._waiting)

    def currentJobs(self) -> int:
        """Return the number of running and waiting tasks."""
        return len(self._waiting) + (self._current_task is not None)

    def waitForFinished(self, msecs: int = 10000) -> bool:
        """Process events until the queue is drained.

        Parameters
        ----------
        msecs : int, optional
            Time to wait, by default 10000

        Returns
        -------
        bool
            ``False`` if tasks were still pending when the time ran out.
        """
        deadline = time.monotonic() + msecs / 1000
        while self.hasJobs():
            if time.monotonic() >= deadline:
                return False
            QCoreApplication.processEvents(
                QEventLoop.ProcessEventsFlag.AllEvents, 50
            )
            QThread.msleep(10)
        return True

    # -------------------------- Private methods ------------------------------
    def _log(self, msg: str) -> None:
        log.debug(msg)

    def _process_queue(self) -> None:
        if self._current_task is not None:
            return
        if not self._waiting:
            self._on_queue_drained()
            return

        task = self._waiting.popleft()
        self._current_task = task
        task.start()
        self._idle_timer.stop()
        self._last_progress_update = float('-inf')

        self._cancel_event = threading.Event()
        worker = create_worker(
            self._run_installer,
            task.id,
            task.action,
            task.formula,
            self._cancel_event,
            _start_thread=False,
        )
        worker.returned.connect(self._on_worker_returned)
        self._worker = worker
        self._log(f"Starting {task.action} of '{task.formula}' ({task.id})")
        worker.start()

        # observers may cancel the task from any of these slots
        self._set_active(True)
        if task is self._current_task:
            self.taskStarted.emit(task)
        self.queueChanged.emit()

    def _run_installer(
        self,
        task_id: str,
        action: InstallerActions,
        formula: str,
        cancel_event: threading.Event,
    ) -> tuple[str, bool, str | None]:
        # runs in the worker thread; only emits, never touches queue state
        def on_output(text: str) -> None:
            self._channel.output.emit(task_id, text)

        if action == InstallerActions.UNINSTALL:
            run = self._installer.uninstall
        else:
            run = self._installer.install
        try:
            success = bool(
                run(formula, on_output, cancel_event=cancel_event)
            )
        except Exception as exc:  # noqa: BLE001
            log.exception('Installer failed to %s %s', action, formula)
            return task_id, False, str(exc) or None
        return task_id, success, None

    def _is_current(self, task_id: str) -> bool:
        return (
            self._current_task is not None
            and self._current_task.id == task_id
        )

    @Slot(str, str)
    def _on_output(self, task_id: str, text: str) -> None:
        if not self._is_current(task_id):
            # output of a cancelled task that was still in flight
            return
        task = self._current_task
        parsed = parse_output(text, task.stage)
        changed = task.apply(parsed)
        if parsed.progress is not None and self._accept_progress(
            parsed.progress
        ):
            task.update_progress(parsed.progress)
            changed = True
        if changed:
            self.taskUpdated.emit(task)

    def _accept_progress(self, progress: float) -> bool:
        now = time.monotonic()
        interval = self._settings.progress_interval_ms / 1000
        # a final reading is never throttled away
        if progress < 100 and now - self._last_progress_update < interval:
            return False
        self._last_progress_update = now
        return True

    @Slot(object)
    def _on_worker_returned(
        self, result: tuple[str, bool, str | None]
    ) -> None:
        task_id, success, message = result
        if not self._is_current(task_id):
            log.debug('Ignoring result of cancelled task %s', task_id)
            return

        task = self._current_task
        if success:
            task.complete()
        else:
            task.fail(message)
        self._log(
            f"Task {task.id} finished with status '{task.status}'"
            + (f': {task.error}' if task.error else '')
        )
        self._notify(task, success)
        self._finish(task)

    def _notify(self, task: Task, success: bool) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(task, success)
        except Exception:  # noqa: BLE001
            log.exception('Could not send notification for task %s', task.id)

    def _finish(self, task: Task) -> None:
        self._current_task = None
        self._worker = None
        self._cancel_event = None
        self._move_to_completed(task)
        self.taskFinished.emit(task)
        self.queueChanged.emit()
        self._process_queue()

    def _move_to_completed(self, task: Task) -> None:
        self._completed.appendleft(task)
        self._finished_statuses.append(task.status)

    def _on_queue_drained(self) -> None:
        if self._finished_statuses:
            statuses = tuple(self._finished_statuses)
            self._finished_statuses = []
            self.allFinished.emit(statuses)
        if self._active:
            self._idle_timer.start()

    def _on_idle_timeout(self) -> None:
        if not self.hasJobs():
            self._set_active(False)

    def _set_active(self, active: bool) -> None:
        if active != self._active:
            self._active = active
            self.activityChanged.emit(active)
