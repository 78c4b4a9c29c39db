"""Package tool-agnostic process logic for the installer queue.

The main object is `AbstractInstaller`, which runs one package manager
command at a time in a `QProcess`, streaming its merged stdout/stderr to a
callback and reporting a boolean result. Concrete tools provide the
executable path, arguments and environment modifications.

Available actions for each tool are `install` and `uninstall`; a running
command can be stopped out-of-band with `cancel`.
"""

import codecs
import os
import threading
from collections.abc import Callable
from enum import StrEnum, auto
from logging import getLogger

from qtpy.QtCore import QProcess, QProcessEnvironment

log = getLogger(__name__)

OutputCallback = Callable[[str], None]

# how long a blocked read waits before the cancel token is checked again
POLL_INTERVAL_MS = 100


class InstallerActions(StrEnum):
    "Available actions for the installer queue"

    INSTALL = auto()
    UNINSTALL = auto()


class AbstractInstaller:
    """Abstract base class for installer tools.

    ``install`` and ``uninstall`` block until the command exits and are
    meant to be called from a worker thread, which owns the `QProcess` for
    the whole run. ``cancel`` may be called from any thread while they run;
    the running thread then ends the process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # held for a whole run so a cancelled process is reaped before the
        # next one starts
        self._run_lock = threading.Lock()
        self._process: QProcess | None = None
        self._cancel_event: threading.Event | None = None

    # abstract method
    def executable(self) -> str:
        "Path to the executable that will run the task"
        raise NotImplementedError

    # abstract method
    def arguments(self, action: InstallerActions, formula: str) -> list[str]:
        "Arguments supplied to the executable"
        raise NotImplementedError

    # abstract method
    def environment(
        self, env: QProcessEnvironment = None
    ) -> QProcessEnvironment:
        "Changes needed in the environment variables."
        raise NotImplementedError

    # abstract method
    def available(self) -> bool:
        """
        Check if the tool is available by performing a little test
        """
        raise NotImplementedError

    # -------------------------- Public API ------------------------------
    def install(
        self,
        formula: str,
        on_output: OutputCallback,
        *,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Install ``formula``, passing every output chunk to ``on_output``.

        Parameters
        ----------
        formula : str
            Identifier of the package to install.
        on_output : Callable[[str], None]
            Called with each non-empty chunk of decoded output, in order.
        cancel_event : threading.Event, optional
            Cancellation token of this run. When it is already set the
            command is not started at all.

        Returns
        -------
        bool
            ``True`` if the command exited normally with code 0 and was not
            cancelled.
        """
        return self._run(
            InstallerActions.INSTALL, formula, on_output, cancel_event
        )

    def uninstall(
        self,
        formula: str,
        on_output: OutputCallback,
        *,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Uninstall ``formula``. Same contract as `install`."""
        return self._run(
            InstallerActions.UNINSTALL, formula, on_output, cancel_event
        )

    def cancel(self) -> None:
        """Ask the running command, if any, to stop."""
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()

    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None

    # -------------------------- Private methods ------------------------------
    def _create_process(self) -> QProcess:
        process = QProcess()
        process.setProcessChannelMode(
            QProcess.ProcessChannelMode.MergedChannels
        )
        return process

    def _run(
        self,
        action: InstallerActions,
        formula: str,
        on_output: OutputCallback,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        if cancel_event is None:
            cancel_event = threading.Event()
        program = str(self.executable())
        args = [str(arg) for arg in self.arguments(action, formula)]
        with self._run_lock:
            with self._lock:
                if cancel_event.is_set():
                    log.debug(
                        "Not starting '%s', run was cancelled", program
                    )
                    return False
                self._cancel_event = cancel_event
            try:
                process = self._start_process(program, args)
                with self._lock:
                    self._process = process
                try:
                    self._stream_output(process, on_output, cancel_event)
                except BaseException:
                    process.kill()
                    process.waitForFinished(-1)
                    raise
            finally:
                with self._lock:
                    self._process = None
                    self._cancel_event = None

        cancelled = cancel_event.is_set()
        exit_code = process.exitCode()
        normal_exit = process.exitStatus() == QProcess.ExitStatus.NormalExit
        log.debug(
            "Process '%s' finished with exit code %s%s",
            program,
            exit_code if normal_exit else 'None (crashed)',
            ' (cancelled)' if cancelled else '',
        )
        return normal_exit and exit_code == 0 and not cancelled

    def _start_process(self, program: str, args: list[str]) -> QProcess:
        process = self._create_process()
        process.setProgram(program)
        process.setArguments(args)
        process.setProcessEnvironment(self.environment())
        log.debug("Starting '%s' with args %s", program, args)
        process.start()
        if not process.waitForStarted(-1):
            raise OSError(
                f"Could not start '{program}': {process.errorString()}"
            )
        return process

    def _stream_output(
        self,
        process: QProcess,
        on_output: OutputCallback,
        cancel_event: threading.Event,
    ) -> None:
        decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        ending = False
        while True:
            if cancel_event.is_set() and not ending:
                ending = True
                log.debug("Cancelling '%s'", process.program())
                self._end_process(process)
            process.waitForReadyRead(POLL_INTERVAL_MS)
            data = process.readAllStandardOutput().data()
            if data:
                text = decoder.decode(data)
                if text:
                    on_output(text)
            elif process.state() == QProcess.ProcessState.NotRunning:
                break
        text = decoder.decode(b'', final=True)
        if text:
            on_output(text)
        process.waitForFinished(-1)

    @staticmethod
    def _end_process(process: QProcess) -> None:
        if os.name == 'nt':
            process.kill()
        else:
            process.terminate()
