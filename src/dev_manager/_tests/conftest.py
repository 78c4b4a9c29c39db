import sys
import threading
from unittest.mock import patch

import pytest
from qtpy.QtCore import QProcessEnvironment

from dev_manager import config
from dev_manager.base_installer import AbstractInstaller, InstallerActions
from dev_manager.config import QueueSettings
from dev_manager.qt_installer_queue import InstallerQueue
from dev_manager.qt_notifier import AbstractNotifier

# python snippets run by `PythonInstaller`, keyed by formula
PYTHON_SCRIPTS = {
    'ok': (
        "print('==> Fetching node')\n"
        "print('######## 45.2%')\n"
        "print('==> Pouring node--21.0.0.bottle.tar.gz')\n"
        "print('==> Linking node')\n"
    ),
    'broken': "print('Error: No such keg')\nraise SystemExit(1)\n",
    'slow': (
        'import time\n'
        "print('==> Downloading slow', flush=True)\n"
        'time.sleep(30)\n'
    ),
}


@pytest.fixture(autouse=True)
def _isolated_configuration(tmp_path):
    config_path = tmp_path / '.dev-manager'
    with (
        patch.object(config, 'DEFAULT_CONFIG_PATH', config_path),
        patch.object(
            config, 'DEFAULT_CONFIG_FILE_PATH', config_path / 'dev-manager.ini'
        ),
    ):
        yield


class ScriptedInstaller(AbstractInstaller):
    """Installer double replaying canned output from a worker thread.

    A run for a formula registered with `hold` blocks until the returned
    event is set or the run is cancelled.
    """

    def __init__(self) -> None:
        super().__init__()
        self.outputs: dict[str, list[str]] = {}
        self.results: dict[str, bool | Exception] = {}
        self.gates: dict[str, threading.Event] = {}
        self.calls: list[tuple[InstallerActions, str]] = []
        self.cancel_calls = 0
        self.active_runs = 0

    def hold(self, formula: str) -> threading.Event:
        gate = threading.Event()
        self.gates[formula] = gate
        return gate

    def release_all(self) -> None:
        for gate in self.gates.values():
            gate.set()

    def cancel(self) -> None:
        self.cancel_calls += 1

    def _run(self, action, formula, on_output, cancel_event=None):
        self.active_runs += 1
        try:
            self.calls.append((action, formula))
            for chunk in self.outputs.get(formula, ()):
                on_output(chunk)
            gate = self.gates.get(formula)
            while gate is not None and not gate.wait(0.01):
                if cancel_event is not None and cancel_event.is_set():
                    return False
            result = self.results.get(formula, True)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active_runs -= 1


class PythonInstaller(AbstractInstaller):
    """Installer running `PYTHON_SCRIPTS` with the current interpreter."""

    def executable(self):
        return sys.executable

    def arguments(self, action, formula):
        return ['-c', PYTHON_SCRIPTS[formula]]

    def environment(self, env=None):
        if env is None:
            env = QProcessEnvironment.systemEnvironment()
        env.insert('PYTHONUNBUFFERED', '1')
        return env

    def available(self):
        return True


class RecordingNotifier(AbstractNotifier):
    def __init__(self) -> None:
        self.calls = []

    def notify(self, task, success):
        self.calls.append((task, success))


@pytest.fixture
def installer():
    installer = ScriptedInstaller()
    yield installer
    installer.release_all()


@pytest.fixture
def python_installer():
    return PythonInstaller()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return QueueSettings(idle_grace_ms=50)


@pytest.fixture
def queue(qtbot, installer, notifier, settings):
    queue = InstallerQueue(installer, notifier, settings=settings)
    yield queue
    installer.release_all()
    qtbot.waitUntil(lambda: installer.active_runs == 0, timeout=5000)
