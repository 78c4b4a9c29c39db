"""
The Homebrew installation logic for dev-manager.

The main object is `HomebrewInstaller`, an `AbstractInstaller` subclass
that runs ``brew install <formula>`` and ``brew uninstall <formula>``.
"""

import os
import sys
from logging import getLogger
from pathlib import Path
from subprocess import run

from qtpy.QtCore import QProcessEnvironment

from dev_manager.base_installer import AbstractInstaller, InstallerActions

log = getLogger(__name__)

# default install locations for Apple Silicon, Intel macOS and Linux
BREW_PREFIXES = (
    Path('/opt/homebrew/bin/brew'),
    Path('/usr/local/bin/brew'),
    Path('/home/linuxbrew/.linuxbrew/bin/brew'),
)


class HomebrewInstaller(AbstractInstaller):
    """Homebrew installer tool.

    This class is used to install and uninstall formulae using brew.
    """

    def __init__(self, executable: str | None = None) -> None:
        super().__init__()
        self._executable = executable or None

    def executable(self) -> str:
        """Find a path to the brew executable.

        An explicit path wins, then ``$HOMEBREW_BREW_FILE`` and the default
        prefixes. Otherwise brew is assumed to be available in the PATH.
        """
        if self._executable:
            return self._executable
        for path in (
            Path(os.environ.get('HOMEBREW_BREW_FILE', '')),
            *BREW_PREFIXES,
        ):
            if path.is_file():
                return str(path)
        return 'brew'

    def available(self) -> bool:
        """Check if brew is available by checking if it can output its version."""
        try:
            process = run([self.executable(), '--version'], capture_output=True)
        except FileNotFoundError:  # pragma: no cover
            return False
        else:
            return process.returncode == 0

    def arguments(self, action: InstallerActions, formula: str) -> list[str]:
        """Compose arguments for the brew command."""
        if action == InstallerActions.INSTALL:
            args = ['install']
        elif action == InstallerActions.UNINSTALL:
            args = ['uninstall']
        else:
            raise ValueError(f"Action '{action}' not supported!")

        if log.getEffectiveLevel() < 30:  # DEBUG and INFO level
            args.append('--verbose')

        return [*args, formula]

    def environment(
        self, env: QProcessEnvironment = None
    ) -> QProcessEnvironment:
        if env is None:
            env = QProcessEnvironment.systemEnvironment()
        # auto-update would run inside every queued task
        env.insert('HOMEBREW_NO_AUTO_UPDATE', '1')
        env.insert('HOMEBREW_NO_ENV_HINTS', '1')
        if sys.platform == 'darwin' and env.contains('PYTHONEXECUTABLE'):
            env.remove('PYTHONEXECUTABLE')
        return env
