"""User-facing signals for finished tasks.

Notifiers only observe; the installer queue ignores their return value and
logs (never propagates) anything they raise.
"""

from logging import getLogger

from qtpy.QtWidgets import QSystemTrayIcon

from dev_manager.base_installer import InstallerActions
from dev_manager.tasks import Task

log = getLogger(__name__)

MESSAGE_TIMEOUT_MS = 10_000


def notification_text(task: Task, success: bool) -> tuple[str, str]:
    """Return the ``(title, body)`` pair announcing the end of ``task``."""
    uninstall = task.action == InstallerActions.UNINSTALL
    noun = 'Uninstallation' if uninstall else 'Installation'
    if success:
        verb = 'uninstalled' if uninstall else 'installed'
        return (
            f'{noun} Complete',
            f'{task.display_name} has been successfully {verb}.',
        )
    verb = 'uninstall' if uninstall else 'install'
    return (
        f'{noun} Failed',
        f'Failed to {verb} {task.display_name}. '
        f'{task.error or "Check logs for details."}',
    )


class AbstractNotifier:
    """Abstract base class for task completion notifiers."""

    # abstract method
    def notify(self, task: Task, success: bool) -> None:
        raise NotImplementedError


class LogNotifier(AbstractNotifier):
    """Report finished tasks through the logging system."""

    def notify(self, task: Task, success: bool) -> None:
        title, body = notification_text(task, success)
        if success:
            log.info('%s: %s', title, body)
        else:
            log.warning('%s: %s', title, body)


class TrayNotifier(AbstractNotifier):
    """Show a desktop notification from a system tray icon.

    Falls back to logging when there is no tray icon, the platform has no
    system tray or the tray cannot show balloon messages.
    """

    def __init__(self, tray_icon: QSystemTrayIcon | None = None) -> None:
        self._tray_icon = tray_icon
        self._fallback = LogNotifier()

    def notify(self, task: Task, success: bool) -> None:
        tray_icon = self._tray_icon
        if (
            tray_icon is None
            or not QSystemTrayIcon.isSystemTrayAvailable()
            or not tray_icon.supportsMessages()
        ):
            log.debug('[Notification skipped] no system tray for %s', task.id)
            self._fallback.notify(task, success)
            return

        title, body = notification_text(task, success)
        icon = (
            QSystemTrayIcon.MessageIcon.Information
            if success
            else QSystemTrayIcon.MessageIcon.Critical
        )
        tray_icon.showMessage(title, body, icon, MESSAGE_TIMEOUT_MS)
