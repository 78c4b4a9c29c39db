import logging
from unittest.mock import MagicMock

import pytest

from dev_manager import qt_notifier
from dev_manager.base_installer import InstallerActions
from dev_manager.qt_notifier import (
    MESSAGE_TIMEOUT_MS,
    AbstractNotifier,
    LogNotifier,
    TrayNotifier,
    notification_text,
)
from dev_manager.tasks import RuntimeKind, Task


@pytest.fixture
def task():
    task = Task(RuntimeKind.PYTHON, '3.12', 'python@3.12', 'Python 3.12')
    task.start()
    return task


@pytest.fixture
def removal():
    task = Task(
        RuntimeKind.GO,
        '1.22',
        'go',
        'Go 1.22',
        action=InstallerActions.UNINSTALL,
    )
    task.start()
    return task


def test_notification_text_success(task, removal):
    task.complete()
    assert notification_text(task, True) == (
        'Installation Complete',
        'Python 3.12 has been successfully installed.',
    )
    removal.complete()
    assert notification_text(removal, True) == (
        'Uninstallation Complete',
        'Go 1.22 has been successfully uninstalled.',
    )


def test_notification_text_failure(task, removal):
    task.fail('Error: python@3.12: no bottle available!')
    assert notification_text(task, False) == (
        'Installation Failed',
        'Failed to install Python 3.12. '
        'Error: python@3.12: no bottle available!',
    )
    title, body = notification_text(removal, False)
    assert title == 'Uninstallation Failed'
    assert body == 'Failed to uninstall Go 1.22. Check logs for details.'


def test_abstract_notifier(task):
    with pytest.raises(NotImplementedError):
        AbstractNotifier().notify(task, True)


def test_log_notifier(task, caplog):
    caplog.set_level(logging.INFO, logger=qt_notifier.__name__)
    LogNotifier().notify(task, True)
    LogNotifier().notify(task, False)
    assert [r.levelno for r in caplog.records] == [
        logging.INFO,
        logging.WARNING,
    ]
    assert caplog.records[0].getMessage() == (
        'Installation Complete: Python 3.12 has been successfully installed.'
    )
    assert caplog.records[1].getMessage() == (
        'Installation Failed: Failed to install Python 3.12. '
        'Check logs for details.'
    )


def test_tray_notifier_without_icon(task, caplog):
    caplog.set_level(logging.INFO, logger=qt_notifier.__name__)
    TrayNotifier().notify(task, True)
    assert 'Installation Complete' in caplog.text


@pytest.fixture
def tray_class(monkeypatch):
    tray_class = MagicMock()
    tray_class.isSystemTrayAvailable.return_value = True
    monkeypatch.setattr(qt_notifier, 'QSystemTrayIcon', tray_class)
    return tray_class


def test_tray_notifier_shows_message(task, tray_class):
    tray_icon = MagicMock()
    tray_icon.supportsMessages.return_value = True
    notifier = TrayNotifier(tray_icon)

    notifier.notify(task, True)
    tray_icon.showMessage.assert_called_once_with(
        'Installation Complete',
        'Python 3.12 has been successfully installed.',
        tray_class.MessageIcon.Information,
        MESSAGE_TIMEOUT_MS,
    )

    tray_icon.reset_mock()
    notifier.notify(task, False)
    args = tray_icon.showMessage.call_args.args
    assert args[0] == 'Installation Failed'
    assert args[2] is tray_class.MessageIcon.Critical


@pytest.mark.parametrize(
    ('tray_available', 'supports_messages'),
    [(False, True), (True, False)],
)
def test_tray_notifier_fallback(
    task, tray_class, caplog, tray_available, supports_messages
):
    caplog.set_level(logging.INFO, logger=qt_notifier.__name__)
    tray_class.isSystemTrayAvailable.return_value = tray_available
    tray_icon = MagicMock()
    tray_icon.supportsMessages.return_value = supports_messages

    TrayNotifier(tray_icon).notify(task, True)

    tray_icon.showMessage.assert_not_called()
    assert 'Installation Complete' in caplog.text
