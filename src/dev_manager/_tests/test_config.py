from dev_manager import config
from dev_manager.config import QueueSettings, get_configuration


def test_defaults_are_written():
    assert not config.DEFAULT_CONFIG_FILE_PATH.exists()
    parser = get_configuration()
    assert config.DEFAULT_CONFIG_FILE_PATH.exists()
    assert parser.getint('queue', 'max_completed_tasks') == 10
    assert parser.getint('queue', 'idle_grace_ms') == 5000
    assert parser.getint('queue', 'progress_interval_ms') == 500
    assert parser.get('homebrew', 'executable') == ''
    assert parser.getboolean('notifications', 'enabled')

    text = config.DEFAULT_CONFIG_FILE_PATH.read_text()
    for section in config.DEFAULTS:
        assert f'[{section}]' in text


def test_user_values_are_kept():
    config.DEFAULT_CONFIG_PATH.mkdir()
    config.DEFAULT_CONFIG_FILE_PATH.write_text(
        '[queue]\nmax_completed_tasks = 3\n'
        '[notifications]\nenabled = no\n'
    )
    parser = get_configuration()
    assert parser.getint('queue', 'max_completed_tasks') == 3
    assert parser.getint('queue', 'idle_grace_ms') == 5000
    assert not parser.getboolean('notifications', 'enabled')

    # missing keys were filled in on disk
    text = config.DEFAULT_CONFIG_FILE_PATH.read_text()
    assert 'progress_interval_ms' in text
    assert get_configuration().getint('queue', 'max_completed_tasks') == 3


def test_queue_settings_from_configuration():
    config.DEFAULT_CONFIG_PATH.mkdir()
    config.DEFAULT_CONFIG_FILE_PATH.write_text(
        '[queue]\nidle_grace_ms = 0\nprogress_interval_ms = 250\n'
    )
    settings = QueueSettings.from_configuration(get_configuration())
    assert settings == QueueSettings(
        max_completed_tasks=10, idle_grace_ms=0, progress_interval_ms=250
    )


def test_queue_settings_defaults_match_file_defaults():
    assert QueueSettings.from_configuration(get_configuration()) == (
        QueueSettings()
    )
