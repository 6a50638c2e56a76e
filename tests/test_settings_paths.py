import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from core import settings
from storage import backup as backup_module
from storage.backup import ensure_daily_backup
from storage.config import AppConfig, load_config, save_config, update_config


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    assert result == Path("/Users/test/Library/Application Support") / settings.APP_NAME


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    assert result == Path(env["APPDATA"]) / settings.APP_NAME


def test_home_override_wins():
    env = {settings.HOME_ENV_VAR: "/srv/companion", "XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(settings.APP_NAME, platform="linux", env=env)
    assert result == Path("/srv/companion")


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.CONFIG_PATH.parent == settings.DATA_DIR
    assert settings.SYNC_LOG_PATH.parent == settings.LOG_DIR
    assert settings.BACKUP.directory == settings.BACKUP_DIR


def test_sync_defaults():
    assert settings.SYNC.max_attempts == 3
    assert settings.SYNC.batch_limit == 100
    assert settings.SYNC.cleanup_max_age_hours == 24


def test_config_defaults_when_missing(tmp_path):
    assert load_config(tmp_path / "config.json") == AppConfig()


def test_config_round_trip_and_update(tmp_path):
    path = tmp_path / "config.json"
    save_config(AppConfig(max_attempts=5, stop_on_error=True), path)
    assert json.loads(path.read_text(encoding="utf-8"))["max_attempts"] == 5

    cfg = update_config(path, batch_limit="25")
    assert cfg.batch_limit == 25
    assert load_config(path) == AppConfig(max_attempts=5, stop_on_error=True, batch_limit=25)

    with pytest.raises(KeyError):
        update_config(path, colour="red")


def test_invalid_config_values_fall_back(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"max_attempts": 0, "batch_limit": "many", "stop_on_error": "yes"}), encoding="utf-8")
    cfg = load_config(path)
    assert cfg.max_attempts == settings.SYNC.max_attempts
    assert cfg.batch_limit == settings.SYNC.batch_limit
    assert cfg.stop_on_error is True

    path.write_text("{broken", encoding="utf-8")
    assert load_config(path) == AppConfig()


def test_backup_rotation(monkeypatch, tmp_path):
    db_path = tmp_path / "companion.db"
    db_path.write_text("seed", encoding="utf-8")
    backup_dir = tmp_path / "backups"

    base = datetime(2024, 1, 1)

    for offset in range(5):
        db_path.write_text(f"content-{offset}", encoding="utf-8")

        class FakeDateTime(datetime):
            @classmethod
            def now(cls, tz=None):
                return base + timedelta(days=offset)

        monkeypatch.setattr(backup_module, "datetime", FakeDateTime)
        ensure_daily_backup(db_path, backup_dir, keep_days=3)

    monkeypatch.setattr(backup_module, "datetime", datetime)

    backups = sorted(p.name for p in backup_dir.iterdir())
    assert backups == [
        "companion_2024-01-03.db",
        "companion_2024-01-04.db",
        "companion_2024-01-05.db",
    ]


def test_backup_skips_missing_database(tmp_path):
    assert ensure_daily_backup(tmp_path / "absent.db", tmp_path / "backups") is None
