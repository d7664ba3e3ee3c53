"""
Unit tests for environment configuration.
"""

import pytest

from entrylog import __version__
from entrylog.config import AppConfig, BackupConfig, ObservabilityConfig, StorageConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove any ENTRYLOG_ variables inherited from the shell."""
    for name in (
        "ENTRYLOG_DB_PATH",
        "ENTRYLOG_SQLITE_WAL_MODE",
        "ENTRYLOG_SQLITE_BUSY_TIMEOUT_MS",
        "ENTRYLOG_APP_VERSION",
        "ENTRYLOG_BACKUP_INDENT",
        "ENTRYLOG_LOG_LEVEL",
        "ENTRYLOG_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    """Tests for loading configuration from the environment."""

    def test_defaults(self):
        """Defaults are usable without any environment."""
        config = AppConfig.from_env()

        assert config.storage.wal_mode is True
        assert config.storage.busy_timeout_ms == 5000
        assert config.storage.db_path.endswith("entries.db")
        assert "~" not in config.storage.db_path
        assert config.backup.app_version == __version__
        assert config.backup.indent == 2
        assert config.observability.log_level == "INFO"
        assert config.observability.log_format == "text"

    def test_overrides(self, monkeypatch, tmp_path):
        """Every setting can be overridden."""
        monkeypatch.setenv("ENTRYLOG_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("ENTRYLOG_SQLITE_WAL_MODE", "false")
        monkeypatch.setenv("ENTRYLOG_SQLITE_BUSY_TIMEOUT_MS", "250")
        monkeypatch.setenv("ENTRYLOG_APP_VERSION", "3.1.4")
        monkeypatch.setenv("ENTRYLOG_BACKUP_INDENT", "0")
        monkeypatch.setenv("ENTRYLOG_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ENTRYLOG_LOG_FORMAT", "JSON")

        config = AppConfig.from_env()

        assert config.storage == StorageConfig(
            db_path=str(tmp_path / "x.db"), wal_mode=False, busy_timeout_ms=250
        )
        assert config.backup == BackupConfig(app_version="3.1.4", indent=0)
        assert config.observability == ObservabilityConfig(log_level="DEBUG", log_format="json")

    @pytest.mark.parametrize("raw", ["1", "true", "YES"])
    def test_bool_parsing(self, monkeypatch, raw):
        monkeypatch.setenv("ENTRYLOG_SQLITE_WAL_MODE", raw)
        assert StorageConfig.from_env().wal_mode is True


class TestValidate:
    """Tests for AppConfig.validate."""

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-rc1"])
    def test_bad_app_version(self, monkeypatch, version):
        monkeypatch.setenv("ENTRYLOG_APP_VERSION", version)
        with pytest.raises(ValueError, match="ENTRYLOG_APP_VERSION"):
            AppConfig.from_env()

    def test_bad_log_format(self, monkeypatch):
        monkeypatch.setenv("ENTRYLOG_LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="ENTRYLOG_LOG_FORMAT"):
            AppConfig.from_env()

    def test_negative_indent(self, monkeypatch):
        monkeypatch.setenv("ENTRYLOG_BACKUP_INDENT", "-1")
        with pytest.raises(ValueError, match="ENTRYLOG_BACKUP_INDENT"):
            AppConfig.from_env()

    def test_negative_busy_timeout(self):
        config = AppConfig(storage=StorageConfig(busy_timeout_ms=-5))
        with pytest.raises(ValueError):
            config.validate()
