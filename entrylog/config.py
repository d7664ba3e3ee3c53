"""
Configuration management for EntryLog.

All configuration is done via environment variables prefixed with
``ENTRYLOG_``. This module provides typed configuration classes with
validation.

Invariants:
    - All settings have sensible defaults for local use
    - The configured application version always parses as major.minor.patch

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change the meaning of an existing environment variable
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from ._version import __version__
from .backup.version_gate import SemanticVersion
from .errors import MalformedVersionError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.expanduser(os.path.join("~", ".local", "share", "entrylog", "entries.db"))

LOG_FORMATS = ("json", "text")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class StorageConfig:
    """Local SQLite storage configuration.

    Attributes:
        db_path: Path of the SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    db_path: str = DEFAULT_DB_PATH
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.path.expanduser(os.getenv("ENTRYLOG_DB_PATH", DEFAULT_DB_PATH)),
            wal_mode=_env_bool("ENTRYLOG_SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("ENTRYLOG_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Backup export/import configuration.

    Attributes:
        app_version: Version written into exports and gated against on import
        indent: JSON indentation of exported documents
    """

    app_version: str = __version__
    indent: int = 2

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables."""
        return cls(
            app_version=os.getenv("ENTRYLOG_APP_VERSION", __version__),
            indent=int(os.getenv("ENTRYLOG_BACKUP_INDENT", "2")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("ENTRYLOG_LOG_LEVEL", "INFO"),
            log_format=os.getenv("ENTRYLOG_LOG_FORMAT", "text").lower(),
        )


@dataclass
class AppConfig:
    """Complete application configuration.

    Attributes:
        storage: Local storage configuration
        backup: Backup configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Returns:
            AppConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            backup=BackupConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        try:
            SemanticVersion.parse(self.backup.app_version)
        except MalformedVersionError as e:
            raise ValueError(f"ENTRYLOG_APP_VERSION is invalid: {e.message}") from e

        if self.backup.indent < 0:
            raise ValueError("ENTRYLOG_BACKUP_INDENT must be >= 0")

        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid ENTRYLOG_LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )

        if self.storage.busy_timeout_ms < 0:
            raise ValueError("ENTRYLOG_SQLITE_BUSY_TIMEOUT_MS must be >= 0")

        db_dir = os.path.dirname(os.path.abspath(self.storage.db_path))
        if not os.path.exists(db_dir):
            logger.warning(
                f"Database directory does not exist: {db_dir}. "
                "It will be created on first open."
            )

    def log_config(self) -> None:
        """Log the loaded configuration."""
        logger.info(
            "Configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "wal_mode": self.storage.wal_mode,
                "app_version": self.backup.app_version,
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
            },
        )
