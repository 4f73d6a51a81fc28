"""
Configuration loader for the archival engine.
"""

import copy
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from ..core.exceptions import ArchivalConfigError
from ..core.models import normalize_timestamp, parse_timestamp


logger = logging.getLogger(__name__)


def _to_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# env var -> (section, key, caster)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "DB_BACKEND": ("source", "backend", str.lower),
    "DB_HOST": ("source", "host", str),
    "DB_PORT": ("source", "port", int),
    "DB_USER": ("source", "user", str),
    "DB_PASS": ("source", "password", str),
    "DB_NAME": ("source", "database", str),
    "DB_ODBC_DRIVER": ("source", "driver", str),
    "DB_SQLITE_PATH": ("source", "sqlite_path", str),
    "MANAGER_TABLE": ("registry", "manager_table", str),
    "TIMESTAMP_COL": ("registry", "timestamp_column", str),
    "ARCHIVE_START": ("window", "start", str),
    "ARCHIVE_END": ("window", "end", str),
    "ARCHIVE_INCREMENTAL": ("window", "incremental", _to_bool),
    "ARCHIVE_EPOCH_START": ("window", "epoch_start", str),
    "FULL_DUMP_WITHOUT_COLUMN": ("window", "full_dump_without_column", _to_bool),
    "ARCHIVE_TAG_TZ": ("window", "tag_timezone", str),
    "ARCHIVE_TAG_FORMAT": ("window", "tag_format", str),
    "DRY_RUN": ("mutation", "dry_run", _to_bool),
    "RESTORE_ENABLED": ("mutation", "restore_enabled", _to_bool),
    "RESTORE_DB_HOST": ("restore", "host", str),
    "RESTORE_DB_PORT": ("restore", "port", int),
    "RESTORE_DB_USER": ("restore", "user", str),
    "RESTORE_DB_PASS": ("restore", "password", str),
    "RESTORE_DB_NAME": ("restore", "database", str),
    "RESTORE_DB_SQLITE_PATH": ("restore", "sqlite_path", str),
    "WORK_DIR": ("storage", "work_dir", str),
    "CHECKPOINT_TABLE": ("checkpoint", "table", str),
    "UPLOAD_ENABLED": ("transfer", "enabled", _to_bool),
    "S3_BUCKET": ("transfer", "bucket", str),
    "S3_PREFIX": ("transfer", "prefix", str),
    "AWS_DEFAULT_REGION": ("transfer", "region", str),
    "STORAGE_CLASS": ("transfer", "storage_class", str),
    "S3_ENDPOINT": ("transfer", "endpoint_url", str),
    "UPLOAD_MAX_RETRIES": ("transfer", "max_retries", int),
    "UPLOAD_BACKOFF_SECONDS": ("transfer", "backoff_seconds", float),
    "DELETE_LOCAL_AFTER_UPLOAD": ("transfer", "delete_local_after_upload", _to_bool),
    "RETENTION_DAYS": ("transfer", "retention_days", int),
    "ARCHIVE_MAX_WORKERS": ("runner", "max_workers", int),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_STRUCTURED": ("logging", "structured", _to_bool),
}


class ArchivalConfig:
    """
    Configuration for the archival engine.

    Loads an optional YAML file over built-in defaults, then applies
    environment variable overrides (environment wins).
    """

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to YAML config file (optional)
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self.config = self._default_config()
        if self.config_path:
            self._merge(self.config, self._load_config())
        self._apply_env_overrides()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ArchivalConfigError(f"Config file not found: {self.config_path}")

        logger.info(f"Loading config from: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ArchivalConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ArchivalConfigError(f"Config root must be a mapping: {self.config_path}")
        return config

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "source": {
                "backend": "mysql",
                "host": "localhost",
                "port": 3306,
                "user": "root",
                "password": None,
                "database": None,
                "driver": "MySQL ODBC 8.0 Unicode Driver",
                "sqlite_path": None,
            },
            "registry": {
                "manager_table": "archieve_table_manager",
                "timestamp_column": "insert_ts",
            },
            "window": {
                "start": "2023-01-01 00:00:00",
                "end": None,  # midnight UTC, end_offset_days ago
                "end_offset_days": 30,
                "incremental": False,
                "epoch_start": "1970-01-01 00:00:00",
                "full_dump_without_column": False,
                "tag_timezone": "UTC",
                "tag_format": "%Y%m%d",
            },
            "mutation": {
                "dry_run": True,
                "restore_enabled": False,
            },
            "restore": {
                "host": None,
                "port": 3306,
                "user": None,
                "password": None,
                "database": None,
                "sqlite_path": None,
            },
            "storage": {
                "work_dir": "./archive_work",
            },
            "checkpoint": {
                "table": "backup_checkpoint",
            },
            "transfer": {
                "enabled": False,
                "bucket": None,
                "prefix": "db-dumps",
                "region": "ap-south-1",
                "storage_class": "STANDARD_IA",
                "endpoint_url": None,
                "max_retries": 1,
                "backoff_seconds": 2.0,
                "delete_local_after_upload": False,
                "retention_days": 30,
            },
            "runner": {
                "max_workers": 1,
            },
            "logging": {
                "level": "INFO",
                "structured": False,
            },
        }

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge override into base."""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to loaded config."""
        for env_name, (section, key, caster) in ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                value = caster(raw)
            except ValueError as e:
                raise ArchivalConfigError(f"Invalid value for {env_name}: {raw!r}") from e
            self.config.setdefault(section, {})[key] = value

        # A configured destination or bucket implies the feature unless set explicitly
        if self.environ.get("RESTORE_DB_HOST") and "RESTORE_ENABLED" not in self.environ:
            self.config["mutation"]["restore_enabled"] = True
        if self.environ.get("S3_BUCKET") and "UPLOAD_ENABLED" not in self.environ:
            self.config["transfer"]["enabled"] = True

    def get_source_config(self) -> Dict[str, Any]:
        """Get source database configuration."""
        return self.config.get("source", {})

    def get_registry_config(self) -> Dict[str, Any]:
        """Get registry configuration."""
        return self.config.get("registry", {})

    def get_window_config(self) -> Dict[str, Any]:
        """Get window configuration."""
        return self.config.get("window", {})

    def get_mutation_config(self) -> Dict[str, Any]:
        """Get delete/restore gating configuration."""
        return self.config.get("mutation", {})

    def get_restore_config(self) -> Dict[str, Any]:
        """Get destination database configuration."""
        return self.config.get("restore", {})

    def get_storage_config(self) -> Dict[str, Any]:
        """Get local storage configuration."""
        return self.config.get("storage", {})

    def get_checkpoint_config(self) -> Dict[str, Any]:
        """Get checkpoint store configuration."""
        return self.config.get("checkpoint", {})

    def get_transfer_config(self) -> Dict[str, Any]:
        """Get object storage transfer configuration."""
        return self.config.get("transfer", {})

    def get_runner_config(self) -> Dict[str, Any]:
        """Get runner configuration."""
        return self.config.get("runner", {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.config.get("logging", {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    @property
    def dry_run(self) -> bool:
        return bool(self.get("mutation.dry_run", True))

    @property
    def incremental(self) -> bool:
        return bool(self.get("window.incremental", False))

    @property
    def work_dir(self) -> Path:
        return Path(self.get("storage.work_dir", "./archive_work"))

    @property
    def dump_root(self) -> Path:
        return self.work_dir / "dumps"

    @property
    def log_file(self) -> Path:
        return self.work_dir / "logs" / "archival.log"

    def get_window_bounds(self, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        """
        Resolve the configured [start, end) window.

        When no end is configured it defaults to midnight UTC
        `end_offset_days` before now.

        Raises:
            ArchivalConfigError: If a bound cannot be parsed
        """
        window = self.get_window_config()
        try:
            start = parse_timestamp(window.get("start"))
            if window.get("end"):
                end = parse_timestamp(window.get("end"))
            else:
                now = normalize_timestamp(now or datetime.now(timezone.utc))
                midnight = now.replace(hour=0, minute=0, second=0)
                end = midnight - timedelta(days=int(window.get("end_offset_days", 30)))
        except ValueError as e:
            raise ArchivalConfigError(f"Invalid archive window: {e}") from e
        return start, end

    def get_epoch_start(self) -> datetime:
        """First timestamp considered for objects without a checkpoint."""
        try:
            return parse_timestamp(self.get("window.epoch_start", "1970-01-01 00:00:00"))
        except ValueError as e:
            raise ArchivalConfigError(f"Invalid ARCHIVE_EPOCH_START: {e}") from e

    def get_archive_tag(self, now: Optional[datetime] = None) -> str:
        """
        Date tag applied to every artifact of the run.

        Rendered in one configured timezone so the whole run shares a tag.
        """
        tz_name = self.get("window.tag_timezone", "UTC")
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ArchivalConfigError(f"Unknown tag timezone: {tz_name}") from e
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(tz).strftime(self.get("window.tag_format", "%Y%m%d"))

    def get_remote_prefix(self) -> str:
        """Normalized key prefix under the bucket ('' when none)."""
        prefix = (self.get("transfer.prefix") or "").strip().strip("/")
        if prefix in ("''", '""'):
            return ""
        return prefix

    def validate(self) -> None:
        """
        Validate configuration consistency.

        Raises:
            ArchivalConfigError: If configuration is invalid.
        """
        source = self.get_source_config()
        backend = source.get("backend", "mysql")
        if backend not in ("mysql", "sqlite"):
            raise ArchivalConfigError(
                f"Invalid DB_BACKEND '{backend}'. Must be one of: mysql, sqlite"
            )
        if backend == "mysql" and not source.get("database"):
            raise ArchivalConfigError("DB_NAME is required")
        if backend == "sqlite" and not source.get("sqlite_path"):
            raise ArchivalConfigError("DB_SQLITE_PATH is required when DB_BACKEND=sqlite")

        if not self.incremental:
            start, end = self.get_window_bounds()
            if not start < end:
                raise ArchivalConfigError(
                    f"ARCHIVE_START ({start}) must be before ARCHIVE_END ({end})"
                )
        else:
            self.get_epoch_start()
        self.get_archive_tag()

        if self.get("mutation.restore_enabled", False):
            restore = self.get_restore_config()
            if backend == "mysql" and not (restore.get("host") and restore.get("database")):
                raise ArchivalConfigError(
                    "RESTORE_DB_HOST and RESTORE_DB_NAME are required when restore is enabled"
                )
            if backend == "sqlite" and not restore.get("sqlite_path"):
                raise ArchivalConfigError(
                    "RESTORE_DB_SQLITE_PATH is required when restore is enabled"
                )

        transfer = self.get_transfer_config()
        if transfer.get("enabled"):
            if not transfer.get("bucket"):
                raise ArchivalConfigError("S3_BUCKET is required when upload is enabled")
            if int(transfer.get("max_retries", 1)) < 1:
                raise ArchivalConfigError("UPLOAD_MAX_RETRIES must be at least 1")
            if int(transfer.get("retention_days", 30)) < 0:
                raise ArchivalConfigError("RETENTION_DAYS cannot be negative")

        if int(self.get("runner.max_workers", 1)) < 1:
            raise ArchivalConfigError("ARCHIVE_MAX_WORKERS must be at least 1")

    def redacted(self) -> Dict[str, Any]:
        """Copy of the configuration with secrets masked."""
        data = copy.deepcopy(self.config)
        for section in ("source", "restore"):
            if data.get(section, {}).get("password"):
                data[section]["password"] = "***"
        return data

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        source = self.get_source_config()
        logger.info(
            f"Source DB: {source.get('host')}:{source.get('port')}/{source.get('database')} "
            f"(backend={source.get('backend')})"
        )
        logger.info(f"Manager table: {self.get('registry.manager_table')}")
        logger.info(f"Timestamp column: {self.get('registry.timestamp_column')}")
        if self.incremental:
            logger.info("Window: incremental from last checkpoint")
        else:
            start, end = self.get_window_bounds()
            logger.info(f"Window: [{start} .. {end})")
        logger.info(f"Dry-run: {self.dry_run}")
        logger.info(f"Dump location: {self.dump_root}")
        if self.get("mutation.restore_enabled"):
            restore = self.get_restore_config()
            logger.info(
                f"Destination DB: {restore.get('host')}:{restore.get('port')}/"
                f"{restore.get('database')}"
            )
        transfer = self.get_transfer_config()
        if transfer.get("enabled"):
            logger.info(
                f"Upload: s3://{transfer.get('bucket')}/{self.get_remote_prefix()} "
                f"(storage class {transfer.get('storage_class')})"
            )
