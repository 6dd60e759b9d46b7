"""Environment-driven configuration loading.

Reads the process environment (and an optional ``.env`` file) with
pydantic-settings and builds the frozen ``SnapshotConfig`` passed into
every component.  Missing mandatory values raise ``ConfigError`` listing
every missing variable at once.
"""

import tempfile
from pathlib import Path

from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from db_snapshot.backup.models import RestoreRequest
from db_snapshot.backup.naming import remote_key_for
from db_snapshot.config.models import (
    DatabaseConfig,
    ObjectStoreConfig,
    RetentionPolicy,
    ScheduleConfig,
    SnapshotConfig,
    SnapshotFormat,
)
from db_snapshot.errors import ConfigError

REQUIRED_SETTINGS = (
    "postgres_host",
    "postgres_port",
    "postgres_user",
    "postgres_password",
    "postgres_db",
    "aws_region",
    "s3_endpoint",
    "s3_bucket",
    "aws_access_key_id",
    "aws_secret_access_key",
)


class Settings(BaseSettings):
    """Raw environment settings.

    Field names map case-insensitively to environment variables
    (``postgres_host`` <- ``POSTGRES_HOST``).  Mandatory fields are optional
    here so that every missing variable can be reported together.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    postgres_host: str | None = None
    postgres_port: int | None = None
    postgres_user: str | None = None
    postgres_password: SecretStr | None = None
    postgres_db: str | None = None
    postgres_major_version: int | None = None

    # Object store
    aws_region: str | None = None
    s3_endpoint: str | None = None
    s3_bucket: str | None = None
    s3_prefix: str = ""
    aws_access_key_id: str | None = None
    aws_secret_access_key: SecretStr | None = None

    # Policy
    backup_schedule: str = "0 0 * * *"
    backup_retention_days: int = 0
    backup_startup_delay: float = 60
    backup_shutdown_grace: float = 30
    backup_work_dir: Path | None = None
    backup_format: SnapshotFormat = SnapshotFormat.CUSTOM
    backup_retain_failed: bool = True

    # Restore
    s3_restore_file: str | None = None

    log_level: str = "INFO"

    def missing(self) -> list[str]:
        """Names of mandatory environment variables that are absent or empty."""
        names = []
        for field in REQUIRED_SETTINGS:
            value = getattr(self, field)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if value is None or value == "":
                names.append(field.upper())
        return names


def load_settings(env_file: str | Path | None = ".env") -> Settings:
    """Read raw settings from the environment.

    Raises:
        ConfigError: If a value is present but cannot be parsed
            (e.g., a non-numeric port).
    """
    try:
        return Settings(_env_file=env_file)
    except ValidationError as e:
        invalid = [str(err["loc"][0]).upper() for err in e.errors()]
        raise ConfigError(
            f"Invalid environment variables: {', '.join(invalid)}",
            invalid=invalid,
        ) from None


def build_config(settings: Settings) -> SnapshotConfig:
    """Build the frozen config from raw settings.

    Raises:
        ConfigError: If any mandatory variable is missing or a value is
            out of range.
    """
    missing = settings.missing()
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing,
        )

    try:
        return SnapshotConfig(
            database=DatabaseConfig(
                host=settings.postgres_host,
                port=settings.postgres_port,
                user=settings.postgres_user,
                password=settings.postgres_password,
                database=settings.postgres_db,
            ),
            object_store=ObjectStoreConfig(
                endpoint=settings.s3_endpoint,
                region=settings.aws_region,
                bucket=settings.s3_bucket,
                prefix=settings.s3_prefix,
                access_key_id=settings.aws_access_key_id,
                secret_access_key=settings.aws_secret_access_key,
            ),
            retention=RetentionPolicy(retention_days=settings.backup_retention_days),
            schedule=ScheduleConfig(
                cron=settings.backup_schedule,
                startup_delay_seconds=settings.backup_startup_delay,
                shutdown_grace_seconds=settings.backup_shutdown_grace,
            ),
            work_dir=settings.backup_work_dir or Path(tempfile.gettempdir()),
            dump_format=settings.backup_format,
            retain_failed_snapshots=settings.backup_retain_failed,
            postgres_major_version=settings.postgres_major_version,
        )
    except ValidationError as e:
        fields = sorted({str(err["loc"][-1]) for err in e.errors()})
        raise ConfigError(
            f"Invalid configuration values: {', '.join(fields)}",
            invalid=fields,
        ) from None


def load_config(env_file: str | Path | None = ".env") -> SnapshotConfig:
    """Load and validate configuration from the environment.

    Args:
        env_file: Optional dotenv file read in addition to the process
            environment (process environment wins).

    Returns:
        Frozen ``SnapshotConfig``.

    Raises:
        ConfigError: If mandatory values are missing or invalid.

    Example:
        >>> config = load_config()
        >>> config.object_store.bucket
        'backups'
    """
    return build_config(load_settings(env_file))


def load_restore_request(
    config: SnapshotConfig,
    file_name: str | None = None,
    env_file: str | Path | None = ".env",
) -> RestoreRequest:
    """Resolve which remote snapshot to restore.

    The key is the configured prefix joined with ``file_name`` or, when not
    given, with ``S3_RESTORE_FILE``.

    Raises:
        ConfigError: If no snapshot file is named.
    """
    if not file_name:
        file_name = load_settings(env_file).s3_restore_file
    if not file_name:
        raise ConfigError(
            "Missing required environment variables: S3_RESTORE_FILE",
            missing=["S3_RESTORE_FILE"],
        )
    return RestoreRequest(remote_key=remote_key_for(config.object_store.prefix, file_name))
