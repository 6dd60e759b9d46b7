"""Pydantic models for snapshot configuration.

All models are frozen: they are built once at startup and passed by
reference into each component.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from db_snapshot.backup.models import SnapshotFormat


# ============================================================================
# Connection Models
# ============================================================================


class DatabaseConfig(BaseModel):
    """Connection parameters for the target database."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 5432
    user: str
    password: SecretStr
    database: str

    @property
    def admin_database(self) -> str:
        """Database used to issue DROP/CREATE for ``database``."""
        return "template1" if self.database == "postgres" else "postgres"

    def redacted_url(self) -> str:
        """Connection URL with the password masked, safe for diagnostics."""
        return f"postgresql://{self.user}:****@{self.host}:{self.port}/{self.database}"


class ObjectStoreConfig(BaseModel):
    """S3-compatible object store parameters."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    region: str
    bucket: str
    prefix: str = ""
    access_key_id: str
    secret_access_key: SecretStr


class RetentionPolicy(BaseModel):
    """How long snapshots are kept remotely (0 disables pruning)."""

    model_config = ConfigDict(frozen=True)

    retention_days: int = Field(default=0, ge=0)

    @property
    def enabled(self) -> bool:
        return self.retention_days > 0


# ============================================================================
# Aggregate Config
# ============================================================================


class ScheduleConfig(BaseModel):
    """Recurring schedule and lifecycle settings."""

    model_config = ConfigDict(frozen=True)

    cron: str = "0 0 * * *"
    startup_delay_seconds: float = Field(default=60, ge=0)
    shutdown_grace_seconds: float = Field(default=30, ge=0)


class SnapshotConfig(BaseModel):
    """Complete, validated configuration for one process."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig
    object_store: ObjectStoreConfig
    retention: RetentionPolicy = RetentionPolicy()
    schedule: ScheduleConfig = ScheduleConfig()
    work_dir: Path
    dump_format: SnapshotFormat = SnapshotFormat.CUSTOM
    retain_failed_snapshots: bool = True
    postgres_major_version: int | None = None

    @property
    def secrets(self) -> list[str]:
        """Secret values that must never appear in output."""
        return [
            self.database.password.get_secret_value(),
            self.object_store.secret_access_key.get_secret_value(),
        ]
