"""Configuration management: environment loading and frozen config models.

Usage:
    >>> from db_snapshot.config import load_config, SnapshotConfig
"""

from db_snapshot.config.loader import load_config, load_restore_request
from db_snapshot.config.models import (
    DatabaseConfig,
    ObjectStoreConfig,
    RetentionPolicy,
    ScheduleConfig,
    SnapshotConfig,
    SnapshotFormat,
)

__all__ = [
    "load_config",
    "load_restore_request",
    "DatabaseConfig",
    "ObjectStoreConfig",
    "RetentionPolicy",
    "ScheduleConfig",
    "SnapshotConfig",
    "SnapshotFormat",
]
