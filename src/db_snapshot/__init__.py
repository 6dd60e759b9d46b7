"""db-snapshot: scheduled PostgreSQL snapshots to S3-compatible storage.

Dumps the database with ``pg_dump``, uploads the archive, verifies it,
prunes expired snapshots, and restores a chosen snapshot on demand.

Usage:
    from db_snapshot import load_config, BackupWorkflow, BackupScheduler
    from db_snapshot import RestoreOrchestrator, RestoreRequest, ObjectStoreGateway
"""

__version__ = "0.1.0"

# Config
from db_snapshot.config.loader import load_config, load_restore_request
from db_snapshot.config.models import (
    DatabaseConfig,
    ObjectStoreConfig,
    RetentionPolicy,
    ScheduleConfig,
    SnapshotConfig,
)

# Models
from db_snapshot.backup.models import (
    BackupRun,
    ObjectMetadata,
    RestoreRequest,
    SnapshotArtifact,
    SnapshotFormat,
)

# Adapters
from db_snapshot.adapters.base import DatabaseClient, ObjectStore
from db_snapshot.adapters.object_store import ObjectStoreGateway
from db_snapshot.adapters.postgres import AsyncPostgresAdapter

# Components
from db_snapshot.backup.connectivity import ConnectivityChecker
from db_snapshot.backup.producer import SnapshotProducer
from db_snapshot.backup.verifier import SnapshotVerifier
from db_snapshot.backup.retention import RetentionPruner
from db_snapshot.backup.workflow import BackupWorkflow
from db_snapshot.backup.scheduler import BackupScheduler
from db_snapshot.backup.restore import RestoreOrchestrator

# Errors
from db_snapshot.errors import (
    BackupError,
    ConfigError,
    ConnectivityError,
    DeleteError,
    DownloadError,
    DumpError,
    NotFoundError,
    RestoreStageError,
    SnapshotError,
    UploadError,
    VerificationError,
    VersionMismatchError,
)

__all__ = [
    # Config
    "load_config",
    "load_restore_request",
    "DatabaseConfig",
    "ObjectStoreConfig",
    "RetentionPolicy",
    "ScheduleConfig",
    "SnapshotConfig",
    # Models
    "BackupRun",
    "ObjectMetadata",
    "RestoreRequest",
    "SnapshotArtifact",
    "SnapshotFormat",
    # Adapters
    "DatabaseClient",
    "ObjectStore",
    "ObjectStoreGateway",
    "AsyncPostgresAdapter",
    # Components
    "ConnectivityChecker",
    "SnapshotProducer",
    "SnapshotVerifier",
    "RetentionPruner",
    "BackupWorkflow",
    "BackupScheduler",
    "RestoreOrchestrator",
    # Errors
    "SnapshotError",
    "ConfigError",
    "ConnectivityError",
    "VersionMismatchError",
    "BackupError",
    "DumpError",
    "UploadError",
    "VerificationError",
    "DownloadError",
    "NotFoundError",
    "DeleteError",
    "RestoreStageError",
]
