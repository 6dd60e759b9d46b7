"""Snapshot data model and naming.

The workflow components live in the submodules (``connectivity``,
``producer``, ``verifier``, ``retention``, ``workflow``, ``scheduler``,
``restore``) and are re-exported from ``db_snapshot``.

Usage:
    from db_snapshot.backup import SnapshotArtifact, snapshot_file_name
"""

from db_snapshot.backup.models import (
    BackupRun,
    ObjectMetadata,
    RestoreRequest,
    SnapshotArtifact,
    SnapshotFormat,
)
from db_snapshot.backup.naming import (
    parse_snapshot_timestamp,
    remote_key_for,
    snapshot_file_name,
)

__all__ = [
    "BackupRun",
    "ObjectMetadata",
    "RestoreRequest",
    "SnapshotArtifact",
    "SnapshotFormat",
    "parse_snapshot_timestamp",
    "remote_key_for",
    "snapshot_file_name",
]
