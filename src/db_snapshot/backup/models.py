"""Data models for snapshots, remote objects, and workflow runs.

Usage:
    from db_snapshot.backup.models import SnapshotArtifact, BackupRun

    artifact = SnapshotArtifact.new(work_dir, prefix="db/")
    run = BackupRun()
    run.snapshot = artifact
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from db_snapshot.backup.naming import (
    remote_key_for,
    snapshot_file_name,
    snapshot_timestamp,
)


class SnapshotFormat(str, Enum):
    """pg_dump output format."""

    PLAIN = "plain"
    CUSTOM = "custom"


class SnapshotArtifact(BaseModel):
    """A locally produced snapshot and its destination key."""

    created_at: datetime
    file_name: str
    local_path: Path
    remote_key: str
    size_bytes: int = 0                             # populated after the dump is written
    format: SnapshotFormat = SnapshotFormat.CUSTOM

    @classmethod
    def new(
        cls,
        output_dir: Path,
        prefix: str = "",
        created_at: datetime | None = None,
        format: SnapshotFormat = SnapshotFormat.CUSTOM,
    ) -> "SnapshotArtifact":
        """Allocate a named artifact for a snapshot taken now."""
        created_at = snapshot_timestamp(created_at)
        file_name = snapshot_file_name(created_at)
        return cls(
            created_at=created_at,
            file_name=file_name,
            local_path=Path(output_dir) / file_name,
            remote_key=remote_key_for(prefix, file_name),
            format=format,
        )


class ObjectMetadata(BaseModel):
    """Metadata of a remote object (HEAD or listing entry)."""

    key: str
    size_bytes: int
    last_modified: datetime | None = None


class BackupRun(BaseModel):
    """Ephemeral record of one backup cycle. Never persisted."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    trigger: str = "manual"
    snapshot: SnapshotArtifact | None = None
    connectivity_ok: bool = False
    uploaded: bool = False
    verified: bool = False
    pruned: list[str] = Field(default_factory=list)
    failed_stage: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.verified


class RestoreRequest(BaseModel):
    """Which remote snapshot to restore."""

    remote_key: str
