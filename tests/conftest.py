"""Shared fixtures: a frozen test config and an in-memory object store."""

from pathlib import Path

import pytest

from db_snapshot.backup.models import ObjectMetadata
from db_snapshot.config.models import (
    DatabaseConfig,
    ObjectStoreConfig,
    RetentionPolicy,
    ScheduleConfig,
    SnapshotConfig,
)
from db_snapshot.errors import DeleteError, DownloadError, NotFoundError

DB_PASSWORD = "s3cr3t-pw"
S3_SECRET = "s3-secret-key"


def make_config(work_dir: Path, **overrides) -> SnapshotConfig:
    """A complete config pointing at fake endpoints."""
    values = dict(
        database=DatabaseConfig(
            host="db.internal",
            port=5432,
            user="backup",
            password=DB_PASSWORD,
            database="appdb",
        ),
        object_store=ObjectStoreConfig(
            endpoint="http://minio:9000",
            region="us-east-1",
            bucket="backups",
            prefix="db/",
            access_key_id="AKIATEST",
            secret_access_key=S3_SECRET,
        ),
        retention=RetentionPolicy(retention_days=7),
        schedule=ScheduleConfig(cron="0 0 * * *", startup_delay_seconds=0),
        work_dir=work_dir,
    )
    values.update(overrides)
    return SnapshotConfig(**values)


class FakeObjectStore:
    """In-memory ``ObjectStore`` keyed by object key."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.buckets: set[str] = {"backups"}
        self.deleted: list[str] = []
        self.fail_delete: set[str] = set()
        self.list_calls = 0

    async def bucket_exists(self, name: str) -> bool:
        return name in self.buckets

    async def ensure_bucket(self, name: str) -> None:
        self.buckets.add(name)

    async def upload(self, local_path: Path, key: str) -> ObjectMetadata:
        data = Path(local_path).read_bytes()
        self.objects[key] = data
        return ObjectMetadata(key=key, size_bytes=len(data))

    async def head_object(self, key: str) -> ObjectMetadata:
        if key not in self.objects:
            raise NotFoundError("Object not found", key=key)
        return ObjectMetadata(key=key, size_bytes=len(self.objects[key]))

    async def list_objects(self, prefix: str):
        self.list_calls += 1
        for key in sorted(self.objects):
            if key.startswith(prefix):
                yield ObjectMetadata(key=key, size_bytes=len(self.objects[key]))

    async def download(self, key: str, local_path: Path) -> None:
        if key not in self.objects:
            raise DownloadError("Snapshot not found", key=key)
        Path(local_path).write_bytes(self.objects[key])

    async def delete(self, key: str) -> None:
        if key in self.fail_delete:
            raise DeleteError("Delete failed", key=key)
        del self.objects[key]
        self.deleted.append(key)


@pytest.fixture
def config(tmp_path: Path) -> SnapshotConfig:
    return make_config(tmp_path / "work")


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()
