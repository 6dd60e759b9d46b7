"""Protocol definitions for the database and object store collaborators.

Defines ``DatabaseClient`` and ``ObjectStore``, the interfaces the backup
and restore components depend on.  All methods are ``async def``.

Usage:
    from db_snapshot.adapters.base import ObjectStore

    async def newest(store: ObjectStore, prefix: str) -> str | None:
        keys = [obj.key async for obj in store.list_objects(prefix)]
        return max(keys, default=None)
"""

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Protocol

from db_snapshot.backup.models import ObjectMetadata


class DatabaseClient(Protocol):
    """Scoped database connection used for checks and administrative DDL."""

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` and report whether it succeeded."""
        ...

    async def server_version(self) -> str:
        """Return the server version string (e.g., ``"16.2 (Debian 16.2-1)"``)."""
        ...

    async def recreate_database(self, name: str) -> None:
        """Drop ``name`` if it exists, then create it empty.

        Must be issued from a connection to a different database.
        """
        ...

    async def close(self) -> None:
        """Release every connection held by the client."""
        ...


class ObjectStore(Protocol):
    """Bucket-scoped object store operations."""

    async def bucket_exists(self, name: str) -> bool:
        """HEAD-probe a bucket.  ``False`` only when the bucket is absent."""
        ...

    async def ensure_bucket(self, name: str) -> None:
        """Create the bucket if it does not exist."""
        ...

    async def upload(self, local_path: Path, key: str) -> ObjectMetadata:
        """Stream a local file to ``key``.

        Raises:
            UploadError: On any transport or auth failure.
        """
        ...

    async def head_object(self, key: str) -> ObjectMetadata:
        """Fetch remote metadata.

        Raises:
            NotFoundError: If ``key`` does not exist.
        """
        ...

    def list_objects(self, prefix: str) -> AsyncIterator[ObjectMetadata]:
        """Lazily iterate every object under ``prefix`` across pages."""
        ...

    async def download(self, key: str, local_path: Path) -> None:
        """Stream ``key`` to ``local_path``.

        Raises:
            DownloadError: On transport failure or missing key.
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete ``key``.

        Raises:
            DeleteError: If the store rejects the deletion.
        """
        ...
