"""S3-compatible object store gateway.

Provides ``ObjectStoreGateway``, an implementation of the ``ObjectStore``
protocol on top of ``aioboto3``.  Every operation opens a short-lived
client bound to the configured endpoint with path-style addressing, which
works against AWS S3 as well as MinIO and other S3-compatible stores.

Usage:
    from db_snapshot.adapters.object_store import ObjectStoreGateway

    store = ObjectStoreGateway(config.object_store)
    await store.ensure_bucket(config.object_store.bucket)
    meta = await store.upload(Path("/tmp/backup.sql"), "db/backup.sql")
    async for obj in store.list_objects("db/"):
        print(obj.key, obj.size_bytes)
"""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from db_snapshot.backup.models import ObjectMetadata
from db_snapshot.config.models import ObjectStoreConfig
from db_snapshot.errors import (
    ConnectivityError,
    DeleteError,
    DownloadError,
    NotFoundError,
    UploadError,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    """Whether a botocore ``ClientError`` denotes a missing bucket or key."""
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in _NOT_FOUND_CODES or status == 404


class ObjectStoreGateway:
    """aioboto3 implementation of the ``ObjectStore`` protocol.

    Object operations target ``config.bucket``; bucket operations take the
    bucket name explicitly.

    Args:
        config: Endpoint, region, bucket and credentials.
        session: Optional ``aioboto3.Session`` (one is created by default).
    """

    def __init__(
        self,
        config: ObjectStoreConfig,
        session: aioboto3.Session | None = None,
    ) -> None:
        self._config = config
        self._bucket = config.bucket
        self._session = session or aioboto3.Session()

    def _client(self):
        """Async context manager yielding an S3 client."""
        return self._session.client(
            "s3",
            endpoint_url=self._config.endpoint,
            region_name=self._config.region,
            aws_access_key_id=self._config.access_key_id,
            aws_secret_access_key=self._config.secret_access_key.get_secret_value(),
            config=BotoConfig(s3={"addressing_style": "path"}),
        )

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    async def bucket_exists(self, name: str) -> bool:
        """HEAD-probe ``name``.

        Returns:
            ``False`` if the bucket does not exist.

        Raises:
            ClientError, BotoCoreError: For any other failure (auth,
                transport).
        """
        async with self._client() as s3:
            try:
                await s3.head_bucket(Bucket=name)
            except ClientError as e:
                if _is_not_found(e):
                    return False
                raise
        return True

    async def ensure_bucket(self, name: str) -> None:
        """Create ``name`` if a HEAD probe reports it missing.

        Check-then-create is not atomic; bucket lifecycle is operator-managed.

        Raises:
            ConnectivityError: If the bucket cannot be probed or created.
        """
        try:
            if await self.bucket_exists(name):
                return
            async with self._client() as s3:
                await s3.create_bucket(Bucket=name)
        except (ClientError, BotoCoreError) as e:
            raise ConnectivityError(
                f"Object store bucket '{name}' is not reachable", stage="storage", cause=e
            ) from e
        logger.info("Created bucket %s", name)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def upload(self, local_path: Path, key: str) -> ObjectMetadata:
        """Stream ``local_path`` to ``key`` (multipart for large files).

        Raises:
            UploadError: On any transport or auth failure.
        """
        local_path = Path(local_path)
        try:
            size = local_path.stat().st_size
            async with self._client() as s3:
                await s3.upload_file(str(local_path), self._bucket, key)
        except Exception as e:
            raise UploadError("Upload failed", key=key, cause=e) from e
        return ObjectMetadata(key=key, size_bytes=size)

    async def head_object(self, key: str) -> ObjectMetadata:
        """Fetch size and modification time of ``key``.

        Raises:
            NotFoundError: If ``key`` does not exist.
        """
        async with self._client() as s3:
            try:
                response = await s3.head_object(Bucket=self._bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    raise NotFoundError("Object not found", key=key, cause=e) from e
                raise
        return ObjectMetadata(
            key=key,
            size_bytes=response["ContentLength"],
            last_modified=response.get("LastModified"),
        )

    async def list_objects(self, prefix: str) -> AsyncIterator[ObjectMetadata]:
        """Iterate every object under ``prefix``.

        Pages are fetched lazily; each call starts a new listing from the
        beginning.
        """
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield ObjectMetadata(
                        key=obj["Key"],
                        size_bytes=obj.get("Size", 0),
                        last_modified=obj.get("LastModified"),
                    )

    async def download(self, key: str, local_path: Path) -> None:
        """Stream ``key`` into ``local_path``.

        A partially written file is removed on failure.

        Raises:
            DownloadError: On transport failure or missing key.
        """
        local_path = Path(local_path)
        try:
            async with self._client() as s3:
                await s3.download_file(self._bucket, key, str(local_path))
        except Exception as e:
            local_path.unlink(missing_ok=True)
            if isinstance(e, ClientError) and _is_not_found(e):
                raise DownloadError("Snapshot not found", key=key, cause=e) from e
            raise DownloadError("Download failed", key=key, cause=e) from e

    async def delete(self, key: str) -> None:
        """Delete ``key``.

        Raises:
            DeleteError: If the store rejects the deletion.
        """
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise DeleteError("Delete failed", key=key, cause=e) from e
