"""Retention enforcement for remote snapshots.

Ages are derived from the timestamp embedded in each snapshot name, not
from object metadata, so pruning is independent of upload time and of
store clock skew.  Keys that do not follow the naming pattern are never
touched.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone

from db_snapshot.adapters.base import ObjectStore
from db_snapshot.backup.models import ObjectMetadata
from db_snapshot.backup.naming import file_name_from_key, parse_snapshot_timestamp
from db_snapshot.errors import DeleteError

logger = logging.getLogger(__name__)


async def list_snapshots(
    store: ObjectStore, prefix: str
) -> AsyncIterator[tuple[ObjectMetadata, datetime]]:
    """Yield ``(metadata, created_at)`` for every snapshot under ``prefix``.

    Objects whose name (after the prefix) does not match the snapshot
    naming pattern are skipped.
    """
    async for obj in store.list_objects(prefix):
        name = file_name_from_key(prefix, obj.key)
        created_at = parse_snapshot_timestamp(name) if name is not None else None
        if created_at is None:
            logger.debug("Ignoring non-snapshot object %s", obj.key)
            continue
        yield obj, created_at


class RetentionPruner:
    """Deletes remote snapshots older than the retention window."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def expired(
        self,
        prefix: str,
        retention_days: int,
        now: datetime | None = None,
    ) -> list[str]:
        """Keys strictly older than ``retention_days`` (boundary retained)."""
        if retention_days <= 0:
            return []
        now = now or datetime.now(timezone.utc)
        max_age = timedelta(days=retention_days)
        return [
            obj.key
            async for obj, created_at in list_snapshots(self._store, prefix)
            if now - created_at > max_age
        ]

    async def prune(
        self,
        prefix: str,
        retention_days: int,
        now: datetime | None = None,
    ) -> list[str]:
        """Delete expired snapshots under ``prefix``.

        The full listing is collected before any deletion.  A failed
        deletion is logged and skipped; it never aborts the pass.

        Args:
            prefix: Key prefix the snapshots live under.
            retention_days: Window in days; ``<= 0`` disables pruning.
            now: Reference instant (defaults to now, UTC).

        Returns:
            Keys that were deleted.
        """
        if retention_days <= 0:
            logger.debug("Retention disabled; nothing pruned")
            return []

        deleted: list[str] = []
        for key in await self.expired(prefix, retention_days, now):
            try:
                await self._store.delete(key)
            except DeleteError as e:
                logger.warning("Could not delete expired snapshot %s: %s", key, e.message)
                continue
            deleted.append(key)
            logger.info("Pruned expired snapshot %s", key)

        return deleted
