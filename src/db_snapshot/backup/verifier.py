"""Integrity verification of an uploaded snapshot."""

import logging
from pathlib import Path

from db_snapshot.adapters.base import ObjectStore
from db_snapshot.adapters.pg_tools import ToolRunner, run_tool
from db_snapshot.backup.models import SnapshotFormat
from db_snapshot.errors import NotFoundError

logger = logging.getLogger(__name__)


class SnapshotVerifier:
    """Confirms that a local snapshot is intact and matches its remote copy.

    ``verify`` returns ``False`` for every expected mismatch and only raises
    for infrastructure failures (e.g., the store rejecting credentials or
    ``pg_restore`` not being installed).
    """

    def __init__(self, store: ObjectStore, runner: ToolRunner = run_tool) -> None:
        self._store = store
        self._runner = runner

    async def verify(
        self,
        local_path: Path,
        remote_key: str,
        format: SnapshotFormat = SnapshotFormat.CUSTOM,
    ) -> bool:
        """Check a snapshot in three steps.

        1. The local file exists and is non-empty.
        2. Custom archives list cleanly with ``pg_restore --list`` (catches
           truncation a size check would miss).  Plain dumps skip this.
        3. The remote object size equals the local size exactly.

        Args:
            local_path: Local snapshot file.
            remote_key: Key the file was uploaded to.
            format: Dump format of the file.

        Returns:
            ``True`` only if every check passes.
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            logger.warning("Verification failed: %s does not exist", local_path)
            return False

        local_size = local_path.stat().st_size
        if local_size == 0:
            logger.warning("Verification failed: %s is empty", local_path)
            return False

        if format == SnapshotFormat.CUSTOM:
            listing = await self._runner(["pg_restore", "--list", str(local_path)])
            if not listing.ok:
                logger.warning(
                    "Verification failed: archive %s is unreadable (%s)",
                    local_path.name,
                    listing.stderr.strip()[:200],
                )
                return False

        try:
            remote = await self._store.head_object(remote_key)
        except NotFoundError:
            logger.warning("Verification failed: %s missing from object store", remote_key)
            return False

        if remote.size_bytes != local_size:
            logger.warning(
                "Verification failed: size mismatch for %s (local=%d, remote=%d)",
                remote_key,
                local_size,
                remote.size_bytes,
            )
            return False

        logger.info("Verified %s (%d bytes)", remote_key, local_size)
        return True
