"""Destructive restore of a remote snapshot into a fresh database.

The restore is a linear, operator-invoked sequence.  Each stage raises
``RestoreStageError`` on failure and nothing after it runs:

1. ``download``  -- fetch the snapshot into the work directory.
2. ``recreate``  -- ``DROP DATABASE IF EXISTS`` + ``CREATE DATABASE`` for
   the target, issued from an administrative database.
3. ``restore``   -- ``pg_restore`` (custom archives) or ``psql`` (plain).

No rollback is attempted if stage 3 fails: the target is left freshly
created and empty.

Usage:
    orchestrator = RestoreOrchestrator(config, ObjectStoreGateway(config.object_store))
    await orchestrator.run(RestoreRequest(remote_key="db/backup-...sql"))
"""

import logging
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from db_snapshot.adapters.base import DatabaseClient, ObjectStore
from db_snapshot.adapters.pg_tools import ToolRunner, connection_args, run_tool, tool_env
from db_snapshot.adapters.postgres import AsyncPostgresAdapter
from db_snapshot.backup.models import RestoreRequest, SnapshotFormat
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import DownloadError, RestoreStageError, redact

logger = logging.getLogger(__name__)

# First bytes of every pg_dump custom-format archive
CUSTOM_ARCHIVE_MAGIC = b"PGDMP"


def detect_format(path: Path) -> SnapshotFormat:
    """Tell custom archives from plain SQL dumps by their header."""
    with open(path, "rb") as f:
        header = f.read(len(CUSTOM_ARCHIVE_MAGIC))
    return SnapshotFormat.CUSTOM if header == CUSTOM_ARCHIVE_MAGIC else SnapshotFormat.PLAIN


class RestoreOrchestrator:
    """Downloads a snapshot, recreates the target database, restores into it.

    Args:
        config: Process configuration.
        store: Object store holding the snapshot.
        admin_factory: Builds an autocommit ``DatabaseClient`` connected to
            the administrative database (defaults to ``AsyncPostgresAdapter``).
        runner: Coroutine running an argv (injectable for tests).
    """

    def __init__(
        self,
        config: SnapshotConfig,
        store: ObjectStore,
        admin_factory: Callable[[], DatabaseClient] | None = None,
        runner: ToolRunner = run_tool,
    ) -> None:
        self._config = config
        self._store = store
        self._admin_factory = admin_factory or (
            lambda: AsyncPostgresAdapter(
                config.database,
                database=config.database.admin_database,
                autocommit=True,
            )
        )
        self._runner = runner

    async def run(self, request: RestoreRequest) -> None:
        """Execute download, recreate and restore in order.

        Raises:
            RestoreStageError: At whichever stage fails.
        """
        local_path = await self.download(request.remote_key)
        await self.recreate()
        await self.restore(local_path)
        local_path.unlink(missing_ok=True)
        logger.info(
            "Database %s restored from %s", self._config.database.database, request.remote_key
        )

    async def download(self, remote_key: str) -> Path:
        """Stage 1: fetch ``remote_key`` into the work directory."""
        work_dir = Path(self._config.work_dir)
        local_path = work_dir / PurePosixPath(remote_key).name

        logger.info("Downloading snapshot %s", remote_key)
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            await self._store.download(remote_key, local_path)
        except OSError as e:
            raise RestoreStageError(
                f"Cannot write to work directory {work_dir}: {e.strerror or e}",
                stage="download",
                key=remote_key,
                cause=e,
            ) from e
        except DownloadError as e:
            raise RestoreStageError(
                f"Failed to download snapshot: {e.message}",
                stage="download",
                key=remote_key,
                cause=e,
            ) from e
        logger.info("Downloaded snapshot to %s", local_path)
        return local_path

    async def recreate(self) -> None:
        """Stage 2: drop and recreate the target from the admin database."""
        name = self._config.database.database
        admin_db = self._config.database.admin_database
        logger.info("Dropping and recreating database %s (via %s)", name, admin_db)

        admin = self._admin_factory()
        try:
            await admin.recreate_database(name)
        except Exception as e:
            raise RestoreStageError(
                f"Failed to drop and recreate database {name}: {type(e).__name__}",
                stage="recreate",
                cause=e,
            ) from e
        finally:
            await admin.close()
        logger.info("Database %s created", name)

    async def restore(self, local_path: Path) -> None:
        """Stage 3: load ``local_path`` into the freshly created database."""
        database = self._config.database
        snapshot_format = detect_format(local_path)

        if snapshot_format == SnapshotFormat.CUSTOM:
            argv = ["pg_restore", *connection_args(database), "--no-owner", str(local_path)]
        else:
            argv = [
                "psql",
                *connection_args(database),
                "--set", "ON_ERROR_STOP=1",
                "--file", str(local_path),
            ]

        logger.info("Restoring %s archive into %s", snapshot_format.value, database.database)
        try:
            result = await self._runner(argv, env=tool_env(database))
        except OSError as e:
            raise RestoreStageError(
                f"{argv[0]} could not be started", stage="restore", cause=e
            ) from e

        if not result.ok:
            detail = redact(result.stderr.strip(), self._config.secrets)
            raise RestoreStageError(
                f"{argv[0]} exited with status {result.returncode}: {detail}",
                stage="restore",
            )
