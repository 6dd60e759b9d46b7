"""Preflight checks against the object store and the database.

Usage:
    checker = ConnectivityChecker(config, store)
    await checker.preflight()          # startup gate, raises on failure
    ok = await checker.check()         # per-cycle probe, never raises
"""

import logging
from collections.abc import Callable

from db_snapshot.adapters.base import DatabaseClient, ObjectStore
from db_snapshot.adapters.pg_tools import dump_tool_major_version
from db_snapshot.adapters.postgres import AsyncPostgresAdapter, parse_major_version
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import ConnectivityError, VersionMismatchError

logger = logging.getLogger(__name__)


class ConnectivityChecker:
    """Verifies reachability and version compatibility before expensive work.

    Every database probe uses a fresh client that is closed on all exit
    paths.

    Args:
        config: Process configuration.
        store: Object store used for the bucket probe.
        db_factory: Builds a ``DatabaseClient`` for the target database
            (defaults to ``AsyncPostgresAdapter``).
    """

    def __init__(
        self,
        config: SnapshotConfig,
        store: ObjectStore,
        db_factory: Callable[[], DatabaseClient] | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._db_factory = db_factory or (lambda: AsyncPostgresAdapter(config.database))

    async def check_storage(self, bucket: str | None = None) -> bool:
        """HEAD-probe the bucket; ``True`` only if it exists and is reachable."""
        bucket = bucket or self._config.object_store.bucket
        try:
            reachable = await self._store.bucket_exists(bucket)
        except Exception as e:
            logger.warning("Object store unreachable (bucket=%s): %s", bucket, type(e).__name__)
            return False
        if not reachable:
            logger.warning("Bucket %s does not exist", bucket)
        return reachable

    async def check_database(self) -> bool:
        """Open a connection, run ``SELECT 1``, close it."""
        db = self._db_factory()
        try:
            return await db.test_connection()
        except Exception as e:
            logger.warning(
                "Database unreachable (%s): %s",
                self._config.database.redacted_url(),
                type(e).__name__,
            )
            return False
        finally:
            await db.close()

    async def check(self) -> bool:
        """Per-cycle probe of both the store and the database."""
        storage_ok = await self.check_storage()
        database_ok = await self.check_database()
        return storage_ok and database_ok

    async def expected_major_version(self) -> int:
        """Required server major version.

        ``POSTGRES_MAJOR_VERSION`` when configured, otherwise the major
        version of the local ``pg_dump``.
        """
        if self._config.postgres_major_version is not None:
            return self._config.postgres_major_version
        return await dump_tool_major_version()

    async def check_database_version(self, expected_major: int) -> None:
        """Compare the server major version with ``expected_major``.

        Raises:
            ConnectivityError: If the version cannot be read.
            VersionMismatchError: If the major versions differ.
        """
        db = self._db_factory()
        try:
            server_version = await db.server_version()
        except Exception as e:
            raise ConnectivityError(
                "Could not read database server version", stage="version", cause=e
            ) from e
        finally:
            await db.close()

        actual = parse_major_version(server_version)
        if actual != expected_major:
            raise VersionMismatchError(expected_major, actual, server_version)
        logger.info("Database server version %s is compatible", server_version)

    async def preflight(self, expected_major: int | None = None) -> None:
        """Startup gate run once before the scheduler starts.

        Ensures the bucket exists (creating it if absent), that the database
        answers, and that its major version matches.

        Raises:
            ConnectivityError: If the store or database is unreachable.
            VersionMismatchError: On a major version mismatch.
        """
        bucket = self._config.object_store.bucket
        await self._store.ensure_bucket(bucket)

        if not await self.check_database():
            raise ConnectivityError(
                f"Database {self._config.database.redacted_url()} is not reachable",
                stage="database",
            )

        if expected_major is None:
            try:
                expected_major = await self.expected_major_version()
            except (OSError, ValueError) as e:
                raise ConnectivityError(
                    "Could not determine the pg_dump version", stage="version", cause=e
                ) from e
        await self.check_database_version(expected_major)
