"""Snapshot production with ``pg_dump``.

Usage:
    producer = SnapshotProducer(config.database, prefix="db/")
    artifact = await producer.produce(Path("/tmp"))
    artifact.size_bytes      # > 0
"""

import logging
from datetime import datetime
from pathlib import Path

from db_snapshot.adapters.pg_tools import ToolRunner, connection_args, run_tool, tool_env
from db_snapshot.backup.models import SnapshotArtifact, SnapshotFormat
from db_snapshot.config.models import DatabaseConfig
from db_snapshot.errors import DumpError, redact

logger = logging.getLogger(__name__)


class SnapshotProducer:
    """Materializes a local snapshot file of the configured database.

    Args:
        database: Connection parameters of the database to dump.
        prefix: Object key prefix used to derive ``remote_key``.
        format: ``custom`` (portable archive, default) or ``plain`` SQL.
        runner: Coroutine running an argv (injectable for tests).
    """

    def __init__(
        self,
        database: DatabaseConfig,
        prefix: str = "",
        format: SnapshotFormat = SnapshotFormat.CUSTOM,
        runner: ToolRunner = run_tool,
    ) -> None:
        self._database = database
        self._prefix = prefix
        self._format = format
        self._runner = runner

    async def produce(
        self,
        output_dir: Path,
        created_at: datetime | None = None,
    ) -> SnapshotArtifact:
        """Dump the database into ``output_dir``.

        Creates exactly one file named after the snapshot instant.  The
        caller owns the file and decides when to delete it.

        Args:
            output_dir: Directory for the snapshot (created if missing).
            created_at: Snapshot instant (defaults to now, UTC).

        Returns:
            ``SnapshotArtifact`` with ``size_bytes`` populated.

        Raises:
            DumpError: If pg_dump cannot start, exits non-zero, or writes
                an empty file.  ``diagnostics`` holds the redacted stderr.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        artifact = SnapshotArtifact.new(
            output_dir, prefix=self._prefix, created_at=created_at, format=self._format
        )
        path = artifact.local_path
        secrets = [self._database.password.get_secret_value()]

        logger.info("Dumping %s to %s", self._database.redacted_url(), path)
        argv = [
            "pg_dump",
            *connection_args(self._database),
            f"--format={self._format.value}",
            "--file", str(path),
        ]
        try:
            result = await self._runner(argv, env=tool_env(self._database))
        except OSError as e:
            raise DumpError(
                "pg_dump could not be started", key=artifact.remote_key, cause=e
            ) from e

        diagnostics = redact(result.stderr.strip(), secrets)
        if not result.ok:
            raise DumpError(
                f"pg_dump exited with status {result.returncode}",
                diagnostics=diagnostics,
                local_path=path,
                key=artifact.remote_key,
            )

        size = path.stat().st_size if path.exists() else 0
        if size == 0:
            raise DumpError(
                "pg_dump produced an empty file",
                diagnostics=diagnostics,
                local_path=path,
                key=artifact.remote_key,
            )

        artifact.size_bytes = size
        logger.info("Snapshot %s written (%d bytes)", artifact.file_name, size)
        return artifact
