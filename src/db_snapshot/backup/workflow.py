"""One backup cycle: check, dump, upload, verify, prune, clean up.

Usage:
    workflow = BackupWorkflow.from_config(config)
    run = await workflow.run(trigger="manual")
    if not run.succeeded:
        print(run.failed_stage, run.error)
"""

import logging
from pathlib import Path

from db_snapshot.adapters.base import ObjectStore
from db_snapshot.adapters.object_store import ObjectStoreGateway
from db_snapshot.backup.connectivity import ConnectivityChecker
from db_snapshot.backup.models import BackupRun
from db_snapshot.backup.producer import SnapshotProducer
from db_snapshot.backup.retention import RetentionPruner
from db_snapshot.backup.verifier import SnapshotVerifier
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import (
    ConnectivityError,
    DumpError,
    SnapshotError,
    VerificationError,
    redact,
)

logger = logging.getLogger(__name__)


class BackupWorkflow:
    """Runs the backup cycle and reports its outcome as a ``BackupRun``.

    Failures never propagate out of ``run``: they are recorded on the
    returned ``BackupRun`` with the failing stage and a redacted message,
    so a scheduler can carry on with its next trigger.

    The local snapshot is deleted only after both upload and verification
    succeed.  On failure it is kept for inspection unless
    ``config.retain_failed_snapshots`` is false.
    """

    def __init__(
        self,
        config: SnapshotConfig,
        store: ObjectStore,
        checker: ConnectivityChecker,
        producer: SnapshotProducer,
        verifier: SnapshotVerifier,
        pruner: RetentionPruner,
    ) -> None:
        self._config = config
        self._store = store
        self._checker = checker
        self._producer = producer
        self._verifier = verifier
        self._pruner = pruner

    @classmethod
    def from_config(
        cls,
        config: SnapshotConfig,
        store: ObjectStore | None = None,
    ) -> "BackupWorkflow":
        """Wire the default components for ``config``."""
        store = store or ObjectStoreGateway(config.object_store)
        return cls(
            config=config,
            store=store,
            checker=ConnectivityChecker(config, store),
            producer=SnapshotProducer(
                config.database,
                prefix=config.object_store.prefix,
                format=config.dump_format,
            ),
            verifier=SnapshotVerifier(store),
            pruner=RetentionPruner(store),
        )

    async def run(self, trigger: str = "manual") -> BackupRun:
        """Execute one cycle.

        Args:
            trigger: What started the cycle (``"startup"``, ``"schedule"``,
                ``"manual"``); recorded on the run for logging.

        Returns:
            The completed ``BackupRun``.
        """
        run = BackupRun(trigger=trigger)
        stage = "connectivity"
        logger.info("Backup cycle started (trigger=%s)", trigger)

        try:
            run.connectivity_ok = await self._checker.check()
            if not run.connectivity_ok:
                raise ConnectivityError("Object store or database unreachable")

            stage = "dump"
            run.snapshot = await self._producer.produce(self._config.work_dir)
            snapshot = run.snapshot

            stage = "upload"
            await self._store.upload(snapshot.local_path, snapshot.remote_key)
            run.uploaded = True
            logger.info("Uploaded %s", snapshot.remote_key)

            stage = "verify"
            run.verified = await self._verifier.verify(
                snapshot.local_path, snapshot.remote_key, snapshot.format
            )
            if not run.verified:
                raise VerificationError("Snapshot failed verification", key=snapshot.remote_key)

            stage = "prune"
            run.pruned = await self._pruner.prune(
                self._config.object_store.prefix,
                self._config.retention.retention_days,
            )
        except SnapshotError as e:
            self._record_failure(run, e.stage, str(e), getattr(e, "diagnostics", ""))
            self._discard(run, e)
            return run
        except Exception as e:
            self._record_failure(run, stage, f"{type(e).__name__}: {e}")
            self._discard(run, e)
            return run

        self._remove(snapshot.local_path)
        logger.info(
            "Backup cycle completed: %s (%d bytes, %d pruned)",
            snapshot.remote_key,
            snapshot.size_bytes,
            len(run.pruned),
        )
        return run

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_failure(
        self, run: BackupRun, stage: str, message: str, diagnostics: str = ""
    ) -> None:
        secrets = self._config.secrets
        run.failed_stage = stage
        run.error = redact(message, secrets)
        logger.error("Backup failed at stage %s: %s", stage, run.error)
        if diagnostics:
            logger.error("Tool output: %s", redact(diagnostics, secrets))

    def _discard(self, run: BackupRun, error: BaseException) -> None:
        """Apply the failed-artifact policy to whatever was written locally."""
        path: Path | None = None
        if run.snapshot is not None:
            path = run.snapshot.local_path
        elif isinstance(error, DumpError):
            path = error.local_path
        if path is None or not path.exists():
            return

        if self._config.retain_failed_snapshots:
            logger.warning("Keeping failed snapshot %s for inspection", path)
        else:
            self._remove(path)

    def _remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)
        logger.info("Removed local snapshot %s", path)
