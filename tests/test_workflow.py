"""Tests for BackupWorkflow: one backup cycle end to end with fakes."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from conftest import DB_PASSWORD, S3_SECRET, FakeObjectStore

from db_snapshot.adapters.pg_tools import ToolResult
from db_snapshot.backup.connectivity import ConnectivityChecker
from db_snapshot.backup.models import SnapshotArtifact
from db_snapshot.backup.naming import snapshot_file_name
from db_snapshot.backup.producer import SnapshotProducer
from db_snapshot.backup.retention import RetentionPruner
from db_snapshot.backup.verifier import SnapshotVerifier
from db_snapshot.backup.workflow import BackupWorkflow
from db_snapshot.errors import DumpError, UploadError


class FakeDumpRunner:
    """Stands in for pg_dump and pg_restore."""

    def __init__(self, content: bytes = b"PGDMP archive", returncode: int = 0, stderr: str = ""):
        self.content = content
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[list[str]] = []

    async def __call__(self, argv, env=None):
        self.calls.append(argv)
        if argv[0] == "pg_dump":
            Path(argv[argv.index("--file") + 1]).write_bytes(self.content)
            return ToolResult(self.returncode, "", self.stderr)
        return ToolResult(0, "", "")


def _checker(ok: bool = True) -> MagicMock:
    checker = MagicMock(spec=ConnectivityChecker)
    checker.check = AsyncMock(return_value=ok)
    return checker


def _workflow(config, store, runner=None, checker=None, pruner=None) -> BackupWorkflow:
    runner = runner or FakeDumpRunner()
    return BackupWorkflow(
        config=config,
        store=store,
        checker=checker or _checker(),
        producer=SnapshotProducer(config.database, prefix="db/", runner=runner),
        verifier=SnapshotVerifier(store, runner=runner),
        pruner=pruner or RetentionPruner(store),
    )


def _local_files(config) -> list[Path]:
    return list(config.work_dir.glob("*")) if config.work_dir.exists() else []


class TestHappyPath:
    async def test_uploads_verifies_and_cleans_up(self, config, store):
        run = await _workflow(config, store).run(trigger="manual")

        assert run.succeeded
        assert run.failed_stage is None
        assert run.connectivity_ok and run.uploaded and run.verified
        assert run.snapshot.remote_key in store.objects
        assert store.objects[run.snapshot.remote_key] == b"PGDMP archive"
        assert not run.snapshot.local_path.exists()
        assert _local_files(config) == []

    async def test_prunes_expired_after_upload(self, config, store):
        old = "db/" + snapshot_file_name(datetime.now(timezone.utc) - timedelta(days=30))
        recent = "db/" + snapshot_file_name(datetime.now(timezone.utc) - timedelta(days=1))
        store.objects.update({old: b"x", recent: b"y"})

        run = await _workflow(config, store).run()

        assert run.succeeded
        assert run.pruned == [old]
        assert recent in store.objects
        assert run.snapshot.remote_key in store.objects

    async def test_records_trigger(self, config, store):
        run = await _workflow(config, store).run(trigger="startup")
        assert run.trigger == "startup"


class TestVerificationFailure:
    async def test_empty_snapshot_is_kept_and_prune_skipped(self, config, store):
        """A 0-byte snapshot fails verification: file kept, no prune."""
        config.work_dir.mkdir(parents=True)
        artifact = SnapshotArtifact.new(config.work_dir, prefix="db/")
        artifact.local_path.write_bytes(b"")
        producer = MagicMock(spec=SnapshotProducer)
        producer.produce = AsyncMock(return_value=artifact)
        pruner = MagicMock(spec=RetentionPruner)
        pruner.prune = AsyncMock(return_value=[])

        workflow = BackupWorkflow(
            config=config,
            store=store,
            checker=_checker(),
            producer=producer,
            verifier=SnapshotVerifier(store, runner=FakeDumpRunner()),
            pruner=pruner,
        )
        run = await workflow.run()

        assert not run.succeeded
        assert run.uploaded
        assert run.verified is False
        assert run.failed_stage == "verify"
        assert artifact.local_path.exists()
        pruner.prune.assert_not_awaited()


class TestStageFailures:
    async def test_connectivity_failure_skips_dump(self, config, store):
        runner = FakeDumpRunner()
        run = await _workflow(config, store, runner=runner, checker=_checker(False)).run()

        assert run.failed_stage == "connectivity"
        assert run.snapshot is None
        assert runner.calls == []
        assert store.objects == {}

    async def test_dump_failure_keeps_partial_file(self, config, store):
        runner = FakeDumpRunner(content=b"partial", returncode=1, stderr="out of disk")

        run = await _workflow(config, store, runner=runner).run()

        assert run.failed_stage == "dump"
        assert "status 1" in run.error
        assert store.objects == {}
        assert len(_local_files(config)) == 1

    async def test_dump_failure_discards_when_configured(self, config, store):
        config = config.model_copy(update={"retain_failed_snapshots": False})
        runner = FakeDumpRunner(content=b"partial", returncode=1)

        run = await _workflow(config, store, runner=runner).run()

        assert run.failed_stage == "dump"
        assert _local_files(config) == []

    async def test_upload_failure_keeps_file_and_skips_verify(self, config, store):
        store.upload = AsyncMock(side_effect=UploadError("Upload failed", key="k"))
        store.head_object = AsyncMock()

        run = await _workflow(config, store).run()

        assert run.failed_stage == "upload"
        assert not run.uploaded
        assert run.snapshot.local_path.exists()
        store.head_object.assert_not_awaited()

    async def test_upload_failure_discards_when_configured(self, config, store):
        config = config.model_copy(update={"retain_failed_snapshots": False})
        store.upload = AsyncMock(side_effect=UploadError("Upload failed", key="k"))

        run = await _workflow(config, store).run()

        assert run.failed_stage == "upload"
        assert not run.snapshot.local_path.exists()

    async def test_unexpected_exception_is_recorded(self, config, store):
        store.upload = AsyncMock(side_effect=RuntimeError("boom"))

        run = await _workflow(config, store).run()

        assert run.failed_stage == "upload"
        assert run.error == "RuntimeError: boom"

    async def test_prune_failure_is_recorded(self, config, store):
        pruner = MagicMock(spec=RetentionPruner)
        pruner.prune = AsyncMock(side_effect=RuntimeError("listing failed"))

        run = await _workflow(config, store, pruner=pruner).run()

        assert run.failed_stage == "prune"
        assert run.uploaded and run.verified

    async def test_error_is_redacted(self, config, store):
        store.upload = AsyncMock(
            side_effect=UploadError(f"denied for {S3_SECRET} / {DB_PASSWORD}", key="k")
        )

        run = await _workflow(config, store).run()

        assert S3_SECRET not in run.error
        assert DB_PASSWORD not in run.error
        assert "****" in run.error


class TestFromConfig:
    def test_wires_components(self, config):
        store = FakeObjectStore()
        workflow = BackupWorkflow.from_config(config, store)
        assert isinstance(workflow._producer, SnapshotProducer)
        assert isinstance(workflow._verifier, SnapshotVerifier)
        assert isinstance(workflow._pruner, RetentionPruner)
        assert workflow._store is store

    async def test_dump_error_path_is_used_without_snapshot(self, config, store, tmp_path):
        leftover = tmp_path / "leftover.sql"
        leftover.write_bytes(b"x")
        producer = MagicMock(spec=SnapshotProducer)
        producer.produce = AsyncMock(
            side_effect=DumpError("pg_dump exited with status 1", local_path=leftover)
        )
        config = config.model_copy(update={"retain_failed_snapshots": False})

        workflow = BackupWorkflow(
            config=config,
            store=store,
            checker=_checker(),
            producer=producer,
            verifier=MagicMock(spec=SnapshotVerifier),
            pruner=MagicMock(spec=RetentionPruner),
        )
        run = await workflow.run()

        assert run.failed_stage == "dump"
        assert not leftover.exists()
