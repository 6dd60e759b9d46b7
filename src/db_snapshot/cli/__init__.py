"""CLI for scheduled PostgreSQL snapshots to S3-compatible storage.

Configuration comes from environment variables (and ``.env``); see
``db_snapshot.config.loader`` for the full list.

Usage:
    db-snapshot serve
    db-snapshot backup
    db-snapshot list
    db-snapshot prune --days 14
    db-snapshot restore backup-2026-01-15T03-00-00-123Z.sql --yes
    S3_RESTORE_FILE=backup-2026-01-15T03-00-00-123Z.sql db-snapshot restore

Commands:
    serve    - Preflight checks, then back up on schedule until SIGINT/SIGTERM
    backup   - Run one backup cycle now
    list     - List remote snapshots
    prune    - Delete remote snapshots older than the retention window
    restore  - Drop, recreate and restore the database from a remote snapshot

Exit codes:
    0 on success or graceful shutdown; 1 on missing configuration, failed
    preflight (unreachable store/database, version mismatch), failed
    backup/restore.
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from db_snapshot.adapters.object_store import ObjectStoreGateway
from db_snapshot.backup.connectivity import ConnectivityChecker
from db_snapshot.backup.restore import RestoreOrchestrator
from db_snapshot.backup.retention import RetentionPruner, list_snapshots
from db_snapshot.backup.scheduler import BackupScheduler
from db_snapshot.backup.workflow import BackupWorkflow
from db_snapshot.config.loader import build_config, load_restore_request, load_settings
from db_snapshot.config.models import SnapshotConfig
from db_snapshot.errors import (
    ConfigError,
    ConnectivityError,
    RestoreStageError,
    VersionMismatchError,
)
from db_snapshot.log import configure_logging

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _load(args: argparse.Namespace) -> SnapshotConfig | None:
    """Load config and set up logging; ``None`` (after reporting) on error."""
    try:
        settings = load_settings(args.env_file)
        redactor = configure_logging(args.log_level or settings.log_level)
        config = build_config(settings)
    except ConfigError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return None
    redactor.add_secrets(config.secrets)
    return config


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_serve(config: SnapshotConfig) -> int:
    """Preflight, then run the scheduler until a termination signal."""
    store = ObjectStoreGateway(config.object_store)
    checker = ConnectivityChecker(config, store)

    try:
        await checker.preflight()
    except (ConnectivityError, VersionMismatchError) as e:
        console.print(f"[bold red]x[/bold red] Preflight failed ({e.stage}): {e}")
        return 1

    scheduler = BackupScheduler(BackupWorkflow.from_config(config, store), config.schedule)
    try:
        await scheduler.serve()
    except ValueError as e:
        console.print(f"[bold red]x[/bold red] Invalid BACKUP_SCHEDULE: {e}")
        return 1
    return 0


async def _async_backup(config: SnapshotConfig) -> int:
    """Run one backup cycle."""
    run = await BackupWorkflow.from_config(config).run(trigger="manual")

    if run.succeeded:
        console.print(
            f"[bold green]v[/bold green] Uploaded and verified "
            f"[cyan]{run.snapshot.remote_key}[/cyan] "
            f"({_format_size(run.snapshot.size_bytes)})"
        )
        if run.pruned:
            console.print(f"  Pruned: {', '.join(run.pruned)}")
        return 0

    console.print(
        f"[bold red]x[/bold red] Backup failed at stage "
        f"[bold]{run.failed_stage}[/bold]: {run.error}"
    )
    return 1


async def _async_list(config: SnapshotConfig) -> int:
    """List snapshots under the configured prefix."""
    store = ObjectStoreGateway(config.object_store)
    prefix = config.object_store.prefix
    now = datetime.now(timezone.utc)

    table = Table(
        title=f"Snapshots in {config.object_store.bucket}/{prefix}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Key")
    table.add_column("Created (UTC)", style="dim")
    table.add_column("Age", justify="right")
    table.add_column("Size", justify="right")

    retention_days = config.retention.retention_days
    count = 0
    async for obj, created_at in list_snapshots(store, prefix):
        age = now - created_at
        expired = retention_days > 0 and age.total_seconds() > retention_days * 86400
        table.add_row(
            f"[yellow]{obj.key}[/yellow]" if expired else obj.key,
            created_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"{age.days}d",
            _format_size(obj.size_bytes),
        )
        count += 1

    console.print(table)
    if retention_days > 0:
        console.print(f"[dim]Retention: {retention_days} days (expired in yellow)[/dim]")
    console.print(f"[dim]{count} snapshot(s)[/dim]")
    return 0


async def _async_prune(config: SnapshotConfig, days: int | None) -> int:
    """Run one retention pass."""
    retention_days = config.retention.retention_days if days is None else days
    if retention_days <= 0:
        console.print("[yellow]Retention disabled (BACKUP_RETENTION_DAYS=0).[/yellow]")
        return 0

    pruner = RetentionPruner(ObjectStoreGateway(config.object_store))
    deleted = await pruner.prune(config.object_store.prefix, retention_days)

    console.print(
        f"[bold green]v[/bold green] Pruned {len(deleted)} snapshot(s) "
        f"older than {retention_days} days"
    )
    for key in deleted:
        console.print(f"    - {key}")
    return 0


async def _async_restore(config: SnapshotConfig, args: argparse.Namespace) -> int:
    """Destructively restore the database from a remote snapshot."""
    try:
        request = load_restore_request(config, args.file, env_file=args.env_file)
    except ConfigError as e:
        console.print(f"[bold red]x[/bold red] {e}")
        return 1

    if not args.yes:
        console.print(f"This will restore from: [cyan]{request.remote_key}[/cyan]")
        console.print(
            f"   [bold red]WARNING:[/bold red] database "
            f"[bold]{config.database.database}[/bold] will be dropped and recreated!"
        )
        response = input("Continue? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    orchestrator = RestoreOrchestrator(config, ObjectStoreGateway(config.object_store))
    try:
        await orchestrator.run(request)
    except RestoreStageError as e:
        console.print(f"[bold red]x[/bold red] Restore failed at stage [bold]{e.stage}[/bold]: {e}")
        return 1

    console.print(
        f"[bold green]v[/bold green] Restored [bold]{config.database.database}[/bold] "
        f"from [cyan]{request.remote_key}[/cyan]"
    )
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the scheduler.  Wraps the async implementation with ``asyncio.run()``."""
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_async_serve(config))


def cmd_backup(args: argparse.Namespace) -> int:
    """Run one backup cycle."""
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_async_backup(config))


def cmd_list(args: argparse.Namespace) -> int:
    """List remote snapshots."""
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_async_list(config))


def cmd_prune(args: argparse.Namespace) -> int:
    """Delete expired remote snapshots."""
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_async_prune(config, args.days))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore from a remote snapshot."""
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_async_restore(config, args))


# ============================================================================
# Main entry point
# ============================================================================


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-snapshot",
        description="Scheduled PostgreSQL snapshots to S3-compatible storage",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="dotenv file read in addition to the environment (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_serve = subparsers.add_parser(
        "serve",
        help="Back up on schedule until SIGINT/SIGTERM",
    )
    p_serve.set_defaults(func=cmd_serve)

    p_backup = subparsers.add_parser("backup", help="Run one backup cycle now")
    p_backup.set_defaults(func=cmd_backup)

    p_list = subparsers.add_parser("list", help="List remote snapshots")
    p_list.set_defaults(func=cmd_list)

    p_prune = subparsers.add_parser("prune", help="Delete expired remote snapshots")
    p_prune.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention window in days (default: BACKUP_RETENTION_DAYS)",
    )
    p_prune.set_defaults(func=cmd_prune)

    p_restore = subparsers.add_parser(
        "restore",
        help="Drop, recreate and restore the database from a snapshot",
    )
    p_restore.add_argument(
        "file",
        nargs="?",
        default=None,
        help="Snapshot file name under S3_PREFIX (default: S3_RESTORE_FILE)",
    )
    p_restore.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_restore.set_defaults(func=cmd_restore)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
