"""Error taxonomy for backup and restore.

Every failure raised by this package is a ``SnapshotError`` subclass carrying
structured context (``stage``, ``key``, ``cause``) instead of free text, so
callers can log the failing stage without formatting raw exceptions that
might embed credentials.

Usage:
    from db_snapshot.errors import DumpError, redact

    try:
        artifact = await producer.produce(work_dir)
    except DumpError as e:
        logger.error("stage=%s %s", e.stage, redact(str(e), secrets))
"""

from collections.abc import Iterable
from pathlib import Path

REDACTED = "****"


class SnapshotError(Exception):
    """Base class for all backup/restore failures."""

    default_stage: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.key = key
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.key:
            parts.append(f"(key={self.key})")
        return " ".join(parts)


class ConfigError(SnapshotError):
    """Raised when mandatory settings are missing or invalid.

    ``missing`` names absent variables; ``invalid`` names values that are
    present but cannot be used.
    """

    default_stage = "config"

    def __init__(
        self,
        message: str,
        missing: Iterable[str] = (),
        invalid: Iterable[str] = (),
    ) -> None:
        super().__init__(message)
        self.missing = list(missing)
        self.invalid = list(invalid)


class ConnectivityError(SnapshotError):
    """Raised when the object store or database is unreachable."""

    default_stage = "connectivity"


class VersionMismatchError(SnapshotError):
    """Raised when the server major version differs from the required one."""

    default_stage = "version"

    def __init__(self, expected: int, actual: int, server_version: str) -> None:
        super().__init__(
            f"Database server major version {actual} ({server_version}) "
            f"does not match required major version {expected}"
        )
        self.expected = expected
        self.actual = actual


# ----------------------------------------------------------------------
# Backup cycle errors -- each aborts only the current cycle
# ----------------------------------------------------------------------


class BackupError(SnapshotError):
    """Base class for failures that abort a single backup cycle."""


class DumpError(BackupError):
    """Raised when the dump tool fails or produces an empty file."""

    default_stage = "dump"

    def __init__(
        self,
        message: str,
        diagnostics: str = "",
        local_path: Path | None = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.diagnostics = diagnostics
        self.local_path = local_path


class UploadError(BackupError):
    """Raised on any transport or auth failure while uploading."""

    default_stage = "upload"


class VerificationError(BackupError):
    """Raised by the workflow when a snapshot fails verification."""

    default_stage = "verify"


class DownloadError(BackupError):
    """Raised when a remote snapshot cannot be fetched."""

    default_stage = "download"


# ----------------------------------------------------------------------
# Object-level errors
# ----------------------------------------------------------------------


class NotFoundError(SnapshotError):
    """Raised when a remote object does not exist."""

    default_stage = "head"


class DeleteError(SnapshotError):
    """Raised when a remote object cannot be deleted (non-fatal when pruning)."""

    default_stage = "prune"


class RestoreStageError(SnapshotError):
    """Raised when any restore stage fails. Always fatal to the restore."""

    default_stage = "restore"


def redact(text: str, secrets: Iterable[str | None]) -> str:
    """Mask every non-empty secret value occurring in ``text``.

    Args:
        text: Message that may contain credentials (e.g., tool stderr).
        secrets: Secret values to mask.  Empty or ``None`` entries are ignored.

    Returns:
        ``text`` with each secret replaced by ``****``.

    Example:
        >>> redact("auth failed for pw=hunter2", ["hunter2"])
        'auth failed for pw=****'
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text
