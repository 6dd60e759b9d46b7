"""Snapshot file naming.

Snapshot names embed their UTC creation instant so that retention can be
enforced from a bucket listing alone::

    backup-2026-01-15T03-00-00-123Z.sql

This is the ISO-8601 timestamp (millisecond precision, ``Z`` suffix) with
``:`` and ``.`` replaced by ``-``.  Formatting and parsing are exact
inverses for every valid name.
"""

import re
from datetime import datetime, timezone

_NAME_PATTERN = re.compile(
    r"backup-(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z\.sql"
)


def snapshot_timestamp(now: datetime | None = None) -> datetime:
    """Current UTC instant truncated to millisecond precision."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def snapshot_file_name(created_at: datetime) -> str:
    """Render the file name for a snapshot created at ``created_at``.

    Naive datetimes are taken to be UTC.

    Example:
        >>> snapshot_file_name(datetime(2026, 1, 15, 3, 0, 0, 123000, tzinfo=timezone.utc))
        'backup-2026-01-15T03-00-00-123Z.sql'
    """
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    ts = created_at.astimezone(timezone.utc)
    return f"backup-{ts:%Y-%m-%dT%H-%M-%S}-{ts.microsecond // 1000:03d}Z.sql"


def parse_snapshot_timestamp(file_name: str) -> datetime | None:
    """Extract the creation instant from a snapshot file name.

    Args:
        file_name: Bare file name (prefix already removed).

    Returns:
        Aware UTC datetime, or ``None`` if the name does not follow the
        snapshot naming pattern.
    """
    match = _NAME_PATTERN.fullmatch(file_name)
    if match is None:
        return None
    year, month, day, hour, minute, second, millis = (int(g) for g in match.groups())
    try:
        return datetime(
            year, month, day, hour, minute, second, millis * 1000, tzinfo=timezone.utc
        )
    except ValueError:
        # Pattern matched but the date is impossible (e.g., month 13)
        return None


def remote_key_for(prefix: str, file_name: str) -> str:
    """Object key for ``file_name`` under ``prefix`` (plain concatenation)."""
    return f"{prefix or ''}{file_name}"


def file_name_from_key(prefix: str, key: str) -> str | None:
    """Strip ``prefix`` from ``key``; ``None`` if the key is not under it."""
    prefix = prefix or ""
    if not key.startswith(prefix):
        return None
    return key[len(prefix):]
