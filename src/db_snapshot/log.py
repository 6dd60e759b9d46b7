"""Logging setup for the CLI.

Log records go through a ``rich`` handler with a filter that masks every
configured secret, so credentials echoed by external tools or drivers
never reach the terminal.
"""

import logging
from collections.abc import Iterable

from rich.console import Console
from rich.logging import RichHandler

from db_snapshot.errors import redact


class SecretRedactingFilter(logging.Filter):
    """Replace secret values in the fully formatted log message."""

    def __init__(self, secrets: Iterable[str | None] = ()) -> None:
        super().__init__()
        self._secrets = [s for s in secrets if s]

    def add_secrets(self, secrets: Iterable[str | None]) -> None:
        self._secrets.extend(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            record.msg = redact(record.getMessage(), self._secrets)
            record.args = None
        return True


def configure_logging(
    level: str = "INFO",
    console: Console | None = None,
    secrets: Iterable[str | None] = (),
) -> SecretRedactingFilter:
    """Install a ``RichHandler`` on the root logger.

    Args:
        level: Minimum level name (``DEBUG``, ``INFO``, ...).
        console: Console to log to (stderr by default).
        secrets: Values to mask in every record.

    Returns:
        The installed filter, so secrets known only later can be added.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    redactor = SecretRedactingFilter(secrets)
    handler.addFilter(redactor)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%Y-%m-%d %H:%M:%S]",
        handlers=[handler],
        force=True,
    )
    # botocore is chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    return redactor
