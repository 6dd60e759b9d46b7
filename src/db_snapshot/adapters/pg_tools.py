"""Invocation of the PostgreSQL command-line tools.

``pg_dump``, ``pg_restore`` and ``psql`` are run through an argument
vector (never a shell string) with the password supplied as
``PGPASSWORD`` in the child environment only, so neither identifiers nor
credentials can be injected or observed in the process list.
"""

import asyncio
import contextlib
import logging
import os
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from db_snapshot.config.models import DatabaseConfig

logger = logging.getLogger(__name__)

_TOOL_VERSION = re.compile(r"\(PostgreSQL\)\s+(\d+)")


@dataclass
class ToolResult:
    """Outcome of one external tool invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# Signature shared by run_tool and its test doubles
ToolRunner = Callable[..., Awaitable[ToolResult]]


def tool_env(config: DatabaseConfig) -> dict[str, str]:
    """Child environment carrying the password for libpq."""
    env = os.environ.copy()
    env["PGPASSWORD"] = config.password.get_secret_value()
    return env


def connection_args(config: DatabaseConfig, database: str | None = None) -> list[str]:
    """libpq connection flags shared by pg_dump, pg_restore and psql."""
    return [
        "--host", config.host,
        "--port", str(config.port),
        "--username", config.user,
        "--dbname", database or config.database,
        "--no-password",
    ]


async def run_tool(argv: list[str], env: dict[str, str] | None = None) -> ToolResult:
    """Run an external tool to completion and capture its output.

    Args:
        argv: Program and arguments.
        env: Environment for the child (defaults to the current one).

    Returns:
        ``ToolResult`` with decoded stdout/stderr.

    Raises:
        OSError: If the program cannot be started (e.g., not installed).
        asyncio.CancelledError: If cancelled; the child is killed first.
    """
    logger.debug("Running %s", argv[0])
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await process.communicate()
    except BaseException:
        # Cancelled (e.g., shutdown grace expired): never orphan the child
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        raise
    return ToolResult(
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


async def dump_tool_major_version(program: str = "pg_dump") -> int:
    """Major version of the locally installed dump tool.

    Parses output such as ``pg_dump (PostgreSQL) 16.2``.

    Raises:
        OSError: If the tool is not installed.
        ValueError: If the version cannot be determined.
    """
    result = await run_tool([program, "--version"])
    match = _TOOL_VERSION.search(result.stdout)
    if not result.ok or match is None:
        raise ValueError(f"Cannot determine {program} version: {result.stdout.strip()!r}")
    return int(match.group(1))
