"""Async PostgreSQL client for connectivity checks and administrative DDL.

Provides ``AsyncPostgresAdapter``, an implementation of the
``DatabaseClient`` protocol using SQLAlchemy's async engine with the
``asyncpg`` driver.  Engines use ``NullPool`` so that every ``connect()``
opens a real connection and releasing it closes it; nothing outlives the
``async with`` block that acquired it.

Usage:
    from db_snapshot.adapters.postgres import AsyncPostgresAdapter

    async with AsyncPostgresAdapter(config.database) as db:
        ok = await db.test_connection()

    async with AsyncPostgresAdapter(
        config.database,
        database=config.database.admin_database,
        autocommit=True,
    ) as admin:
        await admin.recreate_database(config.database.database)
"""

import re
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from db_snapshot.config.models import DatabaseConfig

_MAJOR_VERSION = re.compile(r"^\s*(\d+)")


def create_scoped_engine(url: URL, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine without connection pooling.

    Default settings:

    - ``poolclass=NullPool``: connections are closed when released.
    - ``connect_args={"timeout": 10}``: asyncpg connect timeout in seconds.

    Args:
        url: ``postgresql+asyncpg`` URL.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.
    """
    defaults: dict[str, Any] = {
        "poolclass": NullPool,
        "connect_args": {"timeout": 10},
        "echo": False,
    }
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}

    return create_async_engine(url, **merged)


def parse_major_version(server_version: str) -> int:
    """Extract the major component of a PostgreSQL version string.

    Example:
        >>> parse_major_version("16.2 (Debian 16.2-1.pgdg120+2)")
        16

    Raises:
        ValueError: If the string does not start with a number.
    """
    match = _MAJOR_VERSION.match(server_version)
    if match is None:
        raise ValueError(f"Unrecognized server version: {server_version!r}")
    return int(match.group(1))


class AsyncPostgresAdapter:
    """Async PostgreSQL implementation of the ``DatabaseClient`` protocol.

    Args:
        config: Connection parameters.  The password is passed to the
            driver as a URL component and never rendered into log output.
        database: Database to connect to instead of ``config.database``
            (used to reach the administrative database).
        autocommit: Run statements outside a transaction block.  Required
            for ``DROP DATABASE`` / ``CREATE DATABASE``.
        **engine_kwargs: Forwarded to ``create_scoped_engine``.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        database: str | None = None,
        autocommit: bool = False,
        **engine_kwargs: Any,
    ) -> None:
        url = URL.create(
            "postgresql+asyncpg",
            username=config.user,
            password=config.password.get_secret_value(),
            host=config.host,
            port=config.port,
            database=database or config.database,
        )
        if autocommit:
            engine_kwargs.setdefault("isolation_level", "AUTOCOMMIT")

        self._engine: AsyncEngine = create_scoped_engine(url, **engine_kwargs)

    async def __aenter__(self) -> "AsyncPostgresAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Test database connection health.

        Runs ``SELECT 1`` on a fresh connection that is closed on exit.

        Returns:
            ``True`` if the query returned 1.

        Raises:
            Exception: If the database connection fails.
        """
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1

    async def server_version(self) -> str:
        """Return the ``server_version`` setting of the connected server."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text("SHOW server_version"))
            return str(result.scalar())

    # ------------------------------------------------------------------
    # Administrative DDL
    # ------------------------------------------------------------------

    async def recreate_database(self, name: str) -> None:
        """Drop ``name`` if present and create it again, empty.

        The identifier is quoted by the dialect's identifier preparer;
        database names cannot be bound as parameters.
        """
        quoted = self._engine.dialect.identifier_preparer.quote_identifier(name)
        async with self._engine.connect() as conn:
            await conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))
            await conn.execute(text(f"CREATE DATABASE {quoted}"))

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine:
            await self._engine.dispose()
