"""Tests for AsyncPostgresAdapter and create_scoped_engine.

The SQLAlchemy engine is replaced by a mock so no database is needed;
identifier quoting uses the real PostgreSQL dialect.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.engine import URL
from sqlalchemy.pool import NullPool

from conftest import DB_PASSWORD

from db_snapshot.adapters.postgres import AsyncPostgresAdapter, create_scoped_engine


def _make_mock_engine(scalar=None) -> tuple[MagicMock, MagicMock]:
    """Engine whose ``connect()`` yields ``conn``; results return ``scalar``."""
    result = MagicMock()
    result.scalar.return_value = scalar
    conn = MagicMock()
    conn.execute = AsyncMock(return_value=result)

    connect_cm = MagicMock()
    connect_cm.__aenter__ = AsyncMock(return_value=conn)
    connect_cm.__aexit__ = AsyncMock(return_value=False)

    engine = MagicMock()
    engine.connect.return_value = connect_cm
    engine.dispose = AsyncMock()
    engine.dialect = PGDialect()
    return engine, conn


def _executed_sql(conn: MagicMock) -> list[str]:
    return [str(c.args[0]) for c in conn.execute.await_args_list]


# ============================================================================
# Test: create_scoped_engine
# ============================================================================


class TestCreateScopedEngine:
    """Verify engine defaults passed to create_async_engine."""

    def test_defaults(self) -> None:
        with patch("db_snapshot.adapters.postgres.create_async_engine") as mock_create:
            mock_create.return_value = MagicMock()
            url = URL.create("postgresql+asyncpg", host="h", database="d")
            engine = create_scoped_engine(url)

        assert engine is mock_create.return_value
        args, kwargs = mock_create.call_args
        assert args[0] is url
        assert kwargs["poolclass"] is NullPool
        assert kwargs["connect_args"] == {"timeout": 10}
        assert kwargs["echo"] is False

    def test_caller_kwargs_override_defaults(self) -> None:
        with patch("db_snapshot.adapters.postgres.create_async_engine") as mock_create:
            mock_create.return_value = MagicMock()
            create_scoped_engine(
                URL.create("postgresql+asyncpg"), connect_args={"timeout": 3}
            )

        _, kwargs = mock_create.call_args
        assert kwargs["connect_args"] == {"timeout": 3}
        assert kwargs["poolclass"] is NullPool


# ============================================================================
# Test: AsyncPostgresAdapter construction
# ============================================================================


class TestAdapterConstruction:
    """Verify the URL and engine options built from DatabaseConfig."""

    def test_url_from_config(self, config) -> None:
        with patch("db_snapshot.adapters.postgres.create_scoped_engine") as mock_create:
            mock_create.return_value = MagicMock()
            AsyncPostgresAdapter(config.database)

        url = mock_create.call_args[0][0]
        assert url.drivername == "postgresql+asyncpg"
        assert url.host == "db.internal"
        assert url.port == 5432
        assert url.username == "backup"
        assert url.password == DB_PASSWORD
        assert url.database == "appdb"
        assert DB_PASSWORD not in repr(url)

    def test_other_database(self, config) -> None:
        with patch("db_snapshot.adapters.postgres.create_scoped_engine") as mock_create:
            mock_create.return_value = MagicMock()
            AsyncPostgresAdapter(config.database, database="postgres")

        assert mock_create.call_args[0][0].database == "postgres"

    def test_autocommit_sets_isolation_level(self, config) -> None:
        with patch("db_snapshot.adapters.postgres.create_scoped_engine") as mock_create:
            mock_create.return_value = MagicMock()
            AsyncPostgresAdapter(config.database, autocommit=True)

        _, kwargs = mock_create.call_args
        assert kwargs["isolation_level"] == "AUTOCOMMIT"

    def test_no_isolation_level_by_default(self, config) -> None:
        with patch("db_snapshot.adapters.postgres.create_scoped_engine") as mock_create:
            mock_create.return_value = MagicMock()
            AsyncPostgresAdapter(config.database)

        _, kwargs = mock_create.call_args
        assert "isolation_level" not in kwargs


# ============================================================================
# Test: AsyncPostgresAdapter operations
# ============================================================================


class TestAdapterOperations:
    """Verify SQL issued by each operation against a mocked engine."""

    def _adapter(self, config, engine: MagicMock) -> AsyncPostgresAdapter:
        with patch("db_snapshot.adapters.postgres.create_scoped_engine", return_value=engine):
            return AsyncPostgresAdapter(config.database, autocommit=True)

    async def test_test_connection(self, config) -> None:
        engine, conn = _make_mock_engine(scalar=1)
        adapter = self._adapter(config, engine)

        assert await adapter.test_connection() is True
        assert _executed_sql(conn) == ["SELECT 1"]

    async def test_test_connection_propagates_errors(self, config) -> None:
        engine, conn = _make_mock_engine()
        conn.execute.side_effect = OSError("Connection refused")
        adapter = self._adapter(config, engine)

        with pytest.raises(OSError):
            await adapter.test_connection()

    async def test_server_version(self, config) -> None:
        engine, conn = _make_mock_engine(scalar="16.2 (Debian 16.2-1.pgdg120+2)")
        adapter = self._adapter(config, engine)

        assert await adapter.server_version() == "16.2 (Debian 16.2-1.pgdg120+2)"
        assert _executed_sql(conn) == ["SHOW server_version"]

    async def test_recreate_drops_then_creates(self, config) -> None:
        engine, conn = _make_mock_engine()
        adapter = self._adapter(config, engine)

        await adapter.recreate_database("appdb")

        assert _executed_sql(conn) == [
            'DROP DATABASE IF EXISTS "appdb"',
            'CREATE DATABASE "appdb"',
        ]

    @pytest.mark.parametrize(
        "name,quoted",
        [
            ("AppDB", '"AppDB"'),
            ("my-db", '"my-db"'),
            ('bad"; DROP DATABASE x; --', '"bad""; DROP DATABASE x; --"'),
        ],
    )
    async def test_recreate_quotes_identifier(self, config, name, quoted) -> None:
        engine, conn = _make_mock_engine()
        adapter = self._adapter(config, engine)

        await adapter.recreate_database(name)

        assert _executed_sql(conn) == [
            f"DROP DATABASE IF EXISTS {quoted}",
            f"CREATE DATABASE {quoted}",
        ]

    async def test_create_not_issued_when_drop_fails(self, config) -> None:
        engine, conn = _make_mock_engine()
        conn.execute.side_effect = RuntimeError("database is being accessed by other users")
        adapter = self._adapter(config, engine)

        with pytest.raises(RuntimeError):
            await adapter.recreate_database("appdb")
        assert conn.execute.await_count == 1

    async def test_close_disposes_engine(self, config) -> None:
        engine, _ = _make_mock_engine()
        adapter = self._adapter(config, engine)

        await adapter.close()

        engine.dispose.assert_awaited_once()

    async def test_context_manager_closes(self, config) -> None:
        engine, _ = _make_mock_engine(scalar=1)

        async with self._adapter(config, engine) as adapter:
            assert await adapter.test_connection() is True

        engine.dispose.assert_awaited_once()
