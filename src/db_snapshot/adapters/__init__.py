"""Adapters package.

Provides the ``DatabaseClient`` and ``ObjectStore`` Protocols and their
concrete async implementations, plus helpers for running the PostgreSQL
command-line tools.

Usage:
    from db_snapshot.adapters import AsyncPostgresAdapter, ObjectStoreGateway
"""

from db_snapshot.adapters.base import DatabaseClient, ObjectStore
from db_snapshot.adapters.object_store import ObjectStoreGateway
from db_snapshot.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "ObjectStore",
    "AsyncPostgresAdapter",
    "ObjectStoreGateway",
]
