"""
Storage abstraction layer for RSS Settlement.

This package provides a pluggable storage backend system for the settlement
engine's data access (directory, transactions, reports, currencies):

- Memory (default, for testing and single-process use)
- PostgreSQL (for production deployments)

Usage:
    from storage import get_storage_backend, StorageBackend

    # Get configured backend (based on environment)
    storage = get_storage_backend()

    with storage.transaction():
        txs = storage.find_pending("agg@example.com", "provider-1", "music")
"""

import os
from typing import TYPE_CHECKING

from storage.base import (
    StorageBackend,
    StorageConnectionError,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from storage.memory import MemoryStorage

# Lazy import for PostgreSQL to avoid requiring psycopg2
if TYPE_CHECKING:
    from storage.postgresql import PostgreSQLStorage

__all__ = [
    "MemoryStorage",
    "StorageBackend",
    "StorageConnectionError",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend(
    backend_type: str | None = None,
    database_url: str | None = None,
    pool_size: int | None = None,
) -> StorageBackend:
    """
    Get the configured storage backend.

    Environment variables (used when arguments are omitted):
        STORAGE_BACKEND: Backend type ("memory", "postgresql")
        DATABASE_URL: PostgreSQL connection URL

    pool_size sets the PostgreSQL connection pool size (backend default when
    omitted).

    Returns:
        Configured StorageBackend instance
    """
    backend_type = (backend_type or os.getenv("STORAGE_BACKEND", "memory")).lower()

    if backend_type == "postgresql" or backend_type == "postgres":
        database_url = database_url or os.getenv("DATABASE_URL")
        if not database_url:
            raise StorageError("DATABASE_URL environment variable required for PostgreSQL backend")
        from storage.postgresql import PostgreSQLStorage

        if pool_size is None:
            return PostgreSQLStorage(database_url)
        return PostgreSQLStorage(database_url, pool_size=pool_size)

    elif backend_type == "memory":
        return MemoryStorage()

    else:
        raise StorageError(f"Unknown storage backend: {backend_type}")
