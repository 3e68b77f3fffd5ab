"""
Backend construction and PostgreSQL connection management for coachstore.

`create_backend(settings)` is the single entry point used by the CLI and the
bootstrap routines: it returns an in-process `MemoryDocumentStore` or a
`PostgresDocumentStore` with its schema ensured. `PoolManager` owns the async
connection pool and the dedicated LISTEN connection of one Postgres backend.

Opening connections retries transient failures using tenacity.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from coachstore.config import Settings, get_settings
from coachstore.infrastructure.backend import DocumentBackend
from coachstore.infrastructure.memory import MemoryDocumentStore
from coachstore.infrastructure.postgres import PostgresDocumentStore
from coachstore.utils.logging import get_logger

logger = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def get_async_connection(dsn: str, autocommit: bool = False) -> AsyncConnection:
    """
    Open a dedicated asynchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return await AsyncConnection.connect(dsn, autocommit=autocommit)


class PoolManager:
    """
    Owns the connection resources of one Postgres backend.

    Parameters
    ----------
    dsn : str
        Connection string.
    min_size : int
        Minimum number of idle connections to keep.
    max_size : int
        Maximum total connections in the pool.
    """

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError("PoolManager.open() must be awaited before use")
        return self._pool

    async def open(self) -> AsyncConnectionPool:
        """Create and open the pool (idempotent)."""
        if self._pool is None:
            pool = AsyncConnectionPool(
                conninfo=self.dsn, min_size=self.min_size, max_size=self.max_size, open=False
            )
            await pool.open(wait=True)
            self._pool = pool
        return self._pool

    async def connect_listener(self) -> AsyncConnection:
        """Autocommit connection outside the pool, held for LISTEN."""
        return await get_async_connection(self.dsn, autocommit=True)

    async def close(self) -> None:
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.close()


async def create_backend(settings: Optional[Settings] = None) -> DocumentBackend:
    """
    Build the backend selected by `settings.store_backend`.

    The Postgres backend is returned with its pool open and its schema ensured.
    """
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        logger.info("Using in-memory document store")
        return MemoryDocumentStore()

    pools = PoolManager(
        build_dsn(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    await pools.open()
    store = PostgresDocumentStore(
        pools,
        table=settings.db_documents_table,
        channel=settings.db_notify_channel,
    )
    try:
        await store.ensure_schema()
    except Exception:
        await pools.close()
        raise
    logger.info(
        "Using Postgres document store",
        extra={"host": settings.db_host, "database": settings.db_name, "table": settings.db_documents_table},
    )
    return store


__all__ = [
    "PoolManager",
    "build_dsn",
    "create_backend",
    "get_async_connection",
]
