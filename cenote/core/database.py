"""
Async relational event store adapter built on an asyncpg connection pool.

This module is the only place the query engine talks to the relational store.
It owns pool construction, statement timeouts, row decoding and the translation
of backend failures into BadQuery errors.

Key Components:
- create_db_pool(): Build the shared asyncpg pool at application startup
- EventStore: Injected handle wrapping the pool; every query path uses it

Design:
The pool is created once by the FastAPI lifespan (the composition root), wrapped
in an EventStore and stored on ``app.state``. Endpoints receive it through
``cenote.core.dependencies`` rather than reaching for a module-level global, so
tests can substitute a fake store with ``app.dependency_overrides``.

Connection Pool Configuration:
- min_size / max_size: from Settings (db_pool_min_size, db_pool_max_size)
- command_timeout: Settings.query_timeout_seconds

Row Decoding:
- NUMERIC values (decimal.Decimal) are converted to float
- Every other value is passed through unchanged (timestamps stay datetime)

Usage:
    # At application startup (in FastAPI lifespan)
    pool = await create_db_pool(settings)
    store = EventStore(pool, timeout=settings.query_timeout_seconds)

    # In services
    rows = await store.fetch('SELECT COUNT(*) AS "count" FROM "pid1_events" LIMIT $1', 5000)

    # At application shutdown
    await store.close()
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg import Pool

from cenote.core.config import Settings
from cenote.core.errors import BadQuery


logger = logging.getLogger(__name__)

# Message returned instead of backend text when error exposure is disabled
REDACTED_BACKEND_ERROR = 'The query could not be executed'


# =============================================================================
# Pool Lifecycle
# =============================================================================

async def create_db_pool(settings: Settings) -> Pool:
    """
    Create the asyncpg connection pool for the event store.

    Args:
        settings: Application settings providing DSN, pool sizes and timeout.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    return await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.query_timeout_seconds,
    )


def _decode_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_decode_value(v) for v in value]
    return value


def decode_record(record: Any) -> Dict[str, Any]:
    """Convert an asyncpg Record (or mapping) into a plain dict of JSON-friendly values."""
    return {key: _decode_value(value) for key, value in dict(record).items()}


# =============================================================================
# Event Store Handle
# =============================================================================

class EventStore:
    """
    Shared, pooled handle to the relational event store.

    Every statement is bounded by ``timeout`` seconds. Backend failures
    (PostgreSQL errors, interface errors, network errors and timeouts) are
    logged and re-raised as BadQuery, carrying the backend message unless
    ``expose_errors`` is false.

    Attributes:
        pool: The asyncpg pool shared by all concurrent requests.
        timeout: Per-statement timeout in seconds.
        expose_errors: Whether backend error text reaches the caller.
    """

    def __init__(self, pool: Pool, timeout: float = 30.0, expose_errors: bool = True) -> None:
        self.pool = pool
        self.timeout = timeout
        self.expose_errors = expose_errors

    def _backend_error(self, exc: BaseException) -> BadQuery:
        if isinstance(exc, asyncio.TimeoutError):
            message = f'Query timed out after {self.timeout:g} seconds'
        else:
            message = str(exc) or exc.__class__.__name__
        if not self.expose_errors:
            message = REDACTED_BACKEND_ERROR
        return BadQuery(message)

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        """
        Execute a read-only statement and return decoded rows.

        Args:
            query: SQL with $1, $2, ... placeholders. Identifiers embedded in the
                text must already have passed the identifier allow-list.
            *args: Bound parameter values matching the placeholders.

        Returns:
            List of rows as plain dicts.

        Raises:
            BadQuery: If the statement fails or exceeds the timeout.
        """
        logger.debug(f"Executing query: {query} params={args!r}")
        try:
            async with self.pool.acquire(timeout=self.timeout) as conn:
                records = await conn.fetch(query, *args, timeout=self.timeout)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Event store query failed: {e!r}")
            raise self._backend_error(e) from e

        return [decode_record(record) for record in records]

    async def fetch_one(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        """Execute a statement expected to return at most one row."""
        rows = await self.fetch(query, *args)
        return rows[0] if rows else None

    async def close(self) -> None:
        """Close the underlying pool gracefully."""
        await self.pool.close()
