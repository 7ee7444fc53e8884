"""
Pytest Configuration and Shared Fixtures for Cenote Query Engine Tests.

This module provides fixtures and configuration for all engine tests, supporting:
- Async test execution with pytest-asyncio
- Mock asyncpg pool and Redis client fixtures for testing the I/O adapters
- In-memory event store and stats cache fakes for testing services end to end
- Sample project and event data (the `measurements` collection of project p1)
- A FastAPI TestClient whose services are wired over the fakes

The fakes record every statement they receive so tests can assert on the
compiled SQL and its bound parameters without a running database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from cenote.core.config import Settings
from cenote.core.errors import BadQuery
from cenote.models.schemas import Project
from cenote.services.access import ProjectRegistry
from cenote.services.collections import CollectionLister
from cenote.services.historical import HistoricalReader
from cenote.services.outliers import OutlierDetector
from cenote.services.queries import QueryEngine


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - properties: End-to-end behaviours of the public query contract
    """
    config.addinivalue_line(
        'markers',
        'properties: end-to-end behaviours of the public query contract'
    )


# ============================================================
# SAMPLE DATA
# ============================================================

# First measurement instant; the second one is an hour later
T0 = datetime(2026, 3, 14, 10, 15, tzinfo=timezone.utc)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def project() -> Project:
    """Project p1 with distinct read, write and master keys."""
    return Project(
        project_id='p1',
        read_key='rk1',
        write_key='wk1',
        master_key='mk1',
        organization='org1',
    )


@pytest.fixture
def measurement_rows() -> List[Dict[str, Any]]:
    """Two rows of p1_measurements, one hour apart."""
    return [
        {'voltage': 10, 'current': 1, 'cenote$timestamp': T0},
        {'voltage': 20, 'current': 2, 'cenote$timestamp': T0 + timedelta(hours=1)},
    ]


# ============================================================
# IN-MEMORY FAKES
# ============================================================

class FakeEventStore:
    """
    Stand-in for EventStore that answers by statement kind.

    - project lookups are answered from ``projects``
    - outlier statistics queries return ``stats_row``
    - information_schema queries return ``columns``
    - every other statement returns ``rows``

    Setting ``error`` makes the next archetype statement fail with BadQuery,
    as the real adapter does for backend errors.
    """

    def __init__(self, projects: List[Project]) -> None:
        self.projects = {p.project_id: p for p in projects}
        self.rows: List[Dict[str, Any]] = []
        self.columns: List[Dict[str, Any]] = []
        self.stats_row: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.queries: List[Tuple[str, List[Any]]] = []

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        self.queries.append((query, list(args)))
        if 'WHERE project_id = $1' in query:
            project = self.projects.get(args[0])
            return [project.model_dump()] if project else []
        if 'STDDEV(' in query:
            return [self.stats_row] if self.stats_row else []
        if 'information_schema' in query:
            return list(self.columns)
        if self.error:
            raise BadQuery(self.error)
        return [dict(row) for row in self.rows]

    async def fetch_one(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        rows = await self.fetch(query, *args)
        return rows[0] if rows else None

    @property
    def archetype_queries(self) -> List[Tuple[str, List[Any]]]:
        """Statements other than project lookups, statistics and column-type queries."""
        return [
            (sql, params) for sql, params in self.queries
            if 'WHERE project_id = $1' not in sql
            and 'STDDEV(' not in sql
            and 'information_schema' not in sql
        ]


class FakeStatsCache:
    """Dict-backed stand-in for StatsCache."""

    def __init__(self) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.writes: List[str] = []

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        return self.documents.get(key)

    async def set_json(self, key: str, value: Dict[str, Any]) -> None:
        self.writes.append(key)
        self.documents[key] = value


# ============================================================
# SERVICE FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(global_limit=5000, outlier_k=3.0, projects_table='projects')


@pytest.fixture
def event_store(project: Project, measurement_rows: List[Dict[str, Any]]) -> FakeEventStore:
    store = FakeEventStore([project])
    store.rows = measurement_rows
    return store


@pytest.fixture
def stats_cache() -> FakeStatsCache:
    return FakeStatsCache()


@pytest.fixture
def registry(event_store: FakeEventStore, settings: Settings) -> ProjectRegistry:
    return ProjectRegistry(event_store, table=settings.projects_table)


@pytest.fixture
def query_engine(
    event_store: FakeEventStore,
    stats_cache: FakeStatsCache,
    registry: ProjectRegistry,
    settings: Settings,
) -> QueryEngine:
    return QueryEngine(
        event_store,
        registry,
        OutlierDetector(event_store, stats_cache, k=settings.outlier_k),
        settings,
    )


@pytest.fixture
def historical_reader(stats_cache: FakeStatsCache, registry: ProjectRegistry) -> HistoricalReader:
    return HistoricalReader(stats_cache, registry)


@pytest.fixture
def collection_lister(event_store: FakeEventStore, registry: ProjectRegistry) -> CollectionLister:
    return CollectionLister(event_store, registry)


@pytest.fixture
def client(
    query_engine: QueryEngine,
    historical_reader: HistoricalReader,
    collection_lister: CollectionLister,
) -> Generator[TestClient, None, None]:
    """
    TestClient over the real application with services wired to the fakes.

    The lifespan is not entered, so no pool or Redis connection is opened.
    """
    from cenote.core.dependencies import (
        get_collection_lister,
        get_historical_reader,
        get_query_engine,
    )
    from cenote.main import app

    app.dependency_overrides[get_query_engine] = lambda: query_engine
    app.dependency_overrides[get_historical_reader] = lambda: historical_reader
    app.dependency_overrides[get_collection_lister] = lambda: collection_lister
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================
# I/O ADAPTER MOCKS
# ============================================================

@pytest.fixture
def mock_db_pool() -> AsyncMock:
    """
    Create a mock asyncpg connection pool for testing the EventStore adapter.

    Usage:
        async def test_fetch(mock_db_pool):
            mock_db_pool.acquire.return_value.__aenter__.return_value.fetch.return_value = [
                {'count': 2}
            ]

    Methods Mocked:
        - pool.acquire(timeout=...): Returns async context manager yielding the connection
        - conn.fetch(query, *args, timeout=...): Returns []
        - pool.close(): Closes the pool
    """
    pool = AsyncMock()

    conn = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])

    # Configure acquire() to return an async context manager
    # that yields the mock connection
    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    pool.close = AsyncMock(return_value=None)
    return pool


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Mock redis.asyncio client with get/set/aclose."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.aclose = AsyncMock(return_value=None)
    return redis
