"""
FastAPI dependency injection module for the Cenote query engine.

The lifespan in ``cenote.main`` is the composition root: it builds the asyncpg
pool, the Redis client and the services wired on top of them, and stores them
on ``app.state``. The dependencies below hand those shared instances to the
endpoint handlers, so handlers never reach for module-level globals.

Key Dependencies Provided:
- get_query_engine: The QueryEngine serving every archetype endpoint
- get_historical_reader: The eeRIS rollup reader
- get_collection_lister: The collection schema listing service

Testing:
    Each dependency can be replaced with ``app.dependency_overrides``:

    app.dependency_overrides[get_query_engine] = lambda: fake_engine

Usage Examples:
    @router.get("/count")
    async def count(project_id: str, engine: QueryEngineDep, params: QueryParamsDep):
        return await engine.run(QueryType.COUNT, project_id, params)
"""

from typing import Annotated

from fastapi import Depends, Request

from cenote.services.collections import CollectionLister
from cenote.services.historical import HistoricalReader
from cenote.services.queries import QueryEngine


# =============================================================================
# Service Dependencies
# =============================================================================

def get_query_engine(request: Request) -> QueryEngine:
    """Return the QueryEngine built by the application lifespan."""
    return request.app.state.query_engine


def get_historical_reader(request: Request) -> HistoricalReader:
    return request.app.state.historical_reader


def get_collection_lister(request: Request) -> CollectionLister:
    return request.app.state.collection_lister


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

QueryEngineDep = Annotated[QueryEngine, Depends(get_query_engine)]
HistoricalReaderDep = Annotated[HistoricalReader, Depends(get_historical_reader)]
CollectionListerDep = Annotated[CollectionLister, Depends(get_collection_lister)]
