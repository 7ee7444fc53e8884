"""
FastAPI application entry point for the Cenote query engine.

This module is the composition root: the lifespan builds the shared asyncpg
pool and Redis client, wraps them in the event store and stats cache adapters,
wires the services on top and stores them on ``app.state`` for the
dependencies in ``cenote.core.dependencies``.

Run with:
    uvicorn cenote.main:app --port 3000
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from cenote.api.queries import router as queries_router
from cenote.core.cache import StatsCache, create_redis_client
from cenote.core.config import Settings, get_settings
from cenote.core.database import EventStore, create_db_pool
from cenote.core.errors import QueryError
from cenote.services.access import ProjectRegistry
from cenote.services.collections import CollectionLister
from cenote.services.historical import HistoricalReader
from cenote.services.outliers import OutlierDetector
from cenote.services.queries import QueryEngine

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def wire_services(app: FastAPI, store: EventStore, cache: StatsCache, settings: Settings) -> None:
    """Build the services over the shared store and cache handles and expose them on app.state."""
    registry = ProjectRegistry(store, table=settings.projects_table)
    app.state.store = store
    app.state.cache = cache
    app.state.query_engine = QueryEngine(
        store,
        registry,
        OutlierDetector(store, cache, k=settings.outlier_k),
        settings,
    )
    app.state.historical_reader = HistoricalReader(cache, registry)
    app.state.collection_lister = CollectionLister(store, registry)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the event store pool and the cache client
        - Wire the query services

    On shutdown:
        - Close the cache client and the pool
    """
    # Startup
    logger.info("Cenote query engine starting")
    try:
        pool = await create_db_pool(settings)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
    logger.info("Database connection pool initialized")

    store = EventStore(
        pool,
        timeout=settings.query_timeout_seconds,
        expose_errors=settings.expose_backend_errors,
    )
    cache = StatsCache(
        create_redis_client(settings),
        timeout=settings.cache_timeout_seconds,
        expose_errors=settings.expose_backend_errors,
    )
    wire_services(app, store, cache, settings)

    yield

    # Shutdown
    logger.info("Cenote query engine shutting down")
    try:
        await cache.close()
        await store.close()
        logger.info("Database pool and cache client closed")
    except Exception as e:
        logger.error(f"Error closing connections: {e}")


# Create FastAPI application
app = FastAPI(
    title="Cenote Query API",
    version="1.0.0",
    description=(
        "Read-only analytics queries over per-project event collections: "
        "counts, aggregates, percentiles, unique values, extraction and "
        "historical rollup views."
    ),
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    """Render every engine failure as the standard failure envelope."""
    logger.info(f"{request.url.path} failed with {exc.kind}: {exc.message or ''}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


app.include_router(queries_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cenote.main:app",
        host=settings.host,
        port=settings.port,
    )
