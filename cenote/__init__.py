"""
Cenote Analytics Query Engine.

FastAPI service answering read-only analytics queries (counts, aggregates,
percentiles, unique values, raw extraction and historical rollup views) over
per-project event collections stored in CockroachDB/PostgreSQL, with column
statistics and rollups kept in Redis.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, store/cache adapters, errors and dependencies
    - models: Pydantic schemas and enums
    - services: Access gate, query engine and post-processing
    - sql: Identifier allow-list and statement compilation
"""

__version__ = "1.0.0"
