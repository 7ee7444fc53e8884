"""
Core infrastructure package for the Cenote query engine.

Provides:
- Configuration management via pydantic-settings
- The pooled asyncpg event store adapter
- The redis.asyncio statistics cache adapter
- The error taxonomy rendered as failure envelopes

FastAPI dependencies live in ``cenote.core.dependencies`` and are imported
from there directly, since they depend on the service layer.

Usage Examples:
    from cenote.core import get_settings, BadQuery

    settings = get_settings()
    if latest <= 0:
        raise BadQuery('`latest` must be a positive integer')
"""

# =============================================================================
# Re-exports from cenote.core.config
# =============================================================================
from cenote.core.config import Settings, get_settings

# =============================================================================
# Re-exports from cenote.core.errors
# =============================================================================
from cenote.core.errors import (
    QueryError,
    ProjectNotFound,
    NoCredentials,
    KeyNotAuthorized,
    TargetNotProvided,
    BadQuery,
)

# =============================================================================
# Re-exports from cenote.core.database and cenote.core.cache
# =============================================================================
from cenote.core.database import EventStore, create_db_pool
from cenote.core.cache import StatsCache, create_redis_client


__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Errors (from errors.py)
    'QueryError',
    'ProjectNotFound',
    'NoCredentials',
    'KeyNotAuthorized',
    'TargetNotProvided',
    'BadQuery',
    # I/O adapters (from database.py, cache.py)
    'EventStore',
    'create_db_pool',
    'StatsCache',
    'create_redis_client',
]
