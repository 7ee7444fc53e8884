"""
Package initialization file for Cenote models.

Re-exports the enumerations and Pydantic schemas so other modules can import
them from ``cenote.models`` directly.

Usage:
    from cenote.models import QueryType, Filter, QueryRequest
"""

# =============================================================================
# Enums
# =============================================================================

from cenote.models.enums import (
    QueryType,
    Interval,
    OutlierMode,
    FilterOperator,
    HistoricalViewType,
    ColumnKind,
)

# =============================================================================
# Schemas
# =============================================================================

from cenote.models.schemas import (
    Project,
    Filter,
    OutlierStat,
    QueryParams,
    QueryRequest,
    HistoricalStats,
    HistoricalView,
    ColumnInfo,
    CollectionSchema,
)

__all__ = [
    # Enums
    'QueryType',
    'Interval',
    'OutlierMode',
    'FilterOperator',
    'HistoricalViewType',
    'ColumnKind',
    # Schemas
    'Project',
    'Filter',
    'OutlierStat',
    'QueryParams',
    'QueryRequest',
    'HistoricalStats',
    'HistoricalView',
    'ColumnInfo',
    'CollectionSchema',
]
