"""
Pydantic models for the Cenote query engine.

This module provides type-safe data validation for the values that flow between
the HTTP layer, the access gate, the SQL compilers and the post-processor:

- Project: tenant record read by the access gate
- Filter: one entry of the `filters` query parameter
- OutlierStat: cached dispersion statistics for one (collection, property)
- QueryParams: raw, untrusted query-string parameters of an archetype request
- QueryRequest: the authorized, fully-typed request handed to the builder
- HistoricalStats / HistoricalView: eeRIS response payload
- ColumnInfo: one column of the collection schema listing

All models use Pydantic v2 syntax.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cenote.models.enums import FilterOperator, Interval, OutlierMode, QueryType


# =============================================================================
# Tenant
# =============================================================================


class Project(BaseModel):
    """
    Tenant-scoped container holding the three capability keys.

    The engine never mutates projects; they are created and rotated by the
    project-management collaborator.
    """
    model_config = ConfigDict(frozen=True)

    project_id: str
    read_key: str
    write_key: Optional[str] = None
    master_key: str
    organization: Optional[str] = None


# =============================================================================
# Query Building Blocks
# =============================================================================


class Filter(BaseModel):
    """
    A single property comparison.

    `property_name` is validated against the identifier allow-list by the filter
    compiler, not here, so that the failure is reported as BadQueryError.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"property_name": "voltage", "operator": "gte", "property_value": 10}
        }
    )

    property_name: str
    operator: FilterOperator
    property_value: Any = None


class OutlierStat(BaseModel):
    """Cached mean and standard deviation of one property across a whole collection."""

    mean: Optional[float] = None
    stddev: Optional[float] = None


class QueryParams(BaseModel):
    """
    Untrusted query-string parameters shared by all archetype endpoints.

    Field names follow the public HTTP contract (camelCase keys, snake_case
    query options). Nothing here has been authorized or validated yet.
    """
    model_config = ConfigDict(populate_by_name=True)

    read_key: Optional[str] = Field(None, alias="readKey")
    master_key: Optional[str] = Field(None, alias="masterKey")
    event_collection: Optional[str] = None
    target_property: Optional[str] = None
    percentile: Optional[str] = None
    group_by: Optional[str] = None
    latest: Optional[str] = None
    interval: Optional[str] = None
    outliers: Optional[str] = None
    outliers_in: Optional[str] = None
    filters: Optional[str] = None
    timeframe: Optional[str] = None
    concat_results: Optional[str] = None


class QueryRequest(BaseModel):
    """
    An authorized, validated query ready for compilation.

    Produced by the access gate; every identifier has passed the allow-list
    and every option has been parsed into its typed form.
    """

    query_type: QueryType
    project_id: str
    event_collection: str
    target_property: Optional[str] = None
    target_properties: List[str] = Field(default_factory=list)
    percentile: Optional[float] = None
    group_by: Optional[str] = None
    latest: int
    interval: Optional[Interval] = None
    outliers: OutlierMode = OutlierMode.INCLUDE
    outliers_in: Optional[str] = None
    filters: List[Filter] = Field(default_factory=list)
    timeframe: Optional[str] = None
    concat_results: bool = False

    @property
    def table(self) -> str:
        return f"{self.project_id}_{self.event_collection}"


# =============================================================================
# Historical Rollup Views
# =============================================================================


class HistoricalStats(BaseModel):
    avg: float = 0
    min: float = 0
    max: float = 0


class HistoricalView(BaseModel):
    """
    Reconstructed day/week/month view over pre-aggregated rollup buckets.

    Example:
        {"values": [12.5, 0, 14.1], "stats": {"avg": 13.2, "min": 9.0, "max": 20.0}}
    """

    values: List[float] = Field(default_factory=list)
    stats: HistoricalStats = Field(default_factory=HistoricalStats)


# =============================================================================
# Collection Schema Listing
# =============================================================================


class ColumnInfo(BaseModel):
    column_name: str
    type: Optional[str] = None


CollectionSchema = Dict[str, List[ColumnInfo]]
