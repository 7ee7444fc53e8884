"""
Archetype dispatch table.

Every query archetype is described once here: which parameters it requires,
whether its rows are re-filtered client-side after retrieval, and how raw
store rows are shaped into the response payload. The access gate reads the
requirements; the query engine reads the rest. ``ARCHETYPES`` covers every
``QueryType`` member.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from cenote.models.enums import QueryType
from cenote.models.schemas import QueryRequest
from cenote.services.aggregation import (
    MEDIAN_RANK,
    group_by_interval,
    group_by_property,
    percentile,
    to_object_of_arrays,
)


Rows = List[Dict[str, Any]]
Shaper = Callable[[QueryRequest, Rows], Any]


# =============================================================================
# Result Shapers
# =============================================================================


def shape_aggregate(request: QueryRequest, rows: Rows) -> Any:
    """SQL-side aggregates pass through; interval requests are bucketed here."""
    if request.interval:
        return group_by_interval(rows, request.interval, request.query_type, request.target_property)
    return rows


def shape_percentile(request: QueryRequest, rows: Rows) -> Any:
    spec = ARCHETYPES[request.query_type]
    if request.interval:
        return group_by_interval(
            rows, request.interval, request.query_type, request.target_property, request.percentile
        )
    if request.group_by:
        return group_by_property(
            rows,
            request.group_by,
            request.query_type,
            request.target_property,
            request.percentile,
            result_key=spec.result_key,
        )
    values = [row.get(request.target_property) for row in rows]
    return [{spec.result_key: percentile(values, request.percentile)}]


def shape_extraction(request: QueryRequest, rows: Rows) -> Any:
    if request.concat_results:
        return to_object_of_arrays(rows)
    return rows


# =============================================================================
# Dispatch Table
# =============================================================================


@dataclass(frozen=True)
class ArchetypeSpec:
    """
    Per-archetype behaviour.

    Attributes:
        requires_target: `target_property` must be supplied.
        requires_percentile: `percentile` must be supplied.
        fixed_rank: Rank used instead of a caller-supplied percentile.
        result_key: Key of the single computed value in client-side results.
        post_filter: Re-apply filters to decoded rows after retrieval.
        shape: Turns retrieved rows into the response payload.
    """
    requires_target: bool
    shape: Shaper
    requires_percentile: bool = False
    fixed_rank: Optional[float] = None
    result_key: Optional[str] = None
    post_filter: bool = False


ARCHETYPES: Dict[QueryType, ArchetypeSpec] = {
    QueryType.COUNT: ArchetypeSpec(requires_target=False, shape=shape_aggregate),
    QueryType.MINIMUM: ArchetypeSpec(requires_target=True, shape=shape_aggregate),
    QueryType.MAXIMUM: ArchetypeSpec(requires_target=True, shape=shape_aggregate),
    QueryType.SUM: ArchetypeSpec(requires_target=True, shape=shape_aggregate),
    QueryType.AVERAGE: ArchetypeSpec(requires_target=True, shape=shape_aggregate),
    QueryType.MEDIAN: ArchetypeSpec(
        requires_target=True,
        shape=shape_percentile,
        fixed_rank=MEDIAN_RANK,
        result_key='median',
        post_filter=True,
    ),
    QueryType.PERCENTILE: ArchetypeSpec(
        requires_target=True,
        shape=shape_percentile,
        requires_percentile=True,
        result_key='percentile',
        post_filter=True,
    ),
    QueryType.COUNT_UNIQUE: ArchetypeSpec(requires_target=True, shape=shape_aggregate, post_filter=True),
    QueryType.SELECT_UNIQUE: ArchetypeSpec(requires_target=True, shape=shape_aggregate, post_filter=True),
    QueryType.EXTRACTION: ArchetypeSpec(requires_target=False, shape=shape_extraction, post_filter=True),
}
