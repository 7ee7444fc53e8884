"""
SQL compilation layer for the Cenote query engine.

Every statement the engine runs is assembled here from allow-listed, quoted
identifiers and ``$n`` bound parameters.

Submodules:
    identifiers: Identifier allow-list, quoting and the QueryParameters collector.
    timeframe: Absolute / relative timeframe resolution and its predicate.
    filters: Filter parsing, SQL predicate and client-side post-filter.
    query_builder: Per-archetype statements plus auxiliary lookups.

Example usage:
    from cenote.sql import QueryParameters, resolve_timeframe, timeframe_predicate

    params = QueryParameters()
    predicate = timeframe_predicate(resolve_timeframe('this_1_days'), params)
"""

from cenote.sql.identifiers import (
    IDENTIFIER_PATTERN,
    PROPERTY_SEPARATOR,
    TIMESTAMP_COLUMN,
    QueryParameters,
    quote_column,
    quote_table,
    validate_name,
    validate_property,
)
from cenote.sql.timeframe import TimeWindow, resolve_timeframe, timeframe_predicate
from cenote.sql.filters import (
    apply_filters,
    coerce_filters,
    column_kind,
    filters_predicate,
    matches,
    parse_filters,
)
from cenote.sql.query_builder import (
    AGGREGATE_EXPRESSIONS,
    CompiledQuery,
    build_aggregate_query,
    build_collections_query,
    build_column_types_query,
    build_extraction_query,
    build_outlier_stats_query,
    build_project_query,
    build_query,
    build_raw_rows_query,
)


__all__ = [
    'IDENTIFIER_PATTERN',
    'PROPERTY_SEPARATOR',
    'TIMESTAMP_COLUMN',
    'QueryParameters',
    'quote_column',
    'quote_table',
    'validate_name',
    'validate_property',
    'TimeWindow',
    'resolve_timeframe',
    'timeframe_predicate',
    'apply_filters',
    'coerce_filters',
    'column_kind',
    'filters_predicate',
    'matches',
    'parse_filters',
    'AGGREGATE_EXPRESSIONS',
    'CompiledQuery',
    'build_aggregate_query',
    'build_collections_query',
    'build_column_types_query',
    'build_extraction_query',
    'build_outlier_stats_query',
    'build_project_query',
    'build_query',
    'build_raw_rows_query',
]
