"""
Query Builder for the Cenote query engine.

Assembles the single statement each archetype executes against the event
store. Every builder receives:

- the authorized QueryRequest,
- the QueryParameters collector already holding the values bound by the
  timeframe, outlier and filter fragments,
- the list of those predicate fragments, conjoined with AND.

and returns a CompiledQuery whose text only embeds allow-listed, quoted
identifiers and whose values (including the row cap) are all bound.

Archetype shapes:
- count / minimum / maximum / sum / average / count_unique / select_unique:
  SQL-side aggregate, optional GROUP BY.
- median / percentile: raw target values (or whole rows when grouping), the
  statistic is computed client-side.
- any aggregate with `interval`: raw rows, bucketed client-side.
- extraction: raw projection ordered by timestamp, newest first.

Raw-row fetches are ordered newest first so the row cap keeps the latest events.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from cenote.models.enums import QueryType
from cenote.models.schemas import QueryRequest
from cenote.sql.identifiers import (
    TIMESTAMP_COLUMN,
    QueryParameters,
    quote_column,
    quote_table,
    validate_name,
)


# =============================================================================
# CONSTANTS
# =============================================================================

# SQL aggregate expression template and result alias per archetype
AGGREGATE_EXPRESSIONS: Dict[QueryType, Tuple[str, str]] = {
    QueryType.COUNT: ('COUNT(*)', 'count'),
    QueryType.MINIMUM: ('MIN({column})', 'min'),
    QueryType.MAXIMUM: ('MAX({column})', 'max'),
    QueryType.SUM: ('SUM({column})', 'sum'),
    QueryType.AVERAGE: ('AVG({column})', 'avg'),
    QueryType.COUNT_UNIQUE: ('COUNT(DISTINCT {column})', 'count'),
}


@dataclass
class CompiledQuery:
    """Final statement text plus its positional parameter values."""
    sql: str
    params: List[Any] = field(default_factory=list)


# =============================================================================
# CLAUSE HELPERS
# =============================================================================

def where_clause(predicates: List[Optional[str]]) -> str:
    """Conjoin the non-empty predicate fragments into a WHERE clause."""
    parts = [f'({p})' for p in predicates if p]
    if not parts:
        return ''
    return ' WHERE ' + ' AND '.join(parts)


def _finish(sql: str, request: QueryRequest, params: QueryParameters) -> CompiledQuery:
    limit = params.add(request.latest)
    return CompiledQuery(sql=f'{sql} LIMIT {limit}', params=list(params.values))


def _newest_first() -> str:
    return f' ORDER BY {quote_column(TIMESTAMP_COLUMN)} DESC'


# =============================================================================
# ARCHETYPE BUILDERS
# =============================================================================

def build_aggregate_query(
    request: QueryRequest,
    params: QueryParameters,
    predicates: List[Optional[str]],
) -> CompiledQuery:
    """
    Build the SQL-side aggregate for count, minimum, maximum, sum, average,
    count_unique and select_unique.

    Example (sum of voltage grouped by device):
        SELECT "device", SUM("voltage") AS "sum" FROM "pid1_measurements"
        WHERE ("cenote$timestamp" >= $1::timestamptz AND ...) GROUP BY "device" LIMIT $3
    """
    table = quote_table(request.project_id, request.event_collection)

    if request.query_type is QueryType.SELECT_UNIQUE:
        target = quote_column(request.target_property)
        expression = f'ARRAY_AGG(DISTINCT {target}) AS {target}'
    else:
        template, alias = AGGREGATE_EXPRESSIONS[request.query_type]
        column = quote_column(request.target_property) if request.target_property else ''
        expression = f'{template.format(column=column)} AS "{alias}"'

    select = expression
    group = ''
    if request.group_by:
        group_column = quote_column(request.group_by)
        select = f'{group_column}, {expression}'
        group = f' GROUP BY {group_column}'

    sql = f'SELECT {select} FROM {table}{where_clause(predicates)}{group}'
    return _finish(sql, request, params)


def build_raw_rows_query(
    request: QueryRequest,
    params: QueryParameters,
    predicates: List[Optional[str]],
) -> CompiledQuery:
    """
    Build an unaggregated fetch for client-side reduction.

    Whole rows are selected when bucketing by interval or grouping by a
    property; otherwise only the target column is projected.
    """
    table = quote_table(request.project_id, request.event_collection)
    if request.interval or request.group_by or not request.target_property:
        projection = '*'
    else:
        projection = quote_column(request.target_property)
    sql = f'SELECT {projection} FROM {table}{where_clause(predicates)}{_newest_first()}'
    return _finish(sql, request, params)


def build_extraction_query(
    request: QueryRequest,
    params: QueryParameters,
    predicates: List[Optional[str]],
) -> CompiledQuery:
    """Build a raw projection (`*` or the requested property list), newest first."""
    table = quote_table(request.project_id, request.event_collection)
    if request.target_properties:
        projection = ', '.join(quote_column(p) for p in request.target_properties)
    else:
        projection = '*'
    sql = f'SELECT {projection} FROM {table}{where_clause(predicates)}{_newest_first()}'
    return _finish(sql, request, params)


def build_query(
    request: QueryRequest,
    params: QueryParameters,
    predicates: List[Optional[str]],
) -> CompiledQuery:
    """
    Dispatch to the builder matching the request's archetype.

    Interval requests always fetch raw rows; bucketed aggregation happens in
    the post-processor.
    """
    if request.query_type is QueryType.EXTRACTION:
        return build_extraction_query(request, params, predicates)
    if request.interval or request.query_type in (QueryType.MEDIAN, QueryType.PERCENTILE):
        return build_raw_rows_query(request, params, predicates)
    return build_aggregate_query(request, params, predicates)


# =============================================================================
# AUXILIARY STATEMENTS
# =============================================================================

def build_outlier_stats_query(project_id: str, collection: str, prop: str) -> CompiledQuery:
    """Mean and standard deviation of one column over the whole, unfiltered collection."""
    table = quote_table(project_id, collection)
    column = quote_column(prop)
    return CompiledQuery(
        sql=f'SELECT AVG({column}) AS "mean", STDDEV({column}) AS "stddev" FROM {table}'
    )


def build_collections_query(project_id: str) -> CompiledQuery:
    """Columns of every event collection table owned by a project."""
    validate_name(project_id, 'project id')
    return CompiledQuery(
        sql=(
            'SELECT table_name, column_name, data_type FROM information_schema.columns '
            "WHERE table_schema = 'public' AND table_name LIKE $1 "
            'ORDER BY table_name, ordinal_position'
        ),
        params=[f'{project_id}\\_%'],
    )


def build_column_types_query(project_id: str, collection: str) -> CompiledQuery:
    """Column names and data types of one event collection table."""
    table = f'{validate_name(project_id, "project id")}_{validate_name(collection, "collection")}'
    return CompiledQuery(
        sql=(
            'SELECT table_name, column_name, data_type FROM information_schema.columns '
            "WHERE table_schema = 'public' AND table_name = $1"
        ),
        params=[table],
    )


def build_project_query(projects_table: str, project_id: str) -> CompiledQuery:
    """Look up one project's capability keys."""
    table = f'"{validate_name(projects_table, "projects table")}"'
    return CompiledQuery(
        sql=(
            f'SELECT project_id, read_key, write_key, master_key, organization '
            f'FROM {table} WHERE project_id = $1 LIMIT 1'
        ),
        params=[project_id],
    )
