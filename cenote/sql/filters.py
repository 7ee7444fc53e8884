"""
Filter Compiler for the Cenote query engine.

Parses the JSON-encoded `filters` query parameter and compiles it two ways
with identical comparison semantics:

1. ``filters_predicate``: a conjoined SQL predicate where each property name
   has passed the identifier allow-list and each value is a bound parameter.
2. ``apply_filters``: a client-side post-filter over decoded rows, used by the
   archetypes that re-filter after retrieval (percentile/median, count_unique,
   select_unique, extraction). Rows that do not carry the filtered column pass
   through untouched, so post-filtering composes with narrow projections.

Quirk preserved from the public contract: a `filters` value that is not valid
JSON, or not a JSON array, means "no filters" rather than an error. Elements of
a valid array are strictly validated.

Value coercion:
JSON only carries strings, numbers and booleans, so ``coerce_filters`` converts
each value to the kind of the column it is compared to before binding:
ISO-8601 strings become aware UTC datetimes for timestamp columns, numeric
strings become floats for numeric columns and numbers become text for text
columns. ``cenote$timestamp`` is always a timestamp column; other columns are
classified from ``information_schema`` data types.
"""

import json
import logging
import operator
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import pandas as pd
from pydantic import ValidationError

from cenote.core.errors import BadQuery
from cenote.models.enums import ColumnKind, FilterOperator
from cenote.models.schemas import Filter
from cenote.sql.identifiers import TIMESTAMP_COLUMN, QueryParameters, quote_column, validate_property


logger = logging.getLogger(__name__)


# =============================================================================
# OPERATOR TABLES
# =============================================================================

OPERATOR_SQL: Dict[FilterOperator, str] = {
    FilterOperator.EQ: '=',
    FilterOperator.GT: '>',
    FilterOperator.GTE: '>=',
    FilterOperator.LT: '<',
    FilterOperator.LTE: '<=',
    FilterOperator.NE: '<>',
}

OPERATOR_PY: Dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.EQ: operator.eq,
    FilterOperator.GT: operator.gt,
    FilterOperator.GTE: operator.ge,
    FilterOperator.LT: operator.lt,
    FilterOperator.LTE: operator.le,
    FilterOperator.NE: operator.ne,
}

# information_schema data types (PostgreSQL and CockroachDB spellings)
NUMERIC_TYPES = frozenset({
    'smallint', 'integer', 'bigint', 'int', 'int2', 'int4', 'int8',
    'real', 'double precision', 'float', 'float4', 'float8', 'numeric', 'decimal',
})
TEXT_TYPES = frozenset({'text', 'string', 'varchar', 'char', 'character', 'character varying', 'name'})
BOOLEAN_TYPES = frozenset({'boolean', 'bool'})

# Casts pin the parameter type so the backend compares against the column's family
PARAMETER_CASTS = {
    datetime: '::timestamptz',
    float: '::float8',
}


# =============================================================================
# PARSING
# =============================================================================

def parse_filters(raw: Optional[Union[str, List[Any]]]) -> List[Filter]:
    """
    Decode and validate the `filters` parameter.

    Args:
        raw: JSON-encoded array of ``{property_name, operator, property_value}``,
            an already-decoded list, or None.

    Returns:
        Ordered list of validated Filter objects (empty for absent/malformed JSON).

    Raises:
        BadQuery: If an element is not an object, names an invalid property or
            uses an unsupported operator.
    """
    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.debug(f"Ignoring malformed filters parameter: {raw!r}")
            return []
    else:
        decoded = raw
    if not isinstance(decoded, list):
        return []

    filters: List[Filter] = []
    for item in decoded:
        if not isinstance(item, dict):
            raise BadQuery('Each filter must be an object with property_name, operator and property_value')
        validate_property(item.get('property_name'), 'filter property')
        try:
            filters.append(Filter(**item))
        except ValidationError as e:
            raise BadQuery(
                f'Invalid filter operator "{item.get("operator")}": must be one of '
                f'{", ".join(op.value for op in FilterOperator)}'
            ) from e
    return filters


# =============================================================================
# VALUE COERCION
# =============================================================================

def column_kind(data_type: Optional[str]) -> ColumnKind:
    """Classify an ``information_schema`` data type into a comparison family."""
    name = (data_type or '').strip().lower()
    if name.startswith('timestamp') or name == 'date':
        return ColumnKind.TIMESTAMP
    if name in NUMERIC_TYPES:
        return ColumnKind.NUMBER
    if name in TEXT_TYPES or name.startswith('character') or name.startswith('varchar'):
        return ColumnKind.TEXT
    if name in BOOLEAN_TYPES:
        return ColumnKind.BOOLEAN
    return ColumnKind.OTHER


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_utc(value: Any) -> Optional[datetime]:
    """Read a date, datetime, ISO string or epoch milliseconds as aware UTC; None if unparseable."""
    try:
        if _is_number(value):
            ts = pd.Timestamp(value, unit='ms', tz='UTC')
        elif isinstance(value, (str, date)):
            ts = pd.Timestamp(value)
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    ts = ts.tz_localize('UTC') if ts.tzinfo is None else ts.tz_convert('UTC')
    return ts.to_pydatetime()


def coerce_value(column: str, value: Any, kind: ColumnKind) -> Any:
    """
    Convert one filter value to the family of the column it is compared to.

    NULL values and columns of other kinds are left unchanged.

    Raises:
        BadQuery: If the value cannot represent a value of that column.
    """
    if value is None or kind is ColumnKind.OTHER:
        return value

    if kind is ColumnKind.TIMESTAMP:
        instant = _to_utc(value) if not isinstance(value, bool) else None
        if instant is None:
            raise BadQuery(f'Filter value for "{column}" must be an ISO-8601 instant: {value!r}')
        return instant

    if kind is ColumnKind.NUMBER:
        if _is_number(value):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
        raise BadQuery(f'Filter value for "{column}" must be a number: {value!r}')

    if kind is ColumnKind.TEXT:
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, int, float)):
            return json.dumps(value)
        raise BadQuery(f'Filter value for "{column}" must be a string: {value!r}')

    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    if _is_number(value) and value in (0, 1):
        return bool(value)
    raise BadQuery(f'Filter value for "{column}" must be a boolean: {value!r}')


def coerce_filters(
    filters: List[Filter],
    kinds: Optional[Mapping[str, ColumnKind]] = None,
) -> List[Filter]:
    """
    Return filters whose values match their columns' kinds.

    Args:
        filters: Parsed filters.
        kinds: Column name to kind for the queried collection; columns missing
            from it keep their values as decoded, except the reserved
            timestamp column.
    """
    kinds = kinds or {}
    coerced: List[Filter] = []
    for flt in filters:
        kind = kinds.get(flt.property_name)
        if flt.property_name == TIMESTAMP_COLUMN:
            kind = ColumnKind.TIMESTAMP
        if kind is None:
            coerced.append(flt)
            continue
        value = coerce_value(flt.property_name, flt.property_value, kind)
        coerced.append(flt.model_copy(update={'property_value': value}))
    return coerced


# =============================================================================
# SQL COMPILATION
# =============================================================================

def _placeholder(value: Any, params: QueryParameters) -> str:
    return params.add(value) + PARAMETER_CASTS.get(type(value), '')


def filters_predicate(filters: List[Filter], params: QueryParameters) -> Optional[str]:
    """Compile filters into one AND-conjoined predicate, or None when empty."""
    if not filters:
        return None
    clauses = [
        f'{quote_column(f.property_name)} {OPERATOR_SQL[f.operator]} {_placeholder(f.property_value, params)}'
        for f in filters
    ]
    return ' AND '.join(clauses)


# =============================================================================
# CLIENT-SIDE POST-FILTER
# =============================================================================

def _coerce(left: Any, right: Any) -> tuple:
    # Instants compare as aware UTC datetimes
    if isinstance(left, date) or isinstance(right, date):
        left_instant, right_instant = _to_utc(left), _to_utc(right)
        if left_instant is not None and right_instant is not None:
            return left_instant, right_instant
        return left, right
    # Numeric strings compare numerically against numbers
    if _is_number(left) and isinstance(right, str):
        try:
            return left, float(right)
        except ValueError:
            return left, right
    if isinstance(left, str) and _is_number(right):
        try:
            return float(left), right
        except ValueError:
            return left, right
    return left, right


def matches(row: Dict[str, Any], flt: Filter) -> bool:
    """Evaluate one filter against a decoded row."""
    if flt.property_name not in row:
        return True
    left, right = _coerce(row[flt.property_name], flt.property_value)
    try:
        return bool(OPERATOR_PY[flt.operator](left, right))
    except TypeError:
        # Incomparable types (e.g. NULL vs number) only satisfy "ne"
        return flt.operator is FilterOperator.NE


def apply_filter(flt: Filter, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [row for row in rows if matches(row, flt)]


def apply_filters(filters: List[Filter], rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for flt in filters:
        rows = apply_filter(flt, rows)
    return rows
