"""
Aggregation Post-Processor.

Client-side reductions applied to raw rows fetched by the query builder:

- Interval bucketing: rows are partitioned by the calendar start of the minute,
  hour, day, week (Monday), month or year of their ``cenote$timestamp`` in UTC,
  and each bucket is reduced by the requested aggregate.
- Percentile: nearest-rank, via ``numpy.percentile(method="inverted_cdf")``.
- Grouping by property: partitions rows by the literal value of one column.
- Object-of-arrays transposition for extraction results.

Reductions follow SQL aggregate semantics and ignore NULL values. Keys are
never rewritten, so flattened ``meta$device`` style columns pass through.

Output shapes:
    group_by_interval -> [{"interval": "01-Jan-2026:10:00", "result": 10}, ...]
    group_by_property -> [{"device": "a", "percentile": 12.5}, ...]
"""

import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

import numpy as np
import pandas as pd

from cenote.core.errors import BadQuery
from cenote.models.enums import Interval, QueryType
from cenote.sql.identifiers import TIMESTAMP_COLUMN


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# pandas period frequency per bucket granularity; W-SUN periods start on Monday
INTERVAL_FREQUENCIES: Dict[Interval, str] = {
    Interval.MINUTELY: 'min',
    Interval.HOURLY: 'h',
    Interval.DAILY: 'D',
    Interval.WEEKLY: 'W-SUN',
    Interval.MONTHLY: 'M',
    Interval.YEARLY: 'Y',
}

INTERVAL_LABELS: Dict[Interval, str] = {
    Interval.MINUTELY: '%d-%b-%Y:%H:%M',
    Interval.HOURLY: '%d-%b-%Y:%H:%M',
    Interval.DAILY: '%d-%b-%Y',
    Interval.WEEKLY: '%d-%b-%Y',
    Interval.MONTHLY: '%b-%Y',
    Interval.YEARLY: '%Y',
}

MEDIAN_RANK = 50.0


# =============================================================================
# Percentile
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def percentile(values: List[Any], rank: float) -> Optional[float]:
    """
    Nearest-rank percentile of a numeric list.

    The value returned is always an element of the input: the smallest value
    whose cumulative share of the sorted list reaches ``rank`` percent.

    Args:
        values: Raw values; NULLs and non-numeric entries are ignored.
        rank: Percentile rank in [0, 100]. Rank 0 is the minimum, 100 the
            maximum and 50 the median (the lower median for even lengths).

    Returns:
        The percentile value, or None for an empty input.

    Raises:
        BadQuery: If rank lies outside [0, 100].

    Example:
        >>> percentile([3, 1, 2], 50)
        2.0
        >>> percentile([7], 90)
        7.0
        >>> percentile([], 50) is None
        True
    """
    if rank is None or not 0 <= rank <= 100:
        raise BadQuery('`percentile` must be a number between 0 and 100')
    numbers = [float(v) for v in values if _is_number(v)]
    if not numbers:
        return None
    return float(np.percentile(np.asarray(numbers), rank, method='inverted_cdf'))


# =============================================================================
# Reductions
# =============================================================================


def _present(rows: List[Dict[str, Any]], target: Optional[str]) -> List[Any]:
    return [row.get(target) for row in rows if row.get(target) is not None]


def _is_hashable(value: Any) -> bool:
    # Tuples holding lists pass isinstance(..., Hashable) but fail to hash
    try:
        hash(value)
    except TypeError:
        return False
    return True


def distinct(values: List[Any]) -> List[Any]:
    """Distinct values in first-seen order; tolerates unhashable values such as arrays."""
    seen = set()
    result = []
    for value in values:
        if _is_hashable(value):
            if value in seen:
                continue
            seen.add(value)
        elif value in result:
            continue
        result.append(value)
    return result


def _minimum(values: List[Any]) -> Any:
    return min(values) if values else None


def _maximum(values: List[Any]) -> Any:
    return max(values) if values else None


def _average(values: List[Any]) -> Optional[float]:
    return sum(values) / len(values) if values else None


REDUCERS: Dict[QueryType, Callable[[List[Any]], Any]] = {
    QueryType.MINIMUM: _minimum,
    QueryType.MAXIMUM: _maximum,
    QueryType.SUM: sum,
    QueryType.AVERAGE: _average,
    QueryType.COUNT_UNIQUE: lambda values: len(distinct(values)),
    QueryType.SELECT_UNIQUE: distinct,
}


def reduce_rows(
    rows: List[Dict[str, Any]],
    query_type: QueryType,
    target: Optional[str] = None,
    rank: Optional[float] = None,
) -> Any:
    """
    Reduce one bucket or group of rows with the archetype's aggregate.

    Raises:
        BadQuery: If the values cannot be compared or summed, or the archetype
            has no client-side reduction.
    """
    if query_type is QueryType.COUNT:
        return len(rows)
    if query_type is QueryType.MEDIAN:
        return percentile([row.get(target) for row in rows], MEDIAN_RANK)
    if query_type is QueryType.PERCENTILE:
        return percentile([row.get(target) for row in rows], rank)

    reducer = REDUCERS.get(query_type)
    if reducer is None:
        raise BadQuery(f'`{query_type.value}` cannot be aggregated by interval or group')
    try:
        return reducer(_present(rows, target))
    except TypeError as e:
        raise BadQuery(f'Cannot compute {query_type.value} of "{target}": {e}') from e


# =============================================================================
# Interval Bucketing
# =============================================================================


def _parse_timestamp(value: Any) -> pd.Timestamp:
    if value is None:
        raise BadQuery(f'Row has no "{TIMESTAMP_COLUMN}" value to bucket by')
    try:
        if _is_number(value):
            ts = pd.Timestamp(value, unit='ms', tz='UTC')
        else:
            ts = pd.Timestamp(value)
    except (ValueError, TypeError) as e:
        raise BadQuery(f'Invalid "{TIMESTAMP_COLUMN}" value: {value!r}') from e
    if pd.isna(ts):
        raise BadQuery(f'Invalid "{TIMESTAMP_COLUMN}" value: {value!r}')
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts


def bucket_start(value: Any, interval: Interval) -> pd.Timestamp:
    """Calendar start (UTC, naive) of the bucket holding a timestamp value."""
    ts = _parse_timestamp(value)
    return ts.to_period(INTERVAL_FREQUENCIES[interval]).start_time


def bucket_label(start: pd.Timestamp, interval: Interval) -> str:
    return start.strftime(INTERVAL_LABELS[interval])


def partition_by_interval(
    rows: List[Dict[str, Any]],
    interval: Interval,
) -> List[Tuple[pd.Timestamp, List[Dict[str, Any]]]]:
    """
    Partition rows into disjoint calendar buckets.

    Every input row lands in exactly one bucket. Buckets are returned in
    ascending order of their start instant.

    Raises:
        BadQuery: If a row lacks a parseable timestamp.
    """
    buckets: Dict[pd.Timestamp, List[Dict[str, Any]]] = {}
    for row in rows:
        start = bucket_start(row.get(TIMESTAMP_COLUMN), interval)
        buckets.setdefault(start, []).append(row)
    return sorted(buckets.items(), key=lambda item: item[0])


def group_by_interval(
    rows: List[Dict[str, Any]],
    interval: Interval,
    query_type: QueryType,
    target: Optional[str] = None,
    rank: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """
    Bucket rows by interval and reduce each bucket.

    Args:
        rows: Raw rows carrying ``cenote$timestamp``.
        interval: Bucket granularity.
        query_type: Archetype whose aggregate reduces each bucket.
        target: Property the aggregate reads (unused by count).
        rank: Percentile rank for the percentile archetype.

    Returns:
        ``[{"interval": label, "result": value}]`` ordered by bucket start.
    """
    results = [
        {'interval': bucket_label(start, interval), 'result': reduce_rows(bucket, query_type, target, rank)}
        for start, bucket in partition_by_interval(rows, interval)
    ]
    logger.debug(f"Bucketed {len(rows)} rows into {len(results)} {interval.value} intervals")
    return results


# =============================================================================
# Grouping By Property
# =============================================================================


def group_by_property(
    rows: List[Dict[str, Any]],
    column: str,
    query_type: QueryType,
    target: Optional[str] = None,
    rank: Optional[float] = None,
    result_key: str = 'result',
) -> List[Dict[str, Any]]:
    """
    Partition rows by the literal value of ``column`` and reduce each group.

    Groups appear in first-seen order as ``{column: value, result_key: reduced}``.

    Raises:
        BadQuery: If the retrieved rows do not carry ``column``.
    """
    if not rows:
        return []
    if column not in rows[0]:
        raise BadQuery(f'column "{column}" does not exist')

    keys: List[Any] = []
    groups: List[List[Dict[str, Any]]] = []
    index_by_key: Dict[Hashable, int] = {}
    for row in rows:
        key = row.get(column)
        if _is_hashable(key):
            index = index_by_key.setdefault(key, len(keys))
        else:
            # Arrays and objects fall back to an equality scan
            index = next((i for i, seen in enumerate(keys) if seen == key), len(keys))
        if index == len(keys):
            keys.append(key)
            groups.append([])
        groups[index].append(row)

    return [
        {column: key, result_key: reduce_rows(group, query_type, target, rank)}
        for key, group in zip(keys, groups)
    ]


# =============================================================================
# Transposition
# =============================================================================


def to_object_of_arrays(rows: List[Dict[str, Any]]) -> Dict[str, List[Any]]:
    """
    Transpose a list of row objects into one object of column arrays.

    Rows with divergent key sets produce arrays of different lengths.

    Example:
        >>> to_object_of_arrays([{"a": 1, "b": 2}, {"a": 3}])
        {'a': [1, 3], 'b': [2]}
    """
    columns: Dict[str, List[Any]] = {}
    for row in rows:
        for key, value in row.items():
            columns.setdefault(key, []).append(value)
    return columns

