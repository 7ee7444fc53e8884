"""
Timeframe Resolver for the Cenote query engine.

Turns the optional `timeframe` query parameter into an absolute, half-open
``[start, end)`` window over the reserved timestamp column.

Accepted forms:
- An object ``{"start": ISO-instant, "end": ISO-instant}``, either as a dict or
  as its JSON encoding in the query string.
- A relative expression ``[this|previous]_<n>_<unit>`` where unit is one of
  seconds, minutes, hours, days, weeks, months, years.

Relative resolution (``now`` read once per request):
- ``this_N_unit``     -> ``[now - N*unit, now]``
- ``previous_N_unit`` -> ``[now - 2N*unit, now - N*unit]``

Months and years use calendar arithmetic via ``pandas.DateOffset``. Instants
without an offset are read as UTC. Anything unparseable is a BadQuery.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

import pandas as pd

from cenote.core.errors import BadQuery
from cenote.sql.identifiers import TIMESTAMP_COLUMN, QueryParameters, quote_column


# =============================================================================
# CONSTANTS
# =============================================================================

RELATIVE_TIMEFRAME_PATTERN = re.compile(
    r'^(this|previous)_(\d+)_(seconds|minutes|hours|days|weeks|months|years)$'
)


@dataclass(frozen=True)
class TimeWindow:
    """Resolved absolute bounds; ``start`` inclusive, ``end`` exclusive, both UTC."""
    start: datetime
    end: datetime


# =============================================================================
# RESOLUTION
# =============================================================================

def _parse_instant(value: Any, field: str) -> datetime:
    if not isinstance(value, str) or not value.strip():
        raise BadQuery(f'Timeframe `{field}` must be an ISO-8601 string')
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError) as e:
        raise BadQuery(f'Timeframe `{field}` is not a valid ISO-8601 instant: {value}') from e
    if pd.isna(ts):
        raise BadQuery(f'Timeframe `{field}` is not a valid ISO-8601 instant: {value}')
    ts = ts.tz_localize('UTC') if ts.tzinfo is None else ts.tz_convert('UTC')
    return ts.to_pydatetime()


def _resolve_absolute(value: dict) -> TimeWindow:
    start = _parse_instant(value.get('start'), 'start')
    end = _parse_instant(value.get('end'), 'end')
    if start >= end:
        raise BadQuery('Timeframe `start` must be earlier than `end`')
    return TimeWindow(start=start, end=end)


def _resolve_relative(expression: str, now: datetime) -> TimeWindow:
    match = RELATIVE_TIMEFRAME_PATTERN.match(expression)
    if not match:
        raise BadQuery(
            f'Invalid timeframe "{expression}": expected {{"start", "end"}} or '
            f'[this|previous]_<n>_<seconds|minutes|hours|days|weeks|months|years>'
        )
    direction, amount, unit = match.group(1), int(match.group(2)), match.group(3)
    if amount <= 0:
        raise BadQuery(f'Invalid timeframe "{expression}": the amount must be positive')

    anchor = pd.Timestamp(now)
    try:
        one_span = pd.DateOffset(**{unit: amount})
        if direction == 'this':
            start, end = anchor - one_span, anchor
        else:
            start, end = anchor - pd.DateOffset(**{unit: 2 * amount}), anchor - one_span
        return TimeWindow(start=start.to_pydatetime(), end=end.to_pydatetime())
    except (ValueError, OverflowError, pd.errors.OutOfBoundsDatetime) as e:
        raise BadQuery(f'Timeframe "{expression}" is out of range') from e


def resolve_timeframe(
    timeframe: Optional[Union[str, dict]],
    now: Optional[datetime] = None,
) -> Optional[TimeWindow]:
    """
    Resolve a timeframe parameter into absolute bounds.

    Args:
        timeframe: Raw parameter (None/empty for unbounded).
        now: Clock reading for relative expressions; defaults to the current UTC time.

    Returns:
        TimeWindow, or None when no timeframe was supplied.

    Raises:
        BadQuery: If the value does not parse.

    Example:
        >>> resolve_timeframe('this_2_hours', now=datetime(2026, 1, 1, 12, tzinfo=timezone.utc))
        TimeWindow(start=datetime(2026, 1, 1, 10, 0, tzinfo=...), end=datetime(2026, 1, 1, 12, 0, tzinfo=...))
    """
    if timeframe is None or timeframe == '':
        return None
    if now is None:
        now = datetime.now(timezone.utc)

    if isinstance(timeframe, dict):
        return _resolve_absolute(timeframe)

    text = timeframe.strip()
    if text.startswith('{'):
        try:
            decoded = json.loads(text)
        except ValueError as e:
            raise BadQuery(f'Invalid timeframe object: {text}') from e
        if not isinstance(decoded, dict):
            raise BadQuery(f'Invalid timeframe object: {text}')
        return _resolve_absolute(decoded)

    return _resolve_relative(text, now)


def timeframe_predicate(window: Optional[TimeWindow], params: QueryParameters) -> Optional[str]:
    """Compile a resolved window into a predicate on the timestamp column."""
    if window is None:
        return None
    column = quote_column(TIMESTAMP_COLUMN)
    start = params.add(window.start)
    end = params.add(window.end)
    return f'{column} >= {start}::timestamptz AND {column} < {end}::timestamptz'
