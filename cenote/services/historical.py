"""
Historical Rollup Reader ("eeRIS" views).

Reconstructs day, week and month views from the pre-aggregated rollup stored
under ``{projectId}_{collection}_{property}_hist``. The rollup is one flat JSON
object whose keys are ``<stat>_<bucket>``:

    avg_2026-03        min_2026-03        max_2026-03          (month)
    avg_2026-03-14     sum_2026-03-14     count_2026-03-14 ... (day)
    avg_2026-03-14_09  ...                                     (hour)

Views:
- week:  the 7 days ending at the reference date. ``values`` holds the daily
         averages oldest first; ``avg`` is the count-weighted mean of the 7
         days, ``min`` skips zero-valued days and ``max`` is the running max.
- month: month bucket for the stats; daily averages from the 1st through the
         reference day as ``values``.
- day:   day bucket for the stats; the 24 hourly averages as ``values``.

A bucket missing from the rollup reads as 0 and is never skipped. The rollup
is produced at ingestion time elsewhere; this module only reads it.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pandas as pd

from cenote.core.cache import StatsCache, rollup_key
from cenote.core.errors import BadQuery, TargetNotProvided
from cenote.models.enums import HistoricalViewType
from cenote.models.schemas import HistoricalStats, HistoricalView
from cenote.services.access import ProjectRegistry, authenticate
from cenote.sql.identifiers import validate_name, validate_property


logger = logging.getLogger(__name__)

WEEK_DAYS = 7
DAY_HOURS = 24

Rollup = Dict[str, Any]


def _value(rollup: Rollup, key: str) -> float:
    value = rollup.get(key) or 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadQuery(f'Rollup entry "{key}" is not numeric')
    return float(value)


def _day_bucket(day: date) -> str:
    return day.strftime('%Y-%m-%d')


# =============================================================================
# View Reconstruction
# =============================================================================


def week_view(rollup: Rollup, reference: date) -> HistoricalView:
    values = []
    total_sum = 0.0
    total_count = 0.0
    low = math.inf
    high = -math.inf
    for offset in range(WEEK_DAYS):
        bucket = _day_bucket(reference - timedelta(days=offset))
        total_count += _value(rollup, f'count_{bucket}')
        total_sum += _value(rollup, f'sum_{bucket}')
        values.insert(0, _value(rollup, f'avg_{bucket}'))
        day_min = _value(rollup, f'min_{bucket}')
        day_max = _value(rollup, f'max_{bucket}')
        if day_min != 0 and day_min < low:
            low = day_min
        if day_max > high:
            high = day_max

    stats = HistoricalStats(
        avg=total_sum / total_count if total_count else 0,
        min=low if math.isfinite(low) else 0,
        max=high if math.isfinite(high) else 0,
    )
    return HistoricalView(values=values, stats=stats)


def month_view(rollup: Rollup, reference: date) -> HistoricalView:
    bucket = reference.strftime('%Y-%m')
    values = [
        _value(rollup, f'avg_{_day_bucket(reference.replace(day=day))}')
        for day in range(1, reference.day + 1)
    ]
    stats = HistoricalStats(
        avg=_value(rollup, f'avg_{bucket}'),
        min=_value(rollup, f'min_{bucket}'),
        max=_value(rollup, f'max_{bucket}'),
    )
    return HistoricalView(values=values, stats=stats)


def day_view(rollup: Rollup, reference: date) -> HistoricalView:
    bucket = _day_bucket(reference)
    values = [_value(rollup, f'avg_{bucket}_{hour:02d}') for hour in range(DAY_HOURS)]
    stats = HistoricalStats(
        avg=_value(rollup, f'avg_{bucket}'),
        min=_value(rollup, f'min_{bucket}'),
        max=_value(rollup, f'max_{bucket}'),
    )
    return HistoricalView(values=values, stats=stats)


VIEW_BUILDERS = {
    HistoricalViewType.WEEK: week_view,
    HistoricalViewType.MONTH: month_view,
    HistoricalViewType.DAY: day_view,
}


# =============================================================================
# Reader
# =============================================================================


def parse_view_type(raw: Optional[str]) -> HistoricalViewType:
    try:
        return HistoricalViewType(raw)
    except ValueError as e:
        raise BadQuery('Wrong or missing `type` parameter') from e


def parse_reference_date(raw: Optional[str], today: Optional[date] = None) -> date:
    if not raw:
        return today or datetime.now(timezone.utc).date()
    try:
        ts = pd.Timestamp(raw)
    except (ValueError, TypeError) as e:
        raise BadQuery(f'Invalid `dt` parameter: {raw}') from e
    if pd.isna(ts):
        raise BadQuery(f'Invalid `dt` parameter: {raw}')
    return ts.date()


class HistoricalReader:
    """Serves eeRIS views from the rollup cache after the usual access checks."""

    def __init__(self, cache: StatsCache, registry: ProjectRegistry) -> None:
        self.cache = cache
        self.registry = registry

    async def view(
        self,
        project_id: str,
        read_key: Optional[str],
        master_key: Optional[str],
        event_collection: Optional[str],
        target_property: Optional[str],
        view_type: Optional[str],
        dt: Optional[str] = None,
        today: Optional[date] = None,
    ) -> HistoricalView:
        """
        Reconstruct one historical view.

        Args:
            project_id: Project owning the collection.
            read_key: Presented read key.
            master_key: Presented master key.
            event_collection: Collection whose property was rolled up.
            target_property: Rolled-up property.
            view_type: day, week or month.
            dt: Reference date (ISO); required for day views.
            today: Fallback reference date (defaults to today, UTC).

        Raises:
            QueryError: Access failure, missing target, bad type or date, or
                cache failure.
        """
        await authenticate(self.registry, project_id, read_key, master_key)
        collection = validate_name(event_collection, 'event collection')
        if not target_property:
            raise TargetNotProvided()
        prop = validate_property(target_property, 'target property')

        kind = parse_view_type(view_type)
        if kind is HistoricalViewType.DAY and not dt:
            raise BadQuery('`dt` is required for `day` views')
        reference = parse_reference_date(dt, today)

        rollup = await self.cache.get_json(rollup_key(project_id, collection, prop)) or {}
        logger.debug(f"Building {kind.value} view for {project_id}_{collection}_{prop} at {reference}")
        return VIEW_BUILDERS[kind](rollup, reference)
