"""
Outlier Detector.

Restricts a query to rows inside (``exclude``) or outside (``only``) a band of
``k`` standard deviations around the mean of one property.

The mean and standard deviation come from the stats cache. On a miss they are
computed once over the whole, unfiltered column with a single aggregate query
and written back without expiry (cache-aside). Concurrent misses may both
recompute; the last write wins.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from cenote.core.cache import StatsCache, stats_key
from cenote.core.database import EventStore
from cenote.core.errors import BadQuery
from cenote.models.enums import OutlierMode
from cenote.models.schemas import OutlierStat
from cenote.sql.identifiers import QueryParameters, quote_column
from cenote.sql.query_builder import build_outlier_stats_query


logger = logging.getLogger(__name__)

DEFAULT_OUTLIER_K = 3.0


def outlier_predicate(
    stat: OutlierStat,
    column: str,
    mode: OutlierMode,
    k: float,
    params: QueryParameters,
) -> Optional[str]:
    """
    Compile the outlier band for one column.

    Args:
        stat: Mean and standard deviation of the column.
        column: Property the band applies to.
        mode: include (no predicate), exclude or only.
        k: Band half-width in standard deviations.
        params: Collector receiving the band bounds.

    Returns:
        Predicate fragment, or None when nothing should be restricted.

    Example:
        stat = OutlierStat(mean=15, stddev=5), k = 3
        exclude -> "voltage" BETWEEN $1 AND $2    with [0.0, 30.0]
        only    -> ("voltage" < $1 OR "voltage" > $2)
    """
    if mode is OutlierMode.INCLUDE:
        return None

    quoted = quote_column(column)
    if stat.mean is None:
        # Empty column: nothing is an outlier
        return None if mode is OutlierMode.EXCLUDE else 'FALSE'

    stddev = stat.stddev or 0.0
    low = params.add(stat.mean - k * stddev)
    high = params.add(stat.mean + k * stddev)
    if mode is OutlierMode.EXCLUDE:
        return f'{quoted} BETWEEN {low} AND {high}'
    return f'({quoted} < {low} OR {quoted} > {high})'


class OutlierDetector:
    """
    Builds outlier predicates from cached column statistics.

    Attributes:
        store: Event store used to compute missing statistics.
        cache: Stats cache holding ``{mean, stddev}`` documents.
        k: Band half-width in standard deviations.
    """

    def __init__(self, store: EventStore, cache: StatsCache, k: float = DEFAULT_OUTLIER_K) -> None:
        self.store = store
        self.cache = cache
        self.k = k

    async def get_stats(self, project_id: str, collection: str, prop: str) -> OutlierStat:
        """Read the column statistics, computing and caching them on a miss."""
        key = stats_key(project_id, collection, prop)
        cached = await self.cache.get_json(key)
        if cached is not None:
            try:
                return OutlierStat.model_validate(cached)
            except ValidationError as e:
                raise BadQuery(f'Cached statistics for "{key}" are malformed') from e

        logger.info(f"Computing outlier statistics for {key}")
        query = build_outlier_stats_query(project_id, collection, prop)
        row = await self.store.fetch_one(query.sql, *query.params) or {}
        stat = OutlierStat(mean=row.get('mean'), stddev=row.get('stddev'))
        await self.cache.set_json(key, stat.model_dump())
        return stat

    async def predicate(
        self,
        project_id: str,
        collection: str,
        prop: Optional[str],
        mode: OutlierMode,
        params: QueryParameters,
    ) -> Optional[str]:
        """Outlier predicate for a request; no I/O when outliers are included."""
        if mode is OutlierMode.INCLUDE or not prop:
            return None
        stat = await self.get_stats(project_id, collection, prop)
        return outlier_predicate(stat, prop, mode, self.k, params)
