"""
Test suite for the Outlier Detector and the stats cache adapter.

The tests verify:
1. The exclude/only bands around mean +/- k * stddev
2. Degenerate statistics (empty column, missing stddev)
3. Cache-aside behaviour: hits skip the store, misses compute once and persist
4. StatsCache JSON handling and error translation over redis.asyncio
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cenote.core.cache import StatsCache, rollup_key, stats_key
from cenote.core.errors import BadQuery
from cenote.models.enums import OutlierMode
from cenote.models.schemas import OutlierStat
from cenote.services.outliers import OutlierDetector, outlier_predicate
from cenote.sql.identifiers import QueryParameters


def within_band(value, params):
    low, high = params.values
    return low <= value <= high


# =============================================================================
# BAND COMPILATION
# =============================================================================


class TestOutlierPredicate:
    """Tests for the pure band predicate."""

    def test_exclude_keeps_values_within_k_stddev(self):
        params = QueryParameters()

        predicate = outlier_predicate(OutlierStat(mean=15, stddev=5), 'voltage', OutlierMode.EXCLUDE, 3, params)

        assert predicate == '"voltage" BETWEEN $1 AND $2'
        assert params.values == [0.0, 30.0]
        assert within_band(10, params)
        assert within_band(20, params)
        assert not within_band(1000, params)

    def test_only_is_the_negation(self):
        params = QueryParameters()

        predicate = outlier_predicate(OutlierStat(mean=15, stddev=5), 'voltage', OutlierMode.ONLY, 3, params)

        assert predicate == '("voltage" < $1 OR "voltage" > $2)'
        assert params.values == [0.0, 30.0]

    def test_include_adds_nothing(self):
        params = QueryParameters()

        assert outlier_predicate(OutlierStat(mean=15, stddev=5), 'voltage', OutlierMode.INCLUDE, 3, params) is None
        assert len(params) == 0

    def test_empty_column(self):
        params = QueryParameters()
        stat = OutlierStat(mean=None, stddev=None)

        assert outlier_predicate(stat, 'voltage', OutlierMode.EXCLUDE, 3, params) is None
        assert outlier_predicate(stat, 'voltage', OutlierMode.ONLY, 3, params) == 'FALSE'

    def test_missing_stddev_collapses_band_to_mean(self):
        params = QueryParameters()

        outlier_predicate(OutlierStat(mean=7, stddev=None), 'voltage', OutlierMode.EXCLUDE, 3, params)

        assert params.values == [7.0, 7.0]

    def test_column_is_validated(self):
        with pytest.raises(BadQuery):
            outlier_predicate(OutlierStat(mean=1, stddev=1), 'voltage OR 1=1', OutlierMode.EXCLUDE, 3, QueryParameters())


# =============================================================================
# CACHE-ASIDE STATISTICS
# =============================================================================


class TestOutlierDetector:
    """Tests for lazy statistics lookup."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_the_store(self, event_store, stats_cache):
        stats_cache.documents['p1_measurements_voltage'] = {'mean': 15, 'stddev': 5}
        detector = OutlierDetector(event_store, stats_cache, k=3)
        params = QueryParameters()

        predicate = await detector.predicate('p1', 'measurements', 'voltage', OutlierMode.EXCLUDE, params)

        assert predicate == '"voltage" BETWEEN $1 AND $2'
        assert event_store.queries == []
        assert stats_cache.writes == []

    @pytest.mark.asyncio
    async def test_cache_miss_computes_and_persists(self, event_store, stats_cache):
        event_store.stats_row = {'mean': 15.0, 'stddev': 5.0}
        detector = OutlierDetector(event_store, stats_cache, k=3)

        stat = await detector.get_stats('p1', 'measurements', 'voltage')

        assert stat == OutlierStat(mean=15.0, stddev=5.0)
        assert len(event_store.queries) == 1
        assert 'STDDEV("voltage")' in event_store.queries[0][0]
        assert stats_cache.documents['p1_measurements_voltage'] == {'mean': 15.0, 'stddev': 5.0}

    @pytest.mark.asyncio
    async def test_second_lookup_uses_persisted_stats(self, event_store, stats_cache):
        event_store.stats_row = {'mean': 1.0, 'stddev': 0.5}
        detector = OutlierDetector(event_store, stats_cache)

        await detector.get_stats('p1', 'measurements', 'voltage')
        await detector.get_stats('p1', 'measurements', 'voltage')

        assert len(event_store.queries) == 1

    @pytest.mark.asyncio
    async def test_include_performs_no_io(self, event_store, stats_cache):
        detector = OutlierDetector(event_store, stats_cache)

        assert await detector.predicate('p1', 'measurements', 'voltage', OutlierMode.INCLUDE, QueryParameters()) is None
        assert event_store.queries == []

    @pytest.mark.asyncio
    async def test_malformed_cached_stats(self, event_store, stats_cache):
        stats_cache.documents['p1_measurements_voltage'] = {'mean': 'lots'}
        detector = OutlierDetector(event_store, stats_cache)

        with pytest.raises(BadQuery):
            await detector.get_stats('p1', 'measurements', 'voltage')


# =============================================================================
# STATS CACHE ADAPTER
# =============================================================================


class TestStatsCache:
    """Tests for StatsCache over a mocked redis.asyncio client."""

    def test_keys(self):
        assert stats_key('p1', 'measurements', 'voltage') == 'p1_measurements_voltage'
        assert rollup_key('p1', 'measurements', 'voltage') == 'p1_measurements_voltage_hist'

    @pytest.mark.asyncio
    async def test_get_json(self, mock_redis):
        mock_redis.get.return_value = '{"mean": 15, "stddev": 5}'

        assert await StatsCache(mock_redis).get_json('k') == {'mean': 15, 'stddev': 5}
        mock_redis.get.assert_awaited_once_with('k')

    @pytest.mark.asyncio
    async def test_missing_key(self, mock_redis):
        assert await StatsCache(mock_redis).get_json('k') is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize('raw', ['not json', '[1, 2]'])
    async def test_undecodable_document(self, mock_redis, raw):
        mock_redis.get.return_value = raw

        with pytest.raises(BadQuery):
            await StatsCache(mock_redis).get_json('k')

    @pytest.mark.asyncio
    async def test_set_json_without_expiry(self, mock_redis):
        await StatsCache(mock_redis).set_json('k', {'mean': 1.0, 'stddev': None})

        mock_redis.set.assert_awaited_once_with('k', json.dumps({'mean': 1.0, 'stddev': None}))

    @pytest.mark.asyncio
    async def test_connection_error_becomes_bad_query(self, mock_redis):
        mock_redis.get.side_effect = RedisConnectionError('Connection refused')

        with pytest.raises(BadQuery, match='Connection refused'):
            await StatsCache(mock_redis).get_json('k')

    @pytest.mark.asyncio
    async def test_errors_can_be_redacted(self, mock_redis):
        mock_redis.set.side_effect = RedisConnectionError('redis://secret-host:6379')

        with pytest.raises(BadQuery) as exc_info:
            await StatsCache(mock_redis, expose_errors=False).set_json('k', {})

        assert 'secret-host' not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_calls_are_bounded_by_timeout(self, mock_redis):
        async def hang(key):
            await asyncio.sleep(10)

        mock_redis.get = AsyncMock(side_effect=hang)

        with pytest.raises(BadQuery, match='timed out'):
            await StatsCache(mock_redis, timeout=0.01).get_json('k')

    @pytest.mark.asyncio
    async def test_close(self, mock_redis):
        await StatsCache(mock_redis).close()

        mock_redis.aclose.assert_awaited_once()
