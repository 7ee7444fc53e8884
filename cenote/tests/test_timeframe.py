"""
Test suite for the Timeframe Resolver.

The tests verify:
1. Relative expressions resolve to windows of exactly N units ending at now
2. `previous_N_unit` windows end N units before now
3. Months and years use calendar arithmetic
4. Absolute windows accept dicts and JSON strings, read naive instants as UTC
5. Malformed input is rejected with BadQuery
6. The compiled predicate binds both bounds as parameters
"""

from datetime import datetime, timedelta, timezone

import pytest

from cenote.core.errors import BadQuery
from cenote.sql.identifiers import QueryParameters
from cenote.sql.timeframe import TimeWindow, resolve_timeframe, timeframe_predicate


NOW = datetime(2026, 3, 31, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# RELATIVE TIMEFRAMES
# =============================================================================


class TestRelativeTimeframes:
    """Tests for `[this|previous]_<n>_<unit>` expressions."""

    @pytest.mark.parametrize('unit, amount, expected', [
        ('seconds', 30, timedelta(seconds=30)),
        ('minutes', 15, timedelta(minutes=15)),
        ('hours', 2, timedelta(hours=2)),
        ('days', 7, timedelta(days=7)),
        ('weeks', 3, timedelta(weeks=3)),
    ])
    def test_this_window_has_exact_length_and_ends_now(self, unit, amount, expected):
        window = resolve_timeframe(f'this_{amount}_{unit}', now=NOW)

        assert window.end == NOW
        assert window.end - window.start == expected

    def test_previous_window_precedes_current_window(self):
        window = resolve_timeframe('previous_2_hours', now=NOW)

        assert window.start == NOW - timedelta(hours=4)
        assert window.end == NOW - timedelta(hours=2)

    def test_months_use_calendar_arithmetic(self):
        # March 31 minus one month clamps to the end of February
        window = resolve_timeframe('this_1_months', now=NOW)

        assert window.start == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
        assert window.end == NOW

    def test_years_use_calendar_arithmetic(self):
        window = resolve_timeframe('previous_1_years', now=NOW)

        assert window.start == datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)
        assert window.end == datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)

    def test_defaults_to_current_time(self):
        before = datetime.now(timezone.utc)
        window = resolve_timeframe('this_1_days')
        after = datetime.now(timezone.utc)

        assert before <= window.end <= after
        assert window.end - window.start == timedelta(days=1)

    @pytest.mark.parametrize('expression', [
        'last_2_days',
        'this_2_fortnights',
        'this_two_days',
        'this_0_days',
        'this_-1_days',
        'THIS_1_DAYS',
        'this_1_days; DROP TABLE x',
    ])
    def test_invalid_expressions_are_rejected(self, expression):
        with pytest.raises(BadQuery):
            resolve_timeframe(expression, now=NOW)

    @pytest.mark.parametrize('expression', [
        'this_3000_years',
        'previous_1500_years',
        'this_100000_months',
        'this_999999999999_days',
        'previous_99999999999999999999999_seconds',
    ])
    def test_out_of_range_windows_are_rejected(self, expression):
        with pytest.raises(BadQuery, match='out of range'):
            resolve_timeframe(expression, now=NOW)


# =============================================================================
# ABSOLUTE TIMEFRAMES
# =============================================================================


class TestAbsoluteTimeframes:
    """Tests for `{"start", "end"}` objects."""

    def test_json_string(self):
        window = resolve_timeframe(
            '{"start": "2026-03-10T00:00:00.000Z", "end": "2026-03-11T00:00:00.000Z"}'
        )

        assert window == TimeWindow(
            start=datetime(2026, 3, 10, tzinfo=timezone.utc),
            end=datetime(2026, 3, 11, tzinfo=timezone.utc),
        )

    def test_dict_value(self):
        window = resolve_timeframe({'start': '2026-03-10T00:00:00Z', 'end': '2026-03-10T06:00:00Z'})

        assert window.end - window.start == timedelta(hours=6)

    def test_naive_instants_are_utc(self):
        window = resolve_timeframe({'start': '2026-03-10', 'end': '2026-03-11'})

        assert window.start == datetime(2026, 3, 10, tzinfo=timezone.utc)

    def test_offsets_are_converted_to_utc(self):
        window = resolve_timeframe({'start': '2026-03-10T02:00:00+02:00', 'end': '2026-03-11T00:00:00Z'})

        assert window.start == datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize('value', [
        '{"start": "2026-03-11T00:00:00Z", "end": "2026-03-10T00:00:00Z"}',
        '{"start": "2026-03-10T00:00:00Z", "end": "2026-03-10T00:00:00Z"}',
        '{"start": "not-a-date", "end": "2026-03-10T00:00:00Z"}',
        '{"start": "2026-03-10T00:00:00Z"}',
        '{"start": 1, "end": 2}',
        '{not json',
    ])
    def test_invalid_objects_are_rejected(self, value):
        with pytest.raises(BadQuery):
            resolve_timeframe(value)

    @pytest.mark.parametrize('value', [None, ''])
    def test_missing_timeframe_is_unbounded(self, value):
        assert resolve_timeframe(value) is None


# =============================================================================
# PREDICATE COMPILATION
# =============================================================================


class TestTimeframePredicate:
    """Tests for the SQL fragment bounding the timestamp column."""

    def test_bounds_are_bound_parameters(self):
        window = resolve_timeframe('this_1_hours', now=NOW)
        params = QueryParameters()

        predicate = timeframe_predicate(window, params)

        assert predicate == (
            '"cenote$timestamp" >= $1::timestamptz AND "cenote$timestamp" < $2::timestamptz'
        )
        assert params.values == [window.start, window.end]

    def test_numbering_continues_from_existing_parameters(self):
        params = QueryParameters()
        params.add('earlier')

        predicate = timeframe_predicate(resolve_timeframe('this_1_hours', now=NOW), params)

        assert '$2' in predicate and '$3' in predicate
        assert len(params) == 3

    def test_unbounded_window_has_no_predicate(self):
        params = QueryParameters()

        assert timeframe_predicate(None, params) is None
        assert len(params) == 0
