'''
Cenote Query Engine Test Suite

Test Modules:
-------------
- test_timeframe.py: Absolute and relative timeframe resolution
- test_filters.py: Filter parsing, identifier allow-list, SQL and post-filter
- test_query_builder.py: Per-archetype statements and bound parameters
- test_aggregation.py: Interval bucketing, percentile, grouping, transposition
- test_outliers.py: Outlier band, cache-aside statistics, cache adapter
- test_access.py: Access gate, parameter validation, event store adapter
- test_historical.py: eeRIS day/week/month views
- test_queries_api.py: Query engine and HTTP envelope end to end

Running Tests:
--------------
    pip install -e ".[test]"
    pytest cenote/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
