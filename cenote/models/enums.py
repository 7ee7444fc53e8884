"""
Enumeration definitions for the Cenote query engine.

All enums inherit from both `str` and `Enum` so they serialize transparently in
JSON responses and can be parsed directly from query-string values.
"""

from enum import Enum


class QueryType(str, Enum):
    """
    The closed set of query archetypes served by the engine.

    Each value is also the final path segment of its HTTP endpoint.
    """
    COUNT = "count"
    MINIMUM = "minimum"
    MAXIMUM = "maximum"
    SUM = "sum"
    AVERAGE = "average"
    MEDIAN = "median"
    PERCENTILE = "percentile"
    COUNT_UNIQUE = "count_unique"
    SELECT_UNIQUE = "select_unique"
    EXTRACTION = "extraction"


class Interval(str, Enum):
    """
    Calendar bucket granularity for time-series aggregation.

    Buckets are aligned to the start of the unit in UTC; weeks start on Monday.
    """
    MINUTELY = "minutely"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class OutlierMode(str, Enum):
    """
    Outlier policy relative to the cached mean/stddev of `outliers_in`.

    - include: No filtering (default)
    - exclude: Keep only rows within k standard deviations of the mean
    - only: Keep only rows outside that band
    """
    INCLUDE = "include"
    EXCLUDE = "exclude"
    ONLY = "only"


class FilterOperator(str, Enum):
    """Comparison operators accepted in `filters`, mapped to SQL by the filter compiler."""
    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    NE = "ne"


class HistoricalViewType(str, Enum):
    """Reconstruction windows for the historical rollup (eeRIS) views."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ColumnKind(str, Enum):
    """
    Comparison family of an event column, derived from its SQL data type.

    Filter values are coerced to the kind of the column they are compared to.
    """
    TIMESTAMP = "timestamp"
    NUMBER = "number"
    TEXT = "text"
    BOOLEAN = "boolean"
    OTHER = "other"
