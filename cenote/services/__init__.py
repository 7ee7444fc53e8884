"""
Cenote Services Module

Business logic of the query engine. Each service holds only injected, shared
handles (event store, stats cache, project registry) and keeps per-request
state on the stack.

Services:
- access: Access & parameter validation gate, project registry
- archetypes: Per-archetype dispatch table (requirements and result shapers)
- outliers: Cache-aside outlier band detector
- aggregation: Client-side bucketing, percentile, grouping and transposition
- queries: Query engine orchestrating one archetype request
- historical: eeRIS day/week/month views over rollup buckets
- collections: Collection schema listing
"""

from cenote.services.access import (
    ProjectRegistry,
    authenticate,
    authenticate_master,
    authorize,
    validate_request,
)
from cenote.services.aggregation import (
    group_by_interval,
    group_by_property,
    partition_by_interval,
    percentile,
    reduce_rows,
    to_object_of_arrays,
)
from cenote.services.archetypes import ARCHETYPES, ArchetypeSpec
from cenote.services.collections import CollectionLister
from cenote.services.historical import HistoricalReader
from cenote.services.outliers import OutlierDetector, outlier_predicate
from cenote.services.queries import QueryEngine


__all__ = [
    # Access gate
    "ProjectRegistry",
    "authenticate",
    "authenticate_master",
    "authorize",
    "validate_request",
    # Post-processing
    "group_by_interval",
    "group_by_property",
    "partition_by_interval",
    "percentile",
    "reduce_rows",
    "to_object_of_arrays",
    # Dispatch
    "ARCHETYPES",
    "ArchetypeSpec",
    # Engines
    "CollectionLister",
    "HistoricalReader",
    "OutlierDetector",
    "outlier_predicate",
    "QueryEngine",
]
