"""
Query Engine: orchestrates one archetype query end to end.

Pipeline per request:
    access gate -> filter value coercion (column types) -> timeframe predicate
    -> outlier predicate (stats cache)
    -> filter predicate -> query builder -> event store
    -> client-side post-filter (some archetypes) -> result shaper

Only the column-type lookup (when filters are present), the outlier lookup,
the project lookup and the final statement suspend;
clause compilation is pure. Predicates are compiled into one shared
QueryParameters collector in the order above, so their placeholders never
collide and the row cap is always the last bound value.

Usage:
    engine = QueryEngine(store, registry, OutlierDetector(store, cache), settings)
    results = await engine.run(QueryType.SUM, 'pid1', QueryParams(readKey='rk', ...))
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from cenote.core.config import Settings
from cenote.core.database import EventStore
from cenote.models.enums import ColumnKind, QueryType
from cenote.models.schemas import QueryParams, QueryRequest
from cenote.services.access import ProjectRegistry, authenticate, validate_request
from cenote.services.archetypes import ARCHETYPES
from cenote.services.outliers import OutlierDetector
from cenote.sql.filters import apply_filters, coerce_filters, column_kind, filters_predicate
from cenote.sql.identifiers import QueryParameters
from cenote.sql.query_builder import CompiledQuery, build_column_types_query, build_query
from cenote.sql.timeframe import resolve_timeframe, timeframe_predicate


logger = logging.getLogger(__name__)


class QueryEngine:
    """
    Serves the archetype queries of every project.

    Holds only shared, injected handles; all per-request state lives on the
    stack, so one instance serves any number of concurrent requests.
    """

    def __init__(
        self,
        store: EventStore,
        registry: ProjectRegistry,
        outliers: OutlierDetector,
        settings: Settings,
    ) -> None:
        self.store = store
        self.registry = registry
        self.outliers = outliers
        self.settings = settings

    async def authorize(self, query_type: QueryType, project_id: str, params: QueryParams) -> QueryRequest:
        """Run the access gate and return the validated request."""
        await authenticate(self.registry, project_id, params.read_key, params.master_key)
        return validate_request(query_type, project_id, params, self.settings)

    async def column_kinds(self, project_id: str, collection: str) -> Dict[str, ColumnKind]:
        """Comparison family of every column of one collection, by column name."""
        query = build_column_types_query(project_id, collection)
        rows = await self.store.fetch(query.sql, *query.params)
        table = query.params[0]
        return {
            row['column_name']: column_kind(row.get('data_type'))
            for row in rows
            if row.get('table_name', table) == table
        }

    async def coerce_filters(self, request: QueryRequest) -> QueryRequest:
        """Return the request with filter values converted to their columns' kinds."""
        if not request.filters:
            return request
        kinds = await self.column_kinds(request.project_id, request.event_collection)
        filters = coerce_filters(request.filters, kinds)
        return request.model_copy(update={'filters': filters})

    async def compile(self, request: QueryRequest, now: Optional[datetime] = None) -> CompiledQuery:
        """Compile a validated request into one parameterized statement."""
        params = QueryParameters()
        window = resolve_timeframe(request.timeframe, now=now)
        predicates = [timeframe_predicate(window, params)]
        predicates.append(
            await self.outliers.predicate(
                request.project_id,
                request.event_collection,
                request.outliers_in,
                request.outliers,
                params,
            )
        )
        predicates.append(filters_predicate(request.filters, params))
        return build_query(request, params, predicates)

    async def execute(self, request: QueryRequest, now: Optional[datetime] = None) -> Any:
        """Compile, fetch and shape an already-authorized request."""
        spec = ARCHETYPES[request.query_type]
        request = await self.coerce_filters(request)
        compiled = await self.compile(request, now=now)
        rows = await self.store.fetch(compiled.sql, *compiled.params)
        if spec.post_filter and request.filters:
            rows = apply_filters(request.filters, rows)
        return spec.shape(request, rows)

    async def run(
        self,
        query_type: QueryType,
        project_id: str,
        params: QueryParams,
        now: Optional[datetime] = None,
    ) -> Any:
        """
        Serve one archetype query.

        Args:
            query_type: Archetype to run.
            project_id: Project owning the collection.
            params: Raw query-string parameters.
            now: Clock reading for relative timeframes (defaults to now, UTC).

        Returns:
            The archetype-shaped ``results`` payload.

        Raises:
            QueryError: Any access, validation or backend failure.
        """
        request = await self.authorize(query_type, project_id, params)
        logger.debug(f"Running {query_type.value} on {request.table}")
        return await self.execute(request, now=now)
