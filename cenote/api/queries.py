"""
FastAPI router for the query endpoints.

All endpoints live under ``/projects/{project_id}/queries`` and answer with the
same envelope:

    success: {"ok": true, "results": <archetype-shaped payload>}
    failure: {"ok": false, "results": "<ErrorKind>Error", "message": "..."}

Failures are raised as QueryError subclasses by the services and rendered by
the exception handler registered in ``cenote.main``.

Key Endpoints:
- GET /count, /minimum, /maximum, /sum, /average, /median, /percentile,
  /count_unique, /select_unique, /extraction: one per query archetype
- GET /eeris: historical rollup views (day, week, month)
- GET /collections: column listing of the project's collections (masterKey)
- Anything else under the prefix: 400 "This is not a valid query!"
"""

import logging
from typing import Annotated, Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from cenote.core.dependencies import CollectionListerDep, HistoricalReaderDep, QueryEngineDep
from cenote.models.enums import QueryType
from cenote.models.schemas import QueryParams


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/queries", tags=["queries"])

INVALID_QUERY_MESSAGE = "This is not a valid query!"


def success(results: Any) -> Dict[str, Any]:
    return {"ok": True, "results": results}


def get_query_params(
    read_key: Optional[str] = Query(None, alias="readKey"),
    master_key: Optional[str] = Query(None, alias="masterKey"),
    event_collection: Optional[str] = Query(None),
    target_property: Optional[str] = Query(None),
    percentile: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None),
    latest: Optional[str] = Query(None),
    interval: Optional[str] = Query(None),
    outliers: Optional[str] = Query(None),
    outliers_in: Optional[str] = Query(None),
    filters: Optional[str] = Query(None),
    timeframe: Optional[str] = Query(None),
    concat_results: Optional[str] = Query(None),
) -> QueryParams:
    """
    Collect the raw query-string parameters shared by the archetype endpoints.

    Every value is accepted as a plain string here; parsing and validation
    happen in the access gate so that failures use the error envelope.
    """
    return QueryParams(
        read_key=read_key,
        master_key=master_key,
        event_collection=event_collection,
        target_property=target_property,
        percentile=percentile,
        group_by=group_by,
        latest=latest,
        interval=interval,
        outliers=outliers,
        outliers_in=outliers_in,
        filters=filters,
        timeframe=timeframe,
        concat_results=concat_results,
    )


QueryParamsDep = Annotated[QueryParams, Depends(get_query_params)]


# =============================================================================
# Archetype Endpoints
# =============================================================================


def _archetype_endpoint(query_type: QueryType) -> Callable:
    async def endpoint(project_id: str, engine: QueryEngineDep, params: QueryParamsDep) -> Dict[str, Any]:
        results = await engine.run(query_type, project_id, params)
        return success(results)

    endpoint.__name__ = f"query_{query_type.value}"
    endpoint.__doc__ = f"Run a `{query_type.value}` query over one event collection."
    return endpoint


for _query_type in QueryType:
    router.add_api_route(
        f"/{_query_type.value}",
        _archetype_endpoint(_query_type),
        methods=["GET"],
        name=f"query_{_query_type.value}",
    )


# =============================================================================
# Historical Rollup Views
# =============================================================================


@router.get("/eeris")
async def eeris_view(
    project_id: str,
    reader: HistoricalReaderDep,
    read_key: Optional[str] = Query(None, alias="readKey"),
    master_key: Optional[str] = Query(None, alias="masterKey"),
    event_collection: Optional[str] = Query(None),
    target_property: Optional[str] = Query(None),
    type: Optional[str] = Query(None, description="day, week or month"),
    dt: Optional[str] = Query(None, description="Reference date (ISO); required for day views"),
) -> Dict[str, Any]:
    """
    Reconstruct a day/week/month view from the property's rollup buckets.

    Returns:
        {"ok": true, "results": {"values": [...], "stats": {"avg", "min", "max"}}}
    """
    view = await reader.view(
        project_id,
        read_key=read_key,
        master_key=master_key,
        event_collection=event_collection,
        target_property=target_property,
        view_type=type,
        dt=dt,
    )
    return success(view.model_dump())


# =============================================================================
# Collection Schema Listing
# =============================================================================


@router.get("/collections")
async def list_collections(
    project_id: str,
    lister: CollectionListerDep,
    master_key: Optional[str] = Query(None, alias="masterKey"),
) -> Dict[str, Any]:
    """List every collection of the project with its columns and types."""
    collections = await lister.list(project_id, master_key)
    return success({
        name: [column.model_dump() for column in columns]
        for name, columns in collections.items()
    })


# =============================================================================
# Fallback
# =============================================================================


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def invalid_query(project_id: str, path: str) -> JSONResponse:
    logger.info(f"Rejected unknown query path for project {project_id}: /{path}")
    return JSONResponse(status_code=400, content={"ok": False, "results": INVALID_QUERY_MESSAGE})
