"""
Cenote API package initialization.

This package contains the FastAPI router modules of the query engine:
- queries: archetype queries, eeRIS historical views and collection listing
  under /projects/{project_id}/queries
"""

from cenote.api.queries import router as queries_router

__all__ = [
    "queries_router",
]
