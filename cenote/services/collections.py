"""
Collection schema listing.

Lists the columns of every event collection a project owns, read from
``information_schema.columns``. Requires the project's master key.
"""

import logging
from typing import Dict, List, Optional

from cenote.core.database import EventStore
from cenote.models.schemas import CollectionSchema, ColumnInfo
from cenote.services.access import ProjectRegistry, authenticate_master
from cenote.sql.query_builder import build_collections_query


logger = logging.getLogger(__name__)

# Implicit primary key column added by CockroachDB to tables without one
HIDDEN_COLUMNS = {'rowid'}


class CollectionLister:
    def __init__(self, store: EventStore, registry: ProjectRegistry) -> None:
        self.store = store
        self.registry = registry

    async def list(self, project_id: str, master_key: Optional[str]) -> CollectionSchema:
        """
        Map each collection name to its columns, in table column order.

        Raises:
            QueryError: Access failure or backend error.
        """
        await authenticate_master(self.registry, project_id, master_key)

        query = build_collections_query(project_id)
        rows = await self.store.fetch(query.sql, *query.params)

        prefix = f'{project_id}_'
        results: Dict[str, List[ColumnInfo]] = {}
        for row in rows:
            table = row['table_name']
            if not table.startswith(prefix) or row['column_name'] in HIDDEN_COLUMNS:
                continue
            collection = table[len(prefix):]
            results.setdefault(collection, []).append(
                ColumnInfo(column_name=row['column_name'], type=row.get('data_type'))
            )
        logger.debug(f"Listed {len(results)} collections for project {project_id}")
        return results
