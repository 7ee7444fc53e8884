"""
Access & Parameter Validation Gate.

Runs before any event-store access so that unauthorized callers learn nothing
about a project's collections. Checks are ordered and the first failure wins:

1. NoCredentials      - neither readKey nor masterKey supplied
2. ProjectNotFound    - unknown project id
3. KeyNotAuthorized   - readKey != project.read_key and masterKey != project.master_key
4. BadQuery           - missing or invalid event_collection
5. TargetNotProvided  - archetype needs target_property / percentile, or
                        outliers=exclude|only without outliers_in

After the gate, every remaining option is parsed into its typed form and
every identifier has passed the allow-list, yielding a QueryRequest.
"""

import hmac
import logging
import math
from typing import Optional

from cenote.core.config import Settings
from cenote.core.database import EventStore
from cenote.core.errors import (
    BadQuery,
    KeyNotAuthorized,
    NoCredentials,
    ProjectNotFound,
    TargetNotProvided,
)
from cenote.models.enums import Interval, OutlierMode, QueryType
from cenote.models.schemas import Project, QueryParams, QueryRequest
from cenote.services.archetypes import ARCHETYPES
from cenote.sql.filters import parse_filters
from cenote.sql.identifiers import IDENTIFIER_PATTERN, validate_name, validate_property
from cenote.sql.query_builder import build_project_query


logger = logging.getLogger(__name__)

TRUE_VALUES = {'true', '1', 'yes'}


# =============================================================================
# Project Lookup
# =============================================================================


class ProjectRegistry:
    """
    Read-only lookup of projects and their capability keys.

    Projects live in the relational store and are managed elsewhere; the
    engine only reads them.
    """

    def __init__(self, store: EventStore, table: str = 'projects') -> None:
        self.store = store
        self.table = table

    async def get(self, project_id: str) -> Project:
        """
        Fetch a project by id.

        Raises:
            ProjectNotFound: If no project has this id.
        """
        if not isinstance(project_id, str) or not IDENTIFIER_PATTERN.match(project_id):
            raise ProjectNotFound()
        query = build_project_query(self.table, project_id)
        row = await self.store.fetch_one(query.sql, *query.params)
        if row is None:
            logger.info(f"Unknown project requested: {project_id}")
            raise ProjectNotFound()
        return Project(**row)


# =============================================================================
# Credentials
# =============================================================================


def _same_key(presented: Optional[str], expected: Optional[str]) -> bool:
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode('utf-8'), expected.encode('utf-8'))


def require_credentials(read_key: Optional[str], master_key: Optional[str]) -> None:
    if not read_key and not master_key:
        raise NoCredentials()


def authorize(project: Project, read_key: Optional[str], master_key: Optional[str]) -> None:
    """
    Accept a read key matching the project's read key, or a master key matching
    its master key. A master key value presented as ``readKey`` is rejected.

    Raises:
        NoCredentials: If no key was presented.
        KeyNotAuthorized: If neither presented key matches.
    """
    require_credentials(read_key, master_key)
    if _same_key(read_key, project.read_key) or _same_key(master_key, project.master_key):
        return
    logger.info(f"Rejected key for project {project.project_id}")
    raise KeyNotAuthorized()


async def authenticate_master(
    registry: ProjectRegistry,
    project_id: str,
    master_key: Optional[str],
) -> Project:
    """Administrative reads accept the master key only."""
    if not master_key:
        raise NoCredentials()
    project = await registry.get(project_id)
    if not _same_key(master_key, project.master_key):
        raise KeyNotAuthorized()
    return project


async def authenticate(
    registry: ProjectRegistry,
    project_id: str,
    read_key: Optional[str],
    master_key: Optional[str],
) -> Project:
    """Run the credential, project and key checks in order."""
    require_credentials(read_key, master_key)
    project = await registry.get(project_id)
    authorize(project, read_key, master_key)
    return project


# =============================================================================
# Parameter Parsing
# =============================================================================


def parse_latest(raw: Optional[str], default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        latest = int(raw)
    except ValueError as e:
        raise BadQuery('`latest` must be a positive integer') from e
    if latest <= 0:
        raise BadQuery('`latest` must be a positive integer')
    return latest


def parse_percentile(raw: str) -> float:
    try:
        rank = float(raw)
    except ValueError as e:
        raise BadQuery('`percentile` must be a number between 0 and 100') from e
    if math.isnan(rank) or not 0 <= rank <= 100:
        raise BadQuery('`percentile` must be a number between 0 and 100')
    return rank


def parse_interval(raw: Optional[str]) -> Optional[Interval]:
    if not raw:
        return None
    try:
        return Interval(raw)
    except ValueError as e:
        raise BadQuery(
            '`interval` must be one of `minutely`, `hourly`, `daily`, `weekly`, `monthly`, `yearly`'
        ) from e


def parse_outliers(raw: Optional[str]) -> OutlierMode:
    if not raw:
        return OutlierMode.INCLUDE
    try:
        return OutlierMode(raw)
    except ValueError as e:
        raise BadQuery('`outliers` must be one of `include`, `exclude`, `only`') from e


def parse_flag(raw: Optional[str]) -> bool:
    return bool(raw) and raw.strip().lower() in TRUE_VALUES


def validate_request(
    query_type: QueryType,
    project_id: str,
    params: QueryParams,
    settings: Settings,
) -> QueryRequest:
    """
    Turn untrusted query-string parameters into a typed QueryRequest.

    Must run after authorization. Missing required parameters are reported
    before malformed optional ones.

    Args:
        query_type: Archetype being served.
        project_id: Authorized project id.
        params: Raw query-string parameters.
        settings: Provides the default row cap.

    Returns:
        QueryRequest with validated identifiers and parsed options.

    Raises:
        BadQuery: Missing/invalid collection or malformed option.
        TargetNotProvided: A required parameter is absent.
    """
    spec = ARCHETYPES[query_type]
    collection = validate_name(params.event_collection, 'event collection')

    target: Optional[str] = None
    targets = []
    if query_type is QueryType.EXTRACTION:
        if params.target_property:
            targets = [
                validate_property(name.strip(), 'target property')
                for name in params.target_property.split(',')
            ]
    elif params.target_property:
        target = validate_property(params.target_property, 'target property')
    elif spec.requires_target:
        raise TargetNotProvided()

    rank = spec.fixed_rank
    if spec.requires_percentile:
        if not params.percentile:
            raise TargetNotProvided()
        rank = parse_percentile(params.percentile)

    outliers = parse_outliers(params.outliers)
    outliers_in = None
    if outliers is not OutlierMode.INCLUDE:
        if not params.outliers_in:
            raise TargetNotProvided()
        outliers_in = validate_property(params.outliers_in, 'outliers_in property')

    is_extraction = query_type is QueryType.EXTRACTION
    group_by = None
    if params.group_by and not is_extraction:
        group_by = validate_property(params.group_by, 'group_by property')

    return QueryRequest(
        query_type=query_type,
        project_id=project_id,
        event_collection=collection,
        target_property=target,
        target_properties=targets,
        percentile=rank,
        group_by=group_by,
        latest=parse_latest(params.latest, settings.global_limit),
        interval=None if is_extraction else parse_interval(params.interval),
        outliers=outliers,
        outliers_in=outliers_in,
        filters=parse_filters(params.filters),
        timeframe=params.timeframe or None,
        concat_results=is_extraction and parse_flag(params.concat_results),
    )
