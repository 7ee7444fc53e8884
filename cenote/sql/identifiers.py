"""
Identifier allow-list and bound-parameter collection for query compilation.

Table and column names in the event store are derived from caller input
(project id, collection, property names), so they must be embedded in the SQL
text. This module is the single gate they pass through first:

- Every identifier segment must match ``^[a-z][a-z0-9]*$``.
- Nested property paths are flattened at ingestion with ``$`` as separator
  (``meta$device$id``); each segment is checked on its own.
- Accepted identifiers are always emitted double-quoted.

Values never go into the SQL text. ``QueryParameters`` collects them and hands
out asyncpg ``$n`` placeholders in order, so independently compiled fragments
(timeframe, filters, outliers) can be conjoined into one statement.
"""

import re
from typing import Any, List

from cenote.core.errors import BadQuery


# =============================================================================
# CONSTANTS
# =============================================================================

IDENTIFIER_PATTERN = re.compile(r'^[a-z][a-z0-9]*$')

# Separator used when nested event properties are flattened into columns
PROPERTY_SEPARATOR = '$'

# Reserved column ordering every event record
TIMESTAMP_COLUMN = 'cenote$timestamp'


# =============================================================================
# VALIDATION
# =============================================================================

def validate_name(name: Any, what: str = 'identifier') -> str:
    """
    Validate a flat identifier (project id, collection name).

    Raises:
        BadQuery: If the name is not a string matching the allow-list.
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise BadQuery(
            f'Invalid {what} "{name}": names must start with a letter and contain '
            f'only lowercase letters and numbers'
        )
    return name


def validate_property(name: Any, what: str = 'property') -> str:
    """
    Validate a (possibly nested) property name.

    Each ``$``-separated segment must match the allow-list, so
    ``meta$device`` is accepted while ``meta$$device``, ``Voltage`` or
    ``voltage; DROP TABLE x`` are rejected.

    Raises:
        BadQuery: If any segment fails the allow-list.
    """
    if not isinstance(name, str) or not name:
        raise BadQuery(f'Invalid {what} "{name}"')
    for segment in name.split(PROPERTY_SEPARATOR):
        if not IDENTIFIER_PATTERN.match(segment):
            raise BadQuery(
                f'Invalid {what} "{name}": property names must start with a letter and '
                f'contain only lowercase letters and numbers'
            )
    return name


def quote_column(name: str) -> str:
    """Return a validated, double-quoted column reference."""
    return f'"{validate_property(name, "column")}"'


def quote_table(project_id: str, collection: str) -> str:
    """Return the validated, double-quoted table name of an event collection."""
    validate_name(project_id, 'project id')
    validate_name(collection, 'event collection')
    return f'"{project_id}_{collection}"'


# =============================================================================
# BOUND PARAMETERS
# =============================================================================

class QueryParameters:
    """
    Ordered collector of bound parameter values.

    Example:
        params = QueryParameters()
        params.add(10)      # '$1'
        params.add('abc')   # '$2'
        params.values       # [10, 'abc']
    """

    def __init__(self) -> None:
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return f'${len(self.values)}'

    def __len__(self) -> int:
        return len(self.values)
