"""
Error taxonomy for the Cenote query engine.

Every failure a query can produce is one of five kinds. Each carries the HTTP
status code and the `results` token rendered in the failure envelope:

    {"ok": false, "results": "<kind>", "message": "<optional detail>"}

| Error              | Status | results token            |
|--------------------|--------|--------------------------|
| ProjectNotFound    | 404    | ProjectNotFoundError     |
| NoCredentials      | 403    | NoCredentialsSentError   |
| KeyNotAuthorized   | 401    | KeyNotAuthorizedError    |
| TargetNotProvided  | 400    | TargetNotProvidedError   |
| BadQuery           | 400    | BadQueryError            |

Validation failures are raised before any store call. Store and cache
failures are converted to BadQuery by the I/O adapters at the point of call.
"""

from typing import Any, Dict, Optional


class QueryError(Exception):
    """Base class for every error rendered as a failure envelope."""

    status_code: int = 400
    kind: str = 'BadQueryError'

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.kind)
        self.message = message

    def to_envelope(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'ok': False, 'results': self.kind}
        if self.message:
            body['message'] = self.message
        return body


class ProjectNotFound(QueryError):
    status_code = 404
    kind = 'ProjectNotFoundError'


class NoCredentials(QueryError):
    status_code = 403
    kind = 'NoCredentialsSentError'


class KeyNotAuthorized(QueryError):
    status_code = 401
    kind = 'KeyNotAuthorizedError'


class TargetNotProvided(QueryError):
    status_code = 400
    kind = 'TargetNotProvidedError'


class BadQuery(QueryError):
    """Malformed query or backend execution failure; carries a message."""

    status_code = 400
    kind = 'BadQueryError'


__all__ = [
    'QueryError',
    'ProjectNotFound',
    'NoCredentials',
    'KeyNotAuthorized',
    'TargetNotProvided',
    'BadQuery',
]
