"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; `flowerpots.api.server` turns them into
`{"success": false, "error": message}` responses with the matching status.

Ownership failures are raised as `NotFound`, never `Forbidden`, so a non-owner
cannot tell whether a resource exists.
"""

from __future__ import annotations


class ApiError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class TooManyRequests(ApiError):
    status_code = 429


class Internal(ApiError):
    status_code = 500
