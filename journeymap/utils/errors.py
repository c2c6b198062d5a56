"""JSON error bodies for the workspace API.

Every error answer has the shape ``{"error": str, "code": "ERR_*"}``,
plus ``details`` when there is something structured to report.

    from journeymap.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "journeyId is required")
"""

from __future__ import annotations

from flask import jsonify

from journeymap.core.exceptions import NotFoundError, PersistenceError, ValidationError


class E:
    """Error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"  # missing request field
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"    # rule broken inside the engine
    NOT_FOUND = "ERR_NOT_FOUND"
    PERSISTENCE = "ERR_PERSISTENCE"                  # snapshot could not be loaded
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.PERSISTENCE: 503,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view; status defaults from ``code``."""
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)


def workspace_error(exc: Exception):
    """Translate a workspace exception into its API error response."""
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc), details={"resource": exc.resource, "id": exc.resource_id})
    if isinstance(exc, PersistenceError):
        return api_error(E.PERSISTENCE, "Workspace storage is unavailable", details={"backend": exc.backend})
    raise TypeError(f"Not a workspace error: {type(exc).__name__}")
