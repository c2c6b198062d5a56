"""
Workspace exception hierarchy.

The engine absorbs most failure locally: updates and deletes that name an
unknown id are no-ops, and malformed legacy text falls back to the
delimiter-split path. What remains is raised as one of the types below so
the HTTP layer can map each to a status code in a single place.

Usage:
    from journeymap.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Journey", resource_id=journey_id)
    raise ValidationError("Unknown stage", details={"stage": stage})
"""


class NotFoundError(Exception):
    """Raised when a read names an entity that is not in the snapshot.

    Args:
        resource: Human-readable entity name (e.g. "Phase", "Journey").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a command is well-formed but violates a workspace rule.

    Maps to HTTP 400 in the blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(Exception):
    """Raised by a storage backend when a snapshot cannot be read or written.

    The workspace engine catches this on save and keeps it as the sticky
    save error; the in-memory snapshot is never rolled back.

    Args:
        message: Backend-specific failure reason.
        backend: Name of the backend that failed ("local", "database", ...).
    """

    def __init__(self, message: str, backend: str | None = None) -> None:
        self.backend = backend
        super().__init__(message)
