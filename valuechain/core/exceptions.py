"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and map them to consistent HTTP status codes.

Usage:
    from valuechain.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ValueChain", resource_id=chain_id)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a caller cannot probe for chains owned by another tenant.

    Args:
        resource: Human-readable model/entity name (e.g. "ValueChain").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails a business rule in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a rule, e.g. merging a chain with itself,
    a split index out of range, or an invalid approval transition.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the store rejects a commit.

    The session has already been rolled back when this propagates, so the
    caller never observes a partially applied command. Never retried
    automatically. Maps to HTTP 500.

    Args:
        operation: Name of the command that failed (e.g. "merge_chains").
        cause: The underlying driver/ORM exception, kept for logging.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Could not persist {operation}")


class PermissionDeniedError(Exception):
    """Raised when the caller lacks a capability the command requires.

    Authorization itself is decided upstream; services only check the
    ``can_approve`` flag they are handed. Maps to HTTP 403.
    """

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Not allowed to {action}")
