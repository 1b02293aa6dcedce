# Overview: Typed service errors mapped to HTTP status codes by the routes.


class ServiceError(Exception):
    """Base class for business errors raised by service modules."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """State conflict that could succeed later (duplicate, not editable, no stock)."""

    status_code = 409


class InvalidArgumentError(ServiceError):
    """Structurally invalid input."""

    status_code = 400


class InvalidStateError(ServiceError):
    """Business rule violation for the entity's current state."""

    status_code = 400


class ForbiddenError(ServiceError):
    """Caller is authenticated but may not perform this action."""

    status_code = 403
