# backend/kraft/exceptions.py
"""
Error taxonomy for the control plane.

Services and drivers raise these; the HTTP layer renders them as
``{"kind": ..., "detail": ...}`` with the matching status code.
"""
from typing import Optional


class ControlPlaneError(Exception):
    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message safe to return to API callers."""
        return self.message


class ValidationError(ControlPlaneError):
    kind = "validation_error"
    status_code = 400
    default_message = "Invalid input data"


class InvalidStateError(ValidationError):
    kind = "invalid_state"
    default_message = "Operation not allowed in the current state"


class QuotaExceededError(ValidationError):
    kind = "quota_exceeded"
    default_message = "Instance quota exceeded"


class DanglingReferenceError(ValidationError):
    kind = "dangling_reference"
    default_message = "Referenced snapshot no longer exists"


class NotFoundError(ControlPlaneError):
    kind = "not_found"
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class AuthenticationError(ControlPlaneError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "Unauthorized"


class AuthorizationError(ControlPlaneError):
    kind = "forbidden"
    status_code = 403
    default_message = "Insufficient permissions"


class ConflictError(ControlPlaneError):
    kind = "conflict"
    status_code = 409
    default_message = "Another operation is in progress for this resource"


class DriverError(ControlPlaneError):
    kind = "driver_error"
    status_code = 500
    default_message = "Infrastructure driver failure"

    def __init__(self, message: Optional[str] = None, driver: Optional[str] = None,
                 operation: Optional[str] = None):
        self.driver = driver
        self.operation = operation
        super().__init__(message)

    @property
    def public_message(self) -> str:
        # Driver diagnostics stay in the logs
        if self.operation:
            return f"Failed to {self.operation} instance"
        return self.default_message


class DriverNotFoundError(DriverError):
    """The backend reports the target entity does not exist."""
    default_message = "Backend entity not found"


class OperationTimeoutError(ControlPlaneError):
    kind = "timeout"
    status_code = 500

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Operation '{operation}' timed out after {timeout_seconds:g}s")
