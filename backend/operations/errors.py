"""
Typed outcomes for resource operations.

Every authorization and existence failure is raised as one of these and
translated into a transport response at the boundary (see main.py). The HTTP
status each one maps to lives on the class so the mapping stays in one place.
"""

from fastapi import status


class OperationError(Exception):
    """Base class for failures a resource operation reports to its caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(OperationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class Forbidden(OperationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(OperationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(OperationError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class InternalError(OperationError):
    """Storage or unexpected failure; the message is hidden from callers in production."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
