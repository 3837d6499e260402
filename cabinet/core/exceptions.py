"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and extra body fields."""
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Slot or resource conflict.

    ``conflict_info`` describes the patient already holding a single slot;
    ``conflicts`` lists every rejected slot of a batch.
    """

    def __init__(
        self,
        message: str = "Conflict",
        conflict_info: dict[str, Any] | None = None,
        conflicts: list[dict[str, Any]] | None = None,
    ):
        """Initialize with 409 status code."""
        details: dict[str, Any] = {}
        if conflict_info is not None:
            details["conflictInfo"] = conflict_info
        if conflicts:
            details["conflicts"] = conflicts
        super().__init__(message, status_code=409, details=details)
        self.conflict_info = conflict_info
        self.conflicts = conflicts or []


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)
