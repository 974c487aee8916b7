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
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found, or not owned by the calling organization."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Missing or malformed caller identity."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ConflictException(AppException):
    """Slot already held or booked, or a resource changed underneath the caller."""

    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        """Initialize with 409 status code and the conflicting entity, if known."""
        super().__init__(message, status_code=409, details=details)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429)


class InvalidTransitionException(AppException):
    """Session status change not permitted from the current status."""

    def __init__(self, current_status: str, requested_status: str, allowed: list[str]):
        """Initialize with 409 status code naming the allowed next statuses."""
        allowed_text = ", ".join(allowed) if allowed else "none (terminal status)"
        super().__init__(
            f"Cannot transition session from '{current_status}' to '{requested_status}'. "
            f"Allowed: {allowed_text}",
            status_code=409,
            details={
                "current_status": current_status,
                "requested_status": requested_status,
                "allowed_statuses": allowed,
            },
        )
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed = allowed


class RuleReviewRequiredException(AppException):
    """Rules are flagged for human review; generation cannot proceed."""

    def __init__(self, results: list[dict[str, Any]]):
        """Initialize with 409 status code carrying the flagged review results."""
        super().__init__(
            "Rules require review before schedule generation",
            status_code=409,
            details={"results": results},
        )
        self.results = results


class UpstreamServiceException(AppException):
    """External provider unavailable or misconfigured; safe to retry later."""

    def __init__(self, message: str = "Service temporarily unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
