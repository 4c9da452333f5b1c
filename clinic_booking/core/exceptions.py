"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500, code: str | None = None):
        """Initialize exception with message, status code and machine-readable code."""
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found", code: str | None = "not_found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, code=code)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401, code="unauthorized")


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403, code="forbidden")


class ConflictException(AppException):
    """
    Expected business conflict.

    Raised for slots that are no longer free, expired holds and illegal
    state transitions. Clients should offer another slot or refresh
    instead of retrying the same request.
    """

    def __init__(self, message: str = "Conflict", code: str = "conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, code=code)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", code: str | None = "invalid_input"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, code=code)


class StorageException(AppException):
    """Storage failure (connectivity or unexpected constraint violation)."""

    def __init__(self, message: str = "Storage unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503, code="storage_error")


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str = "Rate limit exceeded"):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429, code="rate_limited")
