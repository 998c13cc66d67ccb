"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class RateLimitError(APIClientError):
    """Raised when an upstream answers HTTP 429."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.retry_after = retry_after


class AuthenticationError(APIClientError):
    """Raised when an upstream rejects our credentials (HTTP 401)."""
    pass


class EmptyResponseError(APIClientError):
    """Raised when the model returns no content."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class CoverageHierarchyError(ValidationError):
    """Raised when a coverage parent link would break the coverage tree."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ContextSerializationError(AppError):
    """Raised when the context summary cannot be serialized into the prompt."""
    pass


class PipelineBusyError(AppError):
    """Raised when a submission arrives while another one is outstanding."""
    pass


class NotFoundError(AppError):
    """Raised when a requested record does not exist."""
    pass
