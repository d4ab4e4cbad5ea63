"""Custom exception classes for the application."""


class BaseAppException(Exception):
    """Base exception class for all application exceptions."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class PlatformAPIError(BaseAppException):
    """Raised when an external commerce platform returns an unexpected response."""
    pass


class AuthenticationError(BaseAppException):
    """Raised when a platform rejects the access token."""
    pass


class TokenRefreshError(BaseAppException):
    """Raised when an access token could not be refreshed."""
    pass


class FetchExhaustedError(BaseAppException):
    """Raised when a catalog fetch used up every attempt without success."""

    def __init__(self, message: str, attempts: int, last_error: Exception = None, details: dict = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, details)


class FetchCancelledError(BaseAppException):
    """Raised when a caller cancels a catalog fetch."""
    pass


class UnsupportedPlatformError(BaseAppException):
    """Raised when no adapter is registered for a platform."""
    pass


class AdapterConflictError(BaseAppException):
    """Raised when a different adapter is registered under a taken name."""
    pass


class ShopNotFoundError(BaseAppException):
    """Raised when a shop id is unknown to the shop store."""
    pass


class RecordValidationError(BaseAppException):
    """Raised when an external record is missing required fields."""

    def __init__(self, message: str, reasons: list = None, details: dict = None):
        self.reasons = list(reasons or [])
        super().__init__(message, details)


class PersistenceError(BaseAppException):
    """Raised when a catalog store write fails."""
    pass


class ConfigurationError(BaseAppException):
    """Raised when there's a configuration error."""
    pass
