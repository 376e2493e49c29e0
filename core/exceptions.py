"""
Centralized exception hierarchy for domain-specific errors.

This module provides custom exception classes that represent specific
error conditions in the application, enabling better error handling and
caller-side retry decisions.
"""


class LorgError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(LorgError):
    """Exception raised when data validation fails."""


class ConfigurationError(LorgError):
    """Exception raised when required configuration is missing or invalid."""


class ExternalServiceError(LorgError):
    """Exception raised when service calls fail."""


class RateLimitError(ExternalServiceError):
    """Exception raised when rate limits are exceeded."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        retry_at: float | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_at = retry_at


class AuthenticationError(LorgError):
    """Exception raised when authentication fails."""
