"""
Error taxonomy for pipeline operations.

Only AuthError and RateLimitError messages are shown to callers; every
other kind is logged server-side and answered with a generic message.
"""

from __future__ import annotations


class SignalPressError(Exception):
    """Base exception for pipeline operations"""


class AuthError(SignalPressError):
    """Raised when the bearer token is missing, expired or not a user token"""


class RateLimitError(SignalPressError):
    """Raised when a user exceeds the hourly quota of an operation"""

    def __init__(self, function_name: str, limit: int) -> None:
        super().__init__(
            f"Rate limit exceeded. {function_name} allows {limit} calls per hour."
        )
        self.function_name = function_name
        self.limit = limit


class ValidationError(SignalPressError):
    """Raised when a request is missing data or refers to unknown records"""


class StageError(ValidationError):
    """Raised when a session is not in a state that allows the operation"""


class ProviderError(SignalPressError):
    """Raised when an upstream provider call fails"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(SignalPressError):
    """Raised when no structured data can be recovered from provider output"""

    def __init__(self, message: str, excerpt: str = "") -> None:
        super().__init__(f"{message}: {excerpt}" if excerpt else message)
        self.excerpt = excerpt


class ConfigurationError(SignalPressError):
    """Raised when a required key or setting is missing"""
