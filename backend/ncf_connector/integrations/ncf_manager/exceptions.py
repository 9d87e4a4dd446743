"""
NCF Manager exceptions for error handling.

Follows the same pattern as the Shopify client errors: a base error carrying
the HTTP status and response body, with subclasses per failure mode.
"""

from typing import Optional, Dict, Any


class NcfManagerError(Exception):
    """Base exception for NCF Manager API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class NcfManagerConnectionError(NcfManagerError):
    """Raised when NCF Manager cannot be reached."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach NCF Manager",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class NcfManagerTimeoutError(NcfManagerError):
    """Raised when a request to NCF Manager times out."""

    def __init__(
        self,
        message: str = "Request to NCF Manager timed out",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class NcfManagerResponseError(NcfManagerError):
    """Raised on non-success responses or bodies that cannot be parsed."""
    pass
