"""
Clerk Backend API exceptions.

Follows the same pattern as the other integration clients.
"""

from typing import Any, Dict, Optional


class ClerkAPIError(Exception):
    """Base exception for Clerk Backend API errors."""

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


class ClerkAuthenticationError(ClerkAPIError):
    """Raised when the secret key is rejected (401/403)."""

    def __init__(
        self,
        message: str = "Authentication failed - CLERK_SECRET_KEY may be invalid",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class ClerkUserNotFoundError(ClerkAPIError):
    """Raised when the user does not exist in Clerk (404)."""

    def __init__(self, user_id: str, **kwargs):
        super().__init__(f"Clerk user not found: {user_id}", status_code=404, **kwargs)
        self.user_id = user_id


class ClerkConnectionError(ClerkAPIError):
    """Raised on network errors and timeouts."""

    def __init__(self, message: str = "Connection error - unable to reach Clerk API", **kwargs):
        super().__init__(message, **kwargs)
