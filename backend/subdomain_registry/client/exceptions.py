"""
Registry client exceptions.
"""

from typing import Any, Dict, Optional


class RegistryClientError(Exception):
    """Base exception for registry API errors."""

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

    @property
    def reason(self) -> Optional[str]:
        return self.response.get("reason")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class RegistryAuthenticationError(RegistryClientError):
    """Raised when the registry rejects the bearer token (401)."""

    def __init__(self, message: str = "Registry rejected the bearer token", **kwargs):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


class RegistryConnectionError(RegistryClientError):
    """Raised on network errors and timeouts."""

    def __init__(self, message: str = "Connection error - unable to reach the registry", **kwargs):
        super().__init__(message, **kwargs)
