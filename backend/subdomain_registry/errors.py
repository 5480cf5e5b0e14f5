"""
Structured error classes for the subdomain registry.

Every error carries its HTTP status and a JSON body so route handlers can
raise them directly and a single exception handler renders the response.

Registry operations return result objects for expected business outcomes
(name taken, quota reached, no invite). Routes translate those results into
these errors. Only StoreFailureError is raised from below the route layer.
"""

from typing import Any, Dict, Optional

from fastapi import status


class RegistryError(Exception):
    """Base exception for registry errors."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        self.message = message or self.error
        self.reason = reason
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        body: Dict[str, Any] = {"error": self.message}
        if self.reason:
            body["reason"] = self.reason
        return body


class RegistryValidationError(RegistryError):
    """Malformed subdomain name or request body."""

    http_status = status.HTTP_400_BAD_REQUEST
    error = "Invalid request"


class UnauthorizedError(RegistryError):
    """Missing, invalid or expired token, or a bad webhook signature."""

    http_status = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class ForbiddenError(RegistryError):
    """Authenticated caller lacks the required relationship to the resource."""

    http_status = status.HTTP_403_FORBIDDEN
    error = "Forbidden"


class NotFoundError(RegistryError):
    """No record or no pending invite."""

    http_status = status.HTTP_404_NOT_FOUND
    error = "Not found"


class NotAvailableError(RegistryError):
    """Subdomain is reserved, preallocated, claimed, or already joined."""

    http_status = status.HTTP_409_CONFLICT
    error = "Subdomain not available"

    def __init__(
        self,
        reason: str,
        owner_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(message, reason=reason)
        self.owner_id = owner_id


class SubscriptionRequiredError(RegistryError):
    """Billing is required and the caller has no paid plan."""

    http_status = status.HTTP_402_PAYMENT_REQUIRED
    error = "Purchase required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, reason="no_subscription")


class QuotaExceededError(RegistryError):
    """Caller already owns as many subdomains as their plan allows."""

    http_status = status.HTTP_402_PAYMENT_REQUIRED
    error = "Quota exceeded"

    def __init__(self, current: int, quota: int):
        super().__init__(reason="quota_exceeded")
        self.current = current
        self.quota = quota

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["current"] = self.current
        body["quota"] = self.quota
        return body


class StoreFailureError(RegistryError):
    """
    The record store could not be reached or returned garbage.

    The message is logged server-side; callers only ever see the opaque body.
    """

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "detail": "An unexpected error occurred"}
