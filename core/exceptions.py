"""
Commerce Error Taxonomy

This module provides the exception hierarchy shared by checkout, payment
reconciliation and subscription billing. Every error carries a machine
readable code, a kind used to choose the HTTP status at the API boundary,
and optional details that name the offending entities (e.g. the cart lines
that are out of stock).

Kinds
-----
- VALIDATION     → bad input (missing cart, malformed request)
- NOT_FOUND      → order / subscription / payment / tenant absent
- CONFLICT       → stock insufficient, item unavailable, illegal state
- GATEWAY_ERROR  → non-2xx from the payment provider
- INTERNAL       → unexpected persistence / transaction failure

Author: Storefront Development Team
Version: 1.0.0
"""

from enum import Enum
from typing import Optional, Dict, Any

from rest_framework import status
from rest_framework.response import Response


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    INTERNAL = "INTERNAL"


HTTP_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class CommerceError(Exception):
    """
    Base exception class for all commerce and billing errors.

    Attributes:
        message (str): Human-readable error message
        code (str): Stable machine-readable code (e.g. ``INSUFFICIENT_STOCK``)
        details (Dict[str, Any]): Additional context for the caller
        retryable (bool): Whether repeating the same call may succeed

    Example:
        >>> try:
        ...     checkout_manager.place_order(...)
        ... except CommerceError as e:
        ...     logger.warning("Checkout failed: %s", e.code)
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.retryable = retryable
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "message": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationFailed(CommerceError):
    """Raised for bad input, e.g. a missing or empty cart."""

    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"


class NotFound(CommerceError):
    """Raised when an order, subscription, payment or tenant is absent."""

    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"


class Conflict(CommerceError):
    """Raised when the current state forbids the requested operation."""

    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class InternalError(CommerceError):
    """Unexpected persistence or transaction failure."""

    kind = ErrorKind.INTERNAL
    default_code = "INTERNAL_ERROR"


def error_response(error: CommerceError) -> Response:
    """DRF response carrying ``error.to_dict()`` with the status of its kind."""
    return Response(error.to_dict(), status=error.http_status)
