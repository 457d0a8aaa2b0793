"""
Payment Gateway Exceptions

Specialized exceptions for failures talking to the payment provider. They
extend the commerce taxonomy so that API views can translate them like any
other ``CommerceError``; in addition they keep the provider's HTTP status and
raw body for diagnostics.

Retry classification follows the HTTP status class: server errors (5xx),
rate limiting (429) and transport failures (no status at all) are retryable,
every other client error is not.

Author: Storefront Development Team
Version: 1.0.0
"""

from typing import Optional, Dict, Any

from core.exceptions import CommerceError, ErrorKind


def is_retryable_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return True
    return status_code >= 500 or status_code == 429


class GatewayError(CommerceError):
    """
    Exception for non-2xx responses and transport errors from the gateway.

    Attributes:
        status_code (Optional[int]): HTTP status returned by the provider
        body (str): Raw response body (truncated) for diagnostics
        operation (Optional[str]): Gateway operation that failed
    """

    kind = ErrorKind.GATEWAY_ERROR
    default_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        operation: Optional[str] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body[:2000] if body else ""
        self.operation = operation
        if retryable is None:
            retryable = is_retryable_status(status_code)
        super().__init__(
            message,
            details={"status_code": status_code, "operation": operation},
            retryable=retryable,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["gateway_body"] = self.body
        return data


class GatewayAuthError(GatewayError):
    """Raised when the OAuth client-credentials exchange fails."""

    default_code = "GATEWAY_AUTH_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message, status_code=status_code, body=body, operation="oauth_token")


class GatewayConfigurationError(GatewayError):
    """Raised when credentials or keys for the gateway are missing or invalid."""

    default_code = "GATEWAY_NOT_CONFIGURED"

    def __init__(self, message: str) -> None:
        super().__init__(message, operation="configuration", retryable=False)
