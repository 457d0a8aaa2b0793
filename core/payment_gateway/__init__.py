"""
Payment Gateway Integration Package

Client for the Bank of Georgia Payment Manager API used by checkout (order
creation and buyer redirect), by the webhook (signature verification and
callback parsing) and by the fail-page reconciliation (payment details
polling).

Structure
---------
- token_manager.py → ``TokenCache`` (OAuth bearer token, thread-safe)
- client.py        → ``GatewayClient`` and ``get_gateway_client()``
- exceptions.py    → ``GatewayError`` hierarchy

Author: Storefront Development Team
Version: 1.0.0
"""

from .client import (
    BasketItem,
    GatewayClient,
    GatewayOrder,
    GatewayOrderRequest,
    ParsedCallback,
    gateway_callback_url,
    get_gateway_client,
)
from .exceptions import GatewayError, GatewayAuthError, GatewayConfigurationError
from .token_manager import TokenCache

__all__ = [
    "BasketItem",
    "GatewayClient",
    "GatewayOrder",
    "GatewayOrderRequest",
    "ParsedCallback",
    "gateway_callback_url",
    "get_gateway_client",
    "GatewayError",
    "GatewayAuthError",
    "GatewayConfigurationError",
    "TokenCache",
]
