"""
Bank of Georgia Payment Gateway Client

This module integrates the storefront with the Bank of Georgia (BOG) Payment
Manager API. It handles OAuth 2.0 token acquisition (through ``TokenCache``),
order creation with buyer redirect, verification of asynchronous callback
signatures, callback parsing, polling of payment details and refunds.

Configuration
-------------
Credentials are read from environment variables first and Django settings
second:

- ``BOG_CLIENT_ID`` / ``BOG_CLIENT_SECRET``  → OAuth client credentials
- ``BOG_OAUTH_URL`` / ``BOG_API_URL``        → sandbox defaults below
- ``BOG_CALLBACK_PUBLIC_KEY``                → PEM key for callback signatures
- ``BOG_REQUEST_TIMEOUT``                    → seconds per HTTP call

Every outbound call carries a bounded timeout and is attempted exactly once;
retry policy belongs to the caller.

See https://api.bog.ge/docs/en/payments/

Author: Storefront Development Team
Version: 1.0.0
"""

import base64
import binascii
import logging
import os
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from functools import lru_cache
from typing import Optional, Dict, Any, List

import requests
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from django.conf import settings

from .exceptions import GatewayError, GatewayAuthError, GatewayConfigurationError
from .token_manager import TokenCache

logger = logging.getLogger(__name__)

DEFAULT_OAUTH_URL = (
    "https://oauth2-sandbox.bog.ge/auth/realms/bog/protocol/openid-connect/token"
)
DEFAULT_API_URL = "https://api-sandbox.bog.ge/payments/v1"

# Published by BOG for SHA256withRSA callback signatures.
DEFAULT_CALLBACK_PUBLIC_KEY = """-----BEGIN PUBLIC KEY-----
MIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEAu4RUyAw3+CdkS3ZNILQh
zHI9Hemo+vKB9U2BSabppkKjzjjkf+0Sm76hSMiu/HFtYhqWOESryoCDJoqffY0Q
1VNt25aTxbj068QNUtnxQ7KQVLA+pG0smf+EBWlS1vBEAFbIas9d8c9b9sSEkTrr
TYQ90WIM8bGB6S/KLVoT1a7SnzabjoLc5Qf/SLDG5fu8dH8zckyeYKdRKSBJKvhx
tcBuHV4f7qsynQT+f2UYbESX/TLHwT5qFWZDHZ0YUOUIvb8n7JujVSGZO9/+ll/g
4ZIWhC1MlJgPObDwRkRd8NFOopgxMcMsDIZIoLbWKhHVq67hdbwpAq9K9WMmEhPn
PwIDAQAB
-----END PUBLIC KEY-----"""

STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"
SUCCESS_CODE = "100"

IDEMPOTENCY_NAMESPACE = uuid.UUID("6f1c7d0e-3b9a-4a57-9d2e-8c4b1f0a2e61")

CENT = Decimal("0.01")


def _money(value) -> float:
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def _setting(name: str, default=None):
    value = os.environ.get(name)
    if value not in (None, ""):
        return value
    return getattr(settings, name, default)


@dataclass(frozen=True)
class BasketItem:
    product_id: str
    description: str
    quantity: int
    unit_price: Decimal
    sku: Optional[str] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class GatewayOrderRequest:
    internal_order_id: str
    callback_url: str
    total_amount: Decimal
    basket: List[BasketItem]
    customer_name: str
    customer_email: str
    success_url: str
    fail_url: str
    ttl_minutes: int = 15
    customer_phone: Optional[str] = None


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    redirect_url: str
    details_url: Optional[str] = None


@dataclass(frozen=True)
class ParsedCallback:
    event: str
    gateway_order_id: str
    external_order_id: Optional[str]
    status: Optional[str]
    code: str = ""
    transfer_amount: str = "0"
    reject_reason: Optional[str] = None
    code_description: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def mask_email(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return "***@***"
    local, domain = email.split("@", 1)
    if not local:
        return "***@***"
    if len(local) <= 2:
        masked = local[0] + "***"
    else:
        masked = local[0] + "***" + local[-1]
    return f"{masked}@{domain}"


def mask_phone(phone: Optional[str]) -> str:
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if len(digits) < 6:
        return "+995***000"
    return f"+{digits[:3]}***{digits[-3:]}"


def idempotency_key_for(internal_order_id: str) -> str:
    """Derive a stable Idempotency-Key from our own order id."""
    return str(uuid.uuid5(IDEMPOTENCY_NAMESPACE, str(internal_order_id)))


class GatewayClient:
    """
    Client for the BOG Payment Manager API.

    Attributes:
        REQUEST_TIMEOUT (int): Default HTTP request timeout in seconds
        TOKEN_SAFETY_MARGIN (int): Seconds before expiry a token is refreshed

    Example:
        >>> client = GatewayClient()
        >>> order = client.create_gateway_order(request)
        >>> redirect(order.redirect_url)
    """

    REQUEST_TIMEOUT = 30
    TOKEN_SAFETY_MARGIN = 60

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        oauth_url: Optional[str] = None,
        api_url: Optional[str] = None,
        callback_public_key: Optional[str] = None,
        timeout: Optional[float] = None,
        token_cache: Optional[TokenCache] = None,
        language: str = "ka",
        currency: Optional[str] = None,
    ) -> None:
        self.client_id = client_id or _setting("BOG_CLIENT_ID")
        self.client_secret = client_secret or _setting("BOG_CLIENT_SECRET")
        self.oauth_url = oauth_url or _setting("BOG_OAUTH_URL", DEFAULT_OAUTH_URL)
        self.api_url = (api_url or _setting("BOG_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.timeout = float(timeout or _setting("BOG_REQUEST_TIMEOUT", self.REQUEST_TIMEOUT))
        self.language = language
        self.currency = currency or _setting("BOG_CURRENCY", "GEL")
        self._validate_credentials()

        pem = callback_public_key or _setting("BOG_CALLBACK_PUBLIC_KEY") or DEFAULT_CALLBACK_PUBLIC_KEY
        self._public_key = self._load_public_key(pem)

        self.token_cache = token_cache or TokenCache(
            self.request_token,
            safety_margin=int(_setting("BOG_TOKEN_SAFETY_MARGIN", self.TOKEN_SAFETY_MARGIN)),
        )

    def _validate_credentials(self) -> None:
        missing = []
        if not self.client_id:
            missing.append("BOG_CLIENT_ID")
        if not self.client_secret:
            missing.append("BOG_CLIENT_SECRET")
        if missing:
            raise GatewayConfigurationError(
                f"Missing required gateway credentials: {', '.join(missing)}"
            )

    @staticmethod
    def _load_public_key(pem: str):
        try:
            return serialization.load_pem_public_key(pem.encode("utf-8"))
        except ValueError as e:
            raise GatewayConfigurationError(f"Invalid BOG_CALLBACK_PUBLIC_KEY: {e}")

    # ---------- OAuth ----------

    def get_access_token(self) -> str:
        return self.token_cache.get()

    def request_token(self) -> Dict[str, Any]:
        """
        Perform the client-credentials exchange (HTTP Basic auth).

        Raises:
            GatewayAuthError: On transport failure or non-2xx response
        """
        credentials = base64.b64encode(
            f"{self.client_id}:{self.client_secret}".encode("utf-8")
        ).decode("ascii")
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": f"Basic {credentials}",
            "Accept": "application/json",
        }

        logger.info("Requesting new gateway access token")
        try:
            response = requests.request(
                "POST",
                self.oauth_url,
                data={"grant_type": "client_credentials"},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise GatewayAuthError(f"Gateway token request failed: {e}")

        if not response.ok:
            logger.error("Gateway OAuth failed: %s", response.status_code)
            raise GatewayAuthError(
                f"Gateway OAuth failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayAuthError(f"Invalid JSON in gateway token response: {e}")

    # ---------- HTTP helpers ----------

    def _request(self, method: str, path: str, operation: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.get_access_token()}"
        url = f"{self.api_url}{path}"
        try:
            return requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            raise GatewayError(
                f"Gateway {operation} timed out after {self.timeout}s", operation=operation
            )
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Gateway {operation} failed: {e}", operation=operation)

    @staticmethod
    def _raise_for_status(response: requests.Response, operation: str) -> None:
        if response.ok:
            return
        logger.error(
            "Gateway %s failed: %s %s", operation, response.status_code, response.text[:500]
        )
        raise GatewayError(
            f"Gateway {operation} failed: {response.status_code}",
            status_code=response.status_code,
            body=response.text,
            operation=operation,
        )

    # ---------- Orders ----------

    def build_order_payload(self, params: GatewayOrderRequest) -> Dict[str, Any]:
        ttl = min(1440, max(2, int(params.ttl_minutes)))
        return {
            "callback_url": params.callback_url,
            "external_order_id": str(params.internal_order_id),
            "capture": "automatic",
            "ttl": ttl,
            "payment_method": ["card"],
            "buyer": {
                "full_name": params.customer_name,
                "masked_email": mask_email(params.customer_email),
                "masked_phone": mask_phone(params.customer_phone),
            },
            "purchase_units": {
                "currency": self.currency,
                "total_amount": _money(params.total_amount),
                "total_discount_amount": 0,
                "basket": [
                    {
                        "product_id": str(item.product_id),
                        "description": item.description,
                        "quantity": item.quantity,
                        "unit_price": _money(item.unit_price),
                        "unit_discount_price": 0,
                        "vat": 0,
                        "vat_percent": 0,
                        "total_price": _money(item.unit_price * item.quantity),
                        "image": item.image,
                        "package_code": item.sku,
                    }
                    for item in params.basket
                ],
                "delivery": {"amount": 0},
            },
            "redirect_urls": {
                "success": params.success_url,
                "fail": params.fail_url,
            },
        }

    def create_gateway_order(self, params: GatewayOrderRequest) -> GatewayOrder:
        """
        Create a payment order at the gateway and return the buyer redirect.

        Raises:
            GatewayError: On non-2xx response (status and body attached)
        """
        headers = {
            "Content-Type": "application/json",
            "Accept-Language": self.language,
            "Idempotency-Key": idempotency_key_for(params.internal_order_id),
        }
        response = self._request(
            "POST",
            "/ecommerce/orders",
            "create_order",
            headers=headers,
            json=self.build_order_payload(params),
        )
        self._raise_for_status(response, "create_order")

        try:
            data = response.json()
        except ValueError:
            raise GatewayError(
                "Gateway returned invalid JSON for create_order",
                status_code=response.status_code,
                body=response.text,
                operation="create_order",
            )

        links = data.get("_links") or {}
        redirect_href = (links.get("redirect") or {}).get("href")
        if not redirect_href or not data.get("id"):
            raise GatewayError(
                "Gateway did not return a redirect URL",
                status_code=response.status_code,
                body=response.text,
                operation="create_order",
                retryable=False,
            )

        logger.info(
            "Created gateway order %s for order %s", data["id"], params.internal_order_id
        )
        return GatewayOrder(
            gateway_order_id=str(data["id"]),
            redirect_url=redirect_href,
            details_url=(links.get("details") or {}).get("href"),
        )

    def get_payment_details(self, gateway_order_id: str) -> Optional[Dict[str, Any]]:
        """Poll the receipt for a gateway order; ``None`` when unknown to the gateway."""
        response = self._request("GET", f"/receipt/{gateway_order_id}", "get_payment_details")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "get_payment_details")
        return response.json()

    def refund(self, gateway_order_id: str, amount: Optional[Decimal] = None) -> Dict[str, Any]:
        """Refund a payment: full when ``amount`` is omitted, partial otherwise."""
        body = {"amount": str(amount)} if amount is not None else {}
        response = self._request(
            "POST",
            f"/payment/refund/{gateway_order_id}",
            "refund",
            headers={"Content-Type": "application/json"},
            json=body,
        )
        self._raise_for_status(response, "refund")
        logger.info("Refund requested for gateway order %s (amount=%s)", gateway_order_id, amount)
        return response.json()

    # ---------- Callbacks ----------

    def verify_callback_signature(self, raw_body: bytes, signature_b64: Optional[str]) -> bool:
        """
        Verify the ``Callback-Signature`` header over the exact raw body bytes.

        Must be called with the bytes received on the wire, before any JSON
        parsing, since re-serialization is not byte-identical.
        """
        if not signature_b64:
            return False
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        try:
            signature = base64.b64decode(signature_b64, validate=True)
            self._public_key.verify(signature, raw_body, padding.PKCS1v15(), hashes.SHA256())
            return True
        except (InvalidSignature, binascii.Error, ValueError):
            logger.warning("Gateway callback signature verification failed")
            return False

    @staticmethod
    def parse_callback(body: Any) -> Optional[ParsedCallback]:
        """Extract the relevant fields of a callback; ``None`` for malformed payloads."""
        if not isinstance(body, dict):
            return None
        inner = body.get("body")
        event = body.get("event")
        if not isinstance(inner, dict) or not event or not inner.get("order_id"):
            return None

        order_status = inner.get("order_status") or {}
        payment_detail = inner.get("payment_detail") or {}
        purchase_units = inner.get("purchase_units") or {}
        external_order_id = inner.get("external_order_id")

        return ParsedCallback(
            event=str(event),
            gateway_order_id=str(inner["order_id"]),
            external_order_id=str(external_order_id) if external_order_id else None,
            status=order_status.get("key") if isinstance(order_status, dict) else None,
            code=str(payment_detail.get("code") or "") if isinstance(payment_detail, dict) else "",
            transfer_amount=str(purchase_units.get("transfer_amount") or "0")
            if isinstance(purchase_units, dict)
            else "0",
            reject_reason=inner.get("reject_reason"),
            code_description=payment_detail.get("code_description")
            if isinstance(payment_detail, dict)
            else None,
            raw=inner,
        )

    @staticmethod
    def is_successful(parsed: Optional[ParsedCallback]) -> bool:
        # "completed" alone is not enough, the provider code must confirm it.
        if parsed is None:
            return False
        return parsed.status == STATUS_COMPLETED and parsed.code == SUCCESS_CODE


@lru_cache(maxsize=1)
def _shared_client() -> GatewayClient:
    return GatewayClient()


def get_gateway_client() -> Optional[GatewayClient]:
    """
    Process-wide gateway client, or ``None`` when credentials are not configured.
    """
    if not (_setting("BOG_CLIENT_ID") and _setting("BOG_CLIENT_SECRET")):
        return None
    return _shared_client()


def gateway_callback_url() -> str:
    """Public webhook URL handed to the gateway with every order."""
    base = (_setting("PUBLIC_API_URL") or "http://localhost:8000").rstrip("/")
    return f"{base}/api/payments/bog/callback/"
