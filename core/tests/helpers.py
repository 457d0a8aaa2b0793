"""Shared fixtures for the core, storefront and billing test suites."""

import base64
from unittest.mock import MagicMock

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from django.contrib.auth.models import User

from core.payment_gateway import GatewayClient
from core.tenants.models import Tenant

_PRIVATE_KEY = None


def private_key():
    global _PRIVATE_KEY
    if _PRIVATE_KEY is None:
        _PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return _PRIVATE_KEY


def public_key_pem() -> str:
    return (
        private_key()
        .public_key()
        .public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
        .decode("ascii")
    )


def sign(body: bytes) -> str:
    signature = private_key().sign(body, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def make_gateway_client(**kwargs) -> GatewayClient:
    options = {
        "client_id": "test-client",
        "client_secret": "test-secret",
        "oauth_url": "https://oauth.gateway.test/token",
        "api_url": "https://api.gateway.test/payments/v1",
        "callback_public_key": public_key_pem(),
        "timeout": 5,
    }
    options.update(kwargs)
    return GatewayClient(**options)


def mock_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text or (str(json_data) if json_data is not None else "")
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


def token_response(token="token-1", expires_in=3600):
    return mock_response(200, {"access_token": token, "token_type": "Bearer", "expires_in": expires_in})


def make_user(username="owner", is_staff=False, **kwargs) -> User:
    return User.objects.create_user(
        username=username,
        password="Testpassword123",
        email=kwargs.pop("email", f"{username}@example.com"),
        is_staff=is_staff,
        **kwargs,
    )


def make_tenant(owner=None, subdomain="shop", is_active=True, **kwargs) -> Tenant:
    owner = owner or make_user(f"{subdomain}-owner")
    return Tenant.objects.create(
        owner=owner,
        name=kwargs.pop("name", subdomain.title()),
        subdomain=subdomain,
        is_active=is_active,
        **kwargs,
    )
