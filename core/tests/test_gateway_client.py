import json
from decimal import Decimal
from unittest.mock import patch

import requests
from django.test import SimpleTestCase

from core.payment_gateway import (
    BasketItem,
    GatewayClient,
    GatewayConfigurationError,
    GatewayError,
    GatewayOrderRequest,
)
from core.payment_gateway.client import idempotency_key_for, mask_email, mask_phone

from .helpers import make_gateway_client, mock_response, sign, token_response


def order_request(**kwargs):
    params = {
        "internal_order_id": "8d7f3c9e-1111-4a2b-9c3d-000000000001",
        "callback_url": "https://api.shop.test/api/payments/bog/callback/",
        "total_amount": Decimal("25.50"),
        "basket": [
            BasketItem(product_id="1", description="T-Shirt", quantity=2, unit_price=Decimal("10.00"), sku="TS-1"),
            BasketItem(product_id="2", description="Mug", quantity=1, unit_price=Decimal("5.50")),
        ],
        "customer_name": "Nino Beridze",
        "customer_email": "nino@example.com",
        "customer_phone": "+995 555 123 456",
        "success_url": "https://shop.test/success",
        "fail_url": "https://shop.test/failed",
    }
    params.update(kwargs)
    return GatewayOrderRequest(**params)


def callback_body(status="completed", code="100", external_order_id="order-1"):
    return {
        "event": "order_payment",
        "body": {
            "order_id": "gw-123",
            "external_order_id": external_order_id,
            "order_status": {"key": status},
            "payment_detail": {"code": code, "code_description": "Successful payment"},
            "purchase_units": {"transfer_amount": "25.50"},
            "reject_reason": None,
        },
    }


class MaskingTests(SimpleTestCase):
    def test_mask_email(self):
        self.assertEqual(mask_email("nino@example.com"), "n***o@example.com")
        self.assertEqual(mask_email("ab@example.com"), "a***@example.com")
        self.assertEqual(mask_email("not-an-email"), "***@***")
        self.assertEqual(mask_email(None), "***@***")

    def test_mask_phone(self):
        self.assertEqual(mask_phone("+995 555 123 456"), "+995***456")
        self.assertEqual(mask_phone("123"), "+995***000")

    def test_idempotency_key_is_stable_per_order(self):
        self.assertEqual(idempotency_key_for("order-1"), idempotency_key_for("order-1"))
        self.assertNotEqual(idempotency_key_for("order-1"), idempotency_key_for("order-2"))


class GatewayClientConfigurationTests(SimpleTestCase):
    def test_missing_credentials_raise(self):
        with self.assertRaises(GatewayConfigurationError):
            make_gateway_client(client_id="", client_secret="")

    def test_invalid_public_key_raises(self):
        with self.assertRaises(GatewayConfigurationError):
            make_gateway_client(callback_public_key="not a pem")


@patch("core.payment_gateway.client.requests.request")
class GatewayClientRequestTests(SimpleTestCase):
    def test_token_request_uses_basic_auth_and_client_credentials(self, mock_request):
        mock_request.return_value = token_response("abc")
        client = make_gateway_client()

        self.assertEqual(client.get_access_token(), "abc")

        args, kwargs = mock_request.call_args
        self.assertEqual(args[0], "POST")
        self.assertEqual(args[1], "https://oauth.gateway.test/token")
        self.assertEqual(kwargs["data"], {"grant_type": "client_credentials"})
        self.assertTrue(kwargs["headers"]["Authorization"].startswith("Basic "))
        self.assertEqual(kwargs["timeout"], 5)

    def test_token_is_cached_between_calls(self, mock_request):
        mock_request.side_effect = [
            token_response("abc"),
            mock_response(200, {"id": "gw-1", "_links": {"redirect": {"href": "https://pay/1"}}}),
            mock_response(200, {"id": "gw-2", "_links": {"redirect": {"href": "https://pay/2"}}}),
        ]
        client = make_gateway_client()
        client.create_gateway_order(order_request())
        client.create_gateway_order(order_request(internal_order_id="other"))

        self.assertEqual(mock_request.call_count, 3)

    def test_create_gateway_order_builds_payload(self, mock_request):
        mock_request.side_effect = [
            token_response("abc"),
            mock_response(
                200,
                {
                    "id": "gw-1",
                    "_links": {
                        "redirect": {"href": "https://pay.test/redirect"},
                        "details": {"href": "https://pay.test/details"},
                    },
                },
            ),
        ]
        client = make_gateway_client()
        params = order_request()

        gateway_order = client.create_gateway_order(params)

        self.assertEqual(gateway_order.gateway_order_id, "gw-1")
        self.assertEqual(gateway_order.redirect_url, "https://pay.test/redirect")
        args, kwargs = mock_request.call_args
        self.assertEqual(args[1], "https://api.gateway.test/payments/v1/ecommerce/orders")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer abc")
        self.assertEqual(kwargs["headers"]["Idempotency-Key"], idempotency_key_for(params.internal_order_id))

        payload = kwargs["json"]
        self.assertEqual(payload["external_order_id"], params.internal_order_id)
        self.assertEqual(payload["buyer"]["masked_email"], "n***o@example.com")
        self.assertEqual(payload["purchase_units"]["total_amount"], 25.5)
        self.assertEqual(payload["purchase_units"]["basket"][0]["total_price"], 20.0)
        self.assertEqual(payload["purchase_units"]["basket"][0]["package_code"], "TS-1")
        self.assertEqual(payload["redirect_urls"], {"success": "https://shop.test/success", "fail": "https://shop.test/failed"})

    def test_ttl_is_clamped(self, mock_request):
        client = make_gateway_client()
        self.assertEqual(client.build_order_payload(order_request(ttl_minutes=1))["ttl"], 2)
        self.assertEqual(client.build_order_payload(order_request(ttl_minutes=5000))["ttl"], 1440)

    def test_non_2xx_raises_gateway_error_with_status_and_body(self, mock_request):
        mock_request.side_effect = [
            token_response(),
            mock_response(400, {"message": "bad basket"}, text='{"message": "bad basket"}'),
        ]
        client = make_gateway_client()

        with self.assertRaises(GatewayError) as ctx:
            client.create_gateway_order(order_request())

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("bad basket", ctx.exception.body)
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(ctx.exception.http_status, 502)

    def test_server_error_is_retryable(self, mock_request):
        mock_request.side_effect = [token_response(), mock_response(503, text="unavailable")]
        client = make_gateway_client()

        with self.assertRaises(GatewayError) as ctx:
            client.create_gateway_order(order_request())

        self.assertTrue(ctx.exception.retryable)

    def test_missing_redirect_link_raises(self, mock_request):
        mock_request.side_effect = [token_response(), mock_response(200, {"id": "gw-1", "_links": {}})]
        client = make_gateway_client()

        with self.assertRaises(GatewayError):
            client.create_gateway_order(order_request())

    def test_timeout_becomes_retryable_gateway_error(self, mock_request):
        mock_request.side_effect = [token_response(), requests.exceptions.Timeout("slow")]
        client = make_gateway_client()

        with self.assertRaises(GatewayError) as ctx:
            client.get_payment_details("gw-1")

        self.assertTrue(ctx.exception.retryable)
        self.assertIsNone(ctx.exception.status_code)

    def test_payment_details_not_found_returns_none(self, mock_request):
        mock_request.side_effect = [token_response(), mock_response(404, text="not found")]
        client = make_gateway_client()

        self.assertIsNone(client.get_payment_details("gw-unknown"))

    def test_payment_details_returns_receipt(self, mock_request):
        receipt = {"order_id": "gw-1", "order_status": {"key": "completed"}}
        mock_request.side_effect = [token_response(), mock_response(200, receipt)]
        client = make_gateway_client()

        self.assertEqual(client.get_payment_details("gw-1"), receipt)
        self.assertEqual(mock_request.call_args[0][0], "GET")
        self.assertTrue(mock_request.call_args[0][1].endswith("/receipt/gw-1"))

    def test_partial_refund_sends_amount(self, mock_request):
        mock_request.side_effect = [token_response(), mock_response(200, {"key": "request_received"})]
        client = make_gateway_client()

        client.refund("gw-1", Decimal("5.00"))

        args, kwargs = mock_request.call_args
        self.assertTrue(args[1].endswith("/payment/refund/gw-1"))
        self.assertEqual(kwargs["json"], {"amount": "5.00"})

    def test_full_refund_sends_empty_body(self, mock_request):
        mock_request.side_effect = [token_response(), mock_response(200, {"key": "request_received"})]
        client = make_gateway_client()

        client.refund("gw-1")

        self.assertEqual(mock_request.call_args[1]["json"], {})


class CallbackTests(SimpleTestCase):
    def setUp(self):
        self.gateway = make_gateway_client()

    def test_valid_signature_over_raw_bytes(self):
        raw = json.dumps(callback_body()).encode("utf-8")
        self.assertTrue(self.gateway.verify_callback_signature(raw, sign(raw)))

    def test_reserialized_body_fails_verification(self):
        raw = json.dumps(callback_body(), indent=2).encode("utf-8")
        signature = sign(raw)
        reserialized = json.dumps(json.loads(raw)).encode("utf-8")
        self.assertFalse(self.gateway.verify_callback_signature(reserialized, signature))

    def test_missing_or_garbage_signature_fails(self):
        raw = b"{}"
        self.assertFalse(self.gateway.verify_callback_signature(raw, None))
        self.assertFalse(self.gateway.verify_callback_signature(raw, "%%%not-base64%%%"))

    def test_parse_callback_extracts_fields(self):
        parsed = GatewayClient.parse_callback(callback_body())
        self.assertEqual(parsed.gateway_order_id, "gw-123")
        self.assertEqual(parsed.external_order_id, "order-1")
        self.assertEqual(parsed.status, "completed")
        self.assertEqual(parsed.code, "100")
        self.assertEqual(parsed.transfer_amount, "25.50")

    def test_parse_callback_rejects_malformed(self):
        self.assertIsNone(GatewayClient.parse_callback([]))
        self.assertIsNone(GatewayClient.parse_callback({"event": "order_payment"}))
        self.assertIsNone(GatewayClient.parse_callback({"event": "x", "body": {"external_order_id": "1"}}))

    def test_success_requires_completed_and_success_code(self):
        self.assertTrue(GatewayClient.is_successful(GatewayClient.parse_callback(callback_body())))
        self.assertFalse(
            GatewayClient.is_successful(GatewayClient.parse_callback(callback_body(code="107")))
        )
        self.assertFalse(
            GatewayClient.is_successful(GatewayClient.parse_callback(callback_body(status="rejected")))
        )
        self.assertFalse(GatewayClient.is_successful(None))
