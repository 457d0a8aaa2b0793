"""
Storefront Views - Storefront Platform
======================================

Buyer-facing checkout endpoints and the payment gateway webhook.

Endpoints
---------

1. CheckoutView
   - URL: /api/storefront/<subdomain>/checkout/
   - Method: POST
   - Auth: None
   - Purpose:
       Turns the buyer's cart into a PENDING order and creates the gateway
       order. 201 {order, redirect_url}; 400/409 typed checkout failure;
       502 when the gateway refused (order stays PENDING, body has order_id).

2. OrderStatusView
   - URL: /api/storefront/<subdomain>/orders/<uuid>/status/
   - Method: GET
   - Auth: None
   - Purpose: {order_number, payment_status} for the success page.

3. OrderPaymentView
   - URL: /api/storefront/<subdomain>/orders/<uuid>/pay/
   - Method: POST
   - Auth: None
   - Purpose:
       Retries the gateway initiation for a PENDING order (e.g. after a
       502 from checkout). 200 {order_id, redirect_url}; 409 when the
       payment is already resolved; 502 when the gateway refused again.

4. PaymentFailureView
   - URL: /api/storefront/<subdomain>/orders/<uuid>/payment-failure/
   - Method: GET
   - Auth: None
   - Purpose:
       Fail page. Polls the gateway receipt, reconciles the order and
       returns the rejection details (or null).

5. GatewayCallbackView
   - URL: /api/payments/bog/callback/
   - Method: POST
   - Auth: Callback-Signature header (RSA over the raw body)
   - Purpose:
       Gateway webhook. 200 for processed and ignored events, 400 for an
       unparsable body, 500 when processing failed so the gateway retries.

Author: Storefront Development Team
Version: 1.0.0
"""

import json
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import CommerceError, NotFound, ValidationFailed, error_response
from core.payment_gateway import GatewayClient, GatewayError, get_gateway_client
from core.tenants.models import Tenant
from core.tenants.services import tenant_can_serve

from .serializers import CheckoutRequestSerializer, OrderSerializer
from .services.checkout import CheckoutTransactionManager
from .services.order_status import get_order_status, get_payment_failure_details
from .services.payment_initiation import initiate_order_payment, retry_order_payment
from .services.reconciliation import PaymentReconciler

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Callback-Signature"


def gateway_failure_response(error: GatewayError, order_id) -> Response:
    """502 for a refused gateway initiation; the order stays PENDING and can be paid later."""
    return Response(
        {
            "message": "Payment could not be started. Please try again.",
            "code": error.code,
            "kind": error.kind.value,
            "retryable": error.retryable,
            "order_id": str(order_id),
        },
        status=status.HTTP_502_BAD_GATEWAY,
    )


class StorefrontAPIView(APIView):
    """Public storefront endpoint scoped to the tenant in the URL."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def get_tenant(self, subdomain: str) -> Tenant:
        tenant = Tenant.objects.filter(subdomain=subdomain).first()
        if tenant is None or not tenant_can_serve(tenant):
            raise NotFound("Store not found", code="STORE_NOT_FOUND")
        return tenant


class CheckoutView(StorefrontAPIView):
    def post(self, request, subdomain):
        try:
            tenant = self.get_tenant(subdomain)
        except CommerceError as e:
            return error_response(e)

        serializer = CheckoutRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return error_response(ValidationFailed("Invalid checkout data", details=serializer.errors))

        result = CheckoutTransactionManager().checkout(
            serializer.validated_data["session_id"], tenant.pk, serializer.to_buyer()
        )
        if not result.ok:
            return error_response(result.error)

        order = result.order
        try:
            redirect_url = initiate_order_payment(order)
        except GatewayError as e:
            logger.error("Gateway initiation for order %s failed: %s", order.order_number, e.message)
            return gateway_failure_response(e, order.pk)

        return Response(
            {"order": OrderSerializer(order).data, "redirect_url": redirect_url},
            status=status.HTTP_201_CREATED,
        )


class OrderStatusView(StorefrontAPIView):
    def get(self, request, subdomain, order_id):
        try:
            tenant = self.get_tenant(subdomain)
            return Response(get_order_status(order_id, tenant.pk))
        except CommerceError as e:
            return error_response(e)


class OrderPaymentView(StorefrontAPIView):
    def post(self, request, subdomain, order_id):
        try:
            tenant = self.get_tenant(subdomain)
            redirect_url = retry_order_payment(order_id, tenant.pk)
        except GatewayError as e:
            logger.error("Gateway initiation retry for order %s failed: %s", order_id, e.message)
            return gateway_failure_response(e, order_id)
        except CommerceError as e:
            return error_response(e)
        return Response({"order_id": str(order_id), "redirect_url": redirect_url})


class PaymentFailureView(StorefrontAPIView):
    def get(self, request, subdomain, order_id):
        try:
            tenant = self.get_tenant(subdomain)
        except CommerceError as e:
            return error_response(e)
        return Response(get_payment_failure_details(order_id, tenant.pk))


class GatewayCallbackView(APIView):
    """
    Webhook for the payment gateway.

    The signature is verified over ``request.body`` (the raw bytes) before
    the JSON is parsed.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        raw_body = request.body
        signature = request.headers.get(SIGNATURE_HEADER)

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("Rejecting gateway callback with unparsable body")
            return Response({"detail": "Invalid JSON body."}, status=status.HTTP_400_BAD_REQUEST)

        client = get_gateway_client()
        verified = client is not None and client.verify_callback_signature(raw_body, signature)
        if not verified:
            if getattr(settings, "BOG_REJECT_UNVERIFIED_CALLBACKS", False):
                return Response({"detail": "Invalid signature."}, status=status.HTTP_401_UNAUTHORIZED)
            logger.warning("Processing gateway callback with unverified signature")

        parsed = GatewayClient.parse_callback(payload)
        if parsed is None:
            logger.info("Ignoring unrecognized gateway callback")
            return Response({"received": True, "handled": False})

        try:
            outcome = PaymentReconciler().handle_callback(parsed)
        except Exception:
            logger.exception("Processing gateway callback for %s failed", parsed.gateway_order_id)
            return Response(
                {"detail": "Callback processing failed."},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"received": True, "handled": True, "outcome": outcome.value})
