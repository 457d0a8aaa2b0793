"""
Billing Views - Storefront Platform
===================================

Dashboard endpoints for a tenant's subscription. All of them require a
JWT-authenticated tenant owner or a staff user.

Endpoints
---------

1. SubscriptionView
   - URL: /api/billing/tenants/<id>/subscription/
   - Method: GET
   - Purpose:
       Current subscription (recovered from a paid setup fee if missing)
       plus the pending setup fee, if any.

2. CancelSubscriptionView
   - URL: /api/billing/tenants/<id>/subscription/cancel/
   - Method: POST
   - Purpose: End-of-period cancellation.

3. ReactivateSubscriptionView
   - URL: /api/billing/tenants/<id>/subscription/reactivate/
   - Method: POST
   - Purpose:
       Resume a cancelled subscription. Free within the paid period,
       charges a new month after it ended.

4. RenewSubscriptionView
   - URL: /api/billing/tenants/<id>/subscription/renew/
   - Method: POST
   - Purpose: Charge the monthly fee once the billing date has passed.

5. SetupFeeCheckoutView
   - URL: /api/billing/tenants/<id>/setup-fee/
   - Method: POST
   - Purpose:
       Get or create the pending setup fee and start its gateway payment.
       The callback with external id ``PAY-<uuid>`` activates the store.

Author: Storefront Development Team
Version: 1.0.0
"""

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import CommerceError, NotFound, error_response
from core.payment_gateway import GatewayError
from core.tenants.models import Tenant

from .permissions import IsTenantOwnerOrAdmin
from .serializers import PaymentSerializer, SubscriptionSerializer
from .services.payments import PaymentProcessor
from .services.subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)


class TenantBillingAPIView(APIView):
    permission_classes = [IsAuthenticated, IsTenantOwnerOrAdmin]

    def get_tenant(self, tenant_id) -> Tenant:
        tenant = Tenant.objects.select_related("owner").filter(pk=tenant_id).first()
        if tenant is None:
            raise NotFound("Tenant not found", code="TENANT_NOT_FOUND")
        return tenant


class SubscriptionView(TenantBillingAPIView):
    def get(self, request, tenant_id):
        try:
            tenant = self.get_tenant(tenant_id)
        except CommerceError as e:
            return error_response(e)

        machine = SubscriptionStateMachine()
        subscription = machine.recover(tenant.pk, user=tenant.owner)
        tenant.refresh_from_db(fields=["is_active"])
        pending_fee = machine.payments.pending_setup_fee(tenant.pk)
        return Response(
            {
                "subscription": SubscriptionSerializer(subscription).data if subscription else None,
                "pending_setup_fee": PaymentSerializer(pending_fee).data if pending_fee else None,
                "tenant_active": tenant.is_active,
            }
        )


class CancelSubscriptionView(TenantBillingAPIView):
    def post(self, request, tenant_id):
        try:
            subscription = SubscriptionStateMachine().cancel(self.get_tenant(tenant_id).pk)
        except CommerceError as e:
            return error_response(e)
        return Response(SubscriptionSerializer(subscription).data)


class ReactivateSubscriptionView(TenantBillingAPIView):
    def post(self, request, tenant_id):
        try:
            subscription = SubscriptionStateMachine().reactivate(self.get_tenant(tenant_id).pk)
        except CommerceError as e:
            return error_response(e)
        return Response(SubscriptionSerializer(subscription).data)


class RenewSubscriptionView(TenantBillingAPIView):
    def post(self, request, tenant_id):
        machine = SubscriptionStateMachine()
        try:
            payment = machine.charge_due_renewal(self.get_tenant(tenant_id).pk)
        except CommerceError as e:
            return error_response(e)
        return Response(
            {
                "payment": PaymentSerializer(payment).data,
                "subscription": SubscriptionSerializer(machine.get(tenant_id)).data,
            }
        )


class SetupFeeCheckoutView(TenantBillingAPIView):
    def post(self, request, tenant_id):
        try:
            tenant = self.get_tenant(tenant_id)
        except CommerceError as e:
            return error_response(e)

        if SubscriptionStateMachine().get(tenant.pk) is not None:
            return Response({"detail": "Setup fee already paid."}, status=status.HTTP_409_CONFLICT)

        processor = PaymentProcessor()
        payment = processor.get_or_create_setup_fee(tenant)
        base = getattr(settings, "FRONTEND_URL", "http://localhost:3000").rstrip("/")
        try:
            redirect_url = processor.initiate_gateway_checkout(
                payment,
                success_url=f"{base}/dashboard/billing/success?payment={payment.pk}",
                fail_url=f"{base}/dashboard/billing/failed?payment={payment.pk}",
            )
        except GatewayError as e:
            logger.error("Setup fee checkout for tenant %s failed: %s", tenant.pk, e.message)
            data = e.to_dict()
            data.pop("gateway_body", None)
            data["payment_id"] = str(payment.pk)
            return Response(data, status=status.HTTP_502_BAD_GATEWAY)

        return Response(
            {"payment": PaymentSerializer(payment).data, "redirect_url": redirect_url},
            status=status.HTTP_201_CREATED,
        )
