from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from billing.models import Payment, Subscription
from core.payment_gateway import GatewayError, GatewayOrder
from core.tests.helpers import make_tenant, make_user


class BillingViewTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.owner = make_user("dashboard-owner")
        cls.stranger = make_user("stranger")
        cls.staff = make_user("platform-admin", is_staff=True)
        cls.tenant = make_tenant(owner=cls.owner, subdomain="dashboard")
        now = timezone.now()
        Subscription.objects.create(
            tenant=cls.tenant,
            status=Subscription.Status.ACTIVE,
            current_period_start=now - timedelta(days=5),
            current_period_end=now + timedelta(days=24),
            next_billing_date=now + timedelta(days=25),
        )

    def setUp(self):
        self.client = APIClient()
        self.base = f"/api/billing/tenants/{self.tenant.pk}"

    def test_anonymous_is_rejected(self):
        response = self.client.get(f"{self.base}/subscription/")
        self.assertEqual(response.status_code, 401)

    def test_other_user_is_forbidden(self):
        self.client.force_authenticate(self.stranger)
        response = self.client.get(f"{self.base}/subscription/")
        self.assertEqual(response.status_code, 403)

    def test_owner_sees_subscription(self):
        self.client.force_authenticate(self.owner)

        response = self.client.get(f"{self.base}/subscription/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["subscription"]["status"], "ACTIVE")
        self.assertTrue(body["subscription"]["is_serving"])
        self.assertIsNone(body["pending_setup_fee"])
        self.assertTrue(body["tenant_active"])

    def test_staff_may_manage_any_tenant(self):
        self.client.force_authenticate(self.staff)
        response = self.client.get(f"{self.base}/subscription/")
        self.assertEqual(response.status_code, 200)

    def test_jwt_bearer_token_authenticates(self):
        token = self.client.post(
            "/api/token/", {"username": "dashboard-owner", "password": "Testpassword123"}, format="json"
        ).json()["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = self.client.get(f"{self.base}/subscription/")

        self.assertEqual(response.status_code, 200)

    def test_jwt_cookie_authenticates(self):
        token = self.client.post(
            "/api/token/", {"username": "dashboard-owner", "password": "Testpassword123"}, format="json"
        ).json()["access"]
        self.client.cookies["access_token"] = token

        response = self.client.get(f"{self.base}/subscription/")

        self.assertEqual(response.status_code, 200)

    def test_cancel_then_reactivate(self):
        self.client.force_authenticate(self.owner)

        cancelled = self.client.post(f"{self.base}/subscription/cancel/")
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["status"], "CANCELLED")
        self.assertTrue(cancelled.json()["is_serving"])

        reactivated = self.client.post(f"{self.base}/subscription/reactivate/")
        self.assertEqual(reactivated.status_code, 200)
        self.assertEqual(reactivated.json()["status"], "ACTIVE")
        self.assertFalse(Payment.objects.exists())

    def test_renew_before_due_date_is_409(self):
        self.client.force_authenticate(self.owner)

        response = self.client.post(f"{self.base}/subscription/renew/")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "SUBSCRIPTION_NOT_DUE")

    def test_unknown_tenant_for_staff_is_404(self):
        self.client.force_authenticate(self.staff)

        response = self.client.post("/api/billing/tenants/999999/subscription/cancel/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "TENANT_NOT_FOUND")

    def test_setup_fee_after_subscription_is_409(self):
        self.client.force_authenticate(self.owner)
        response = self.client.post(f"{self.base}/setup-fee/")
        self.assertEqual(response.status_code, 409)


class SetupFeeViewTests(TestCase):
    def setUp(self):
        self.owner = make_user("new-owner")
        self.tenant = make_tenant(owner=self.owner, subdomain="new-store", is_active=False)
        self.client = APIClient()
        self.client.force_authenticate(self.owner)
        self.url = f"/api/billing/tenants/{self.tenant.pk}/setup-fee/"

    @patch("billing.services.payments.get_gateway_client")
    def test_setup_fee_checkout_returns_redirect(self, mock_get_client):
        client = MagicMock()
        client.create_gateway_order.return_value = GatewayOrder("gw-setup", "https://pay.test/setup")
        mock_get_client.return_value = client

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["redirect_url"], "https://pay.test/setup")
        payment = Payment.objects.get(tenant=self.tenant)
        self.assertEqual(payment.type, Payment.Type.SETUP_FEE)
        self.assertEqual(payment.gateway_order_id, "gw-setup")

    @patch("billing.services.payments.get_gateway_client")
    def test_gateway_failure_is_502_and_payment_stays_pending(self, mock_get_client):
        client = MagicMock()
        client.create_gateway_order.side_effect = GatewayError("unavailable", status_code=503, body="secret")
        mock_get_client.return_value = client

        response = self.client.post(self.url)

        self.assertEqual(response.status_code, 502)
        body = response.json()
        self.assertTrue(body["retryable"])
        self.assertNotIn("gateway_body", body)
        payment = Payment.objects.get(tenant=self.tenant)
        self.assertEqual(body["payment_id"], str(payment.pk))
        self.assertEqual(payment.status, Payment.Status.PENDING)

    def test_pending_setup_fee_is_reported(self):
        Payment.objects.create(
            user=self.owner, tenant=self.tenant, type=Payment.Type.SETUP_FEE, amount="1.00"
        )

        response = self.client.get(f"/api/billing/tenants/{self.tenant.pk}/subscription/")

        body = response.json()
        self.assertIsNone(body["subscription"])
        self.assertEqual(body["pending_setup_fee"]["status"], "PENDING")
        self.assertFalse(body["tenant_active"])
