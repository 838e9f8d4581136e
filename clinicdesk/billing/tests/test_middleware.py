"""
Tests for SubscriptionAccessMiddleware.
"""

from datetime import timedelta
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone

from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.gate import EnforcementGate
from clinicdesk.billing.models import Subscription
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.tests.factories import SubscriptionFactory
from clinicdesk.users.tests.factories import UserFactory
from clinicdesk.users.tests.factories import ensure_plans
from clinicdesk.users.tests.factories import grant_role


class SubscriptionAccessMiddlewareTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        ensure_plans()
        cls.user = UserFactory()

    def setUp(self):
        self.subscription = SubscriptionFactory(trialing=True)
        grant_role(self.user, self.subscription.clinic, RoleCode.DOCTOR)
        self.client.force_login(self.user)

    def _expire_trial(self):
        Subscription.objects.filter(pk=self.subscription.pk).update(
            trial_ends_at=timezone.now() - timedelta(hours=1),
        )

    def test_allows_active_trial(self):
        response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 200)

    def test_lapsed_trial_blocked_and_persisted(self):
        self._expire_trial()

        response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 403)
        body = response.json()
        self.assertEqual(body["reason_code"], "TrialExpired")
        self.assertTrue(body["requires_upgrade"])
        self.subscription.refresh_from_db()
        self.assertEqual(self.subscription.status, SubscriptionStatus.PAST_DUE)

    def test_second_request_reports_inactive(self):
        self._expire_trial()
        self.client.get(reverse("api:patients:list"))

        response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["reason_code"], "SubscriptionInactive")
        self.assertEqual(response.json()["current_status"], "past_due")

    def test_billing_paths_exempt(self):
        self._expire_trial()

        response = self.client.get(reverse("api:billing:subscription"))

        self.assertEqual(response.status_code, 200)

    def test_canceled_subscription_blocked(self):
        Subscription.objects.filter(pk=self.subscription.pk).update(
            status=SubscriptionStatus.CANCELED,
        )

        response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["reason_code"], "SubscriptionInactive")

    def test_infrastructure_error_returns_500(self):
        with patch(
            "clinicdesk.billing.gate.reconcile_expiry",
            side_effect=DatabaseError("connection lost"),
        ):
            response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "entitlement_check_failed")

    @override_settings(BILLING_GATE_FAIL_OPEN=True)
    def test_infrastructure_error_fail_open(self):
        with patch(
            "clinicdesk.billing.gate.reconcile_expiry",
            side_effect=DatabaseError("connection lost"),
        ):
            response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 200)

    def test_gated_view_reuses_middleware_decision(self):
        with patch.object(
            EnforcementGate,
            "evaluate",
            autospec=True,
            side_effect=EnforcementGate.evaluate,
        ) as evaluate:
            response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(evaluate.call_count, 1)

    def test_feature_check_still_runs_after_middleware(self):
        response = self.client.get(reverse("api:patients:export"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["reason_code"], "FeatureNotInPlan")

    def test_user_without_clinic_denied(self):
        self.client.force_login(UserFactory())

        response = self.client.get(reverse("api:patients:list"))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["reason_code"], "NoSubscription")
