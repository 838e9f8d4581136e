"""
Tests for the entitlement engine.

The engine is pure, so these tests use unsaved Plan and Subscription
instances and an in-memory catalog.
"""

from datetime import datetime
from datetime import timedelta
from datetime import timezone as dt_timezone

import pytest

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.constants import DenialReason
from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.entitlements import AddStaff
from clinicdesk.billing.entitlements import CancelSubscription
from clinicdesk.billing.entitlements import ChangeDirection
from clinicdesk.billing.entitlements import ChangePlan
from clinicdesk.billing.entitlements import Decision
from clinicdesk.billing.entitlements import Denial
from clinicdesk.billing.entitlements import EntitlementEngine
from clinicdesk.billing.entitlements import EntitlementError
from clinicdesk.billing.entitlements import UseFeature
from clinicdesk.billing.entitlements import trial_days_remaining
from clinicdesk.billing.metering import UsageSnapshot
from clinicdesk.billing.models import Plan
from clinicdesk.billing.models import Subscription
from clinicdesk.users.constants import StaffCategory

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def plans():
    return {
        "STARTER": Plan(
            name="STARTER",
            price_monthly=2900,
            price_yearly=29000,
            max_doctors=1,
            max_staff=2,
            features=["appointments", "prescriptions", "basic_billing", "patient_records"],
        ),
        "GROWTH": Plan(
            name="GROWTH",
            price_monthly=5900,
            price_yearly=59000,
            max_doctors=5,
            max_staff=15,
            features=["appointments", "billing", "inventory", "reports"],
        ),
        "PRO": Plan(
            name="PRO",
            price_monthly=12900,
            price_yearly=129000,
            max_doctors=None,
            max_staff=None,
            multi_clinic=True,
            features=["appointments", "billing", "reports", "api_access"],
        ),
        "CLINIC": Plan(
            name="CLINIC",
            price_monthly=5900,
            price_yearly=59000,
            max_doctors=3,
            max_staff=6,
            features=["appointments"],
        ),
    }


@pytest.fixture
def engine(plans):
    return EntitlementEngine(PlanCatalog(plans.values()))


def make_subscription(plan, status=SubscriptionStatus.ACTIVE, trial_ends_at=None):
    return Subscription(plan=plan, status=status, trial_ends_at=trial_ends_at)


class TestAccessGate:
    def test_active_subscription_without_trial_is_allowed(self, engine, plans):
        subscription = make_subscription(plans["STARTER"])

        decision = engine.decide(subscription, subscription.plan, None, AccessResource(), now=NOW)

        assert decision.allowed
        assert decision.denials == ()

    def test_missing_subscription_is_denied(self, engine):
        decision = engine.decide(None, None, None, AccessResource(), now=NOW)

        assert not decision.allowed
        assert decision.reason == DenialReason.NO_SUBSCRIPTION

    def test_trial_in_future_is_allowed_without_mutation(self, engine, plans):
        subscription = make_subscription(
            plans["STARTER"],
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW + timedelta(days=3),
        )

        decision = engine.decide(subscription, subscription.plan, None, AccessResource(), now=NOW)

        assert decision.allowed
        assert subscription.status == SubscriptionStatus.TRIALING

    def test_lapsed_trial_is_denied_as_trial_expired(self, engine, plans):
        subscription = make_subscription(
            plans["STARTER"],
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW - timedelta(seconds=1),
        )

        decision = engine.decide(subscription, subscription.plan, None, AccessResource(), now=NOW)

        assert decision.reason == DenialReason.TRIAL_EXPIRED
        assert decision.requires_upgrade is True

    def test_expired_now_flag_wins_over_past_due_status(self, engine, plans):
        subscription = make_subscription(plans["STARTER"], status=SubscriptionStatus.PAST_DUE)

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            AccessResource(),
            now=NOW,
            expired_now=True,
        )

        assert decision.reason == DenialReason.TRIAL_EXPIRED

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED],
    )
    def test_inactive_statuses_are_denied_with_status(self, engine, plans, status):
        subscription = make_subscription(plans["GROWTH"], status=status)

        decision = engine.decide(subscription, subscription.plan, None, AccessResource(), now=NOW)

        assert decision.reason == DenialReason.SUBSCRIPTION_INACTIVE
        assert decision.primary.current_status == status

    def test_subscription_without_plan_raises(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"])

        with pytest.raises(EntitlementError):
            engine.decide(subscription, None, None, AccessResource(), now=NOW)


class TestFeatureGate:
    def test_feature_in_plan_is_allowed(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"])

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            UseFeature("reports"),
            now=NOW,
        )

        assert decision.allowed

    def test_feature_not_in_plan_reports_feature_and_plan(self, engine):
        plan = Plan(name="BASIC", price_monthly=100, features=["appointments", "billing"])
        subscription = make_subscription(plan)

        decision = engine.decide(subscription, plan, None, UseFeature("inventory"), now=NOW)

        assert decision.reason == DenialReason.FEATURE_NOT_IN_PLAN
        assert decision.primary.feature == "inventory"
        assert decision.primary.current_plan == "BASIC"

    def test_access_denial_takes_precedence(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"], status=SubscriptionStatus.CANCELED)

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            UseFeature("reports"),
            now=NOW,
        )

        assert decision.reason == DenialReason.SUBSCRIPTION_INACTIVE


class TestCapacityGate:
    def test_growth_with_five_doctors_is_at_limit(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"])
        usage = UsageSnapshot(doctor_count=5, total_staff_count=5)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            AddStaff(StaffCategory.DOCTOR),
            now=NOW,
        )

        assert decision.reason == DenialReason.DOCTOR_LIMIT_REACHED
        assert decision.primary.current_count == 5
        assert decision.primary.limit == 5

    def test_growth_with_four_doctors_is_allowed(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"])
        usage = UsageSnapshot(doctor_count=4, total_staff_count=4)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            AddStaff(StaffCategory.DOCTOR),
            now=NOW,
        )

        assert decision.allowed

    def test_unlimited_doctors_always_allowed(self, engine, plans):
        subscription = make_subscription(plans["PRO"])
        usage = UsageSnapshot(doctor_count=500, total_staff_count=900)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            AddStaff(StaffCategory.DOCTOR),
            now=NOW,
        )

        assert decision.allowed

    def test_general_staff_limit(self, engine, plans):
        subscription = make_subscription(plans["STARTER"])
        usage = UsageSnapshot(doctor_count=1, total_staff_count=2)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            AddStaff(StaffCategory.GENERAL_STAFF),
            now=NOW,
        )

        assert decision.reason == DenialReason.STAFF_LIMIT_REACHED
        assert (decision.primary.current_count, decision.primary.limit) == (2, 2)

    def test_capacity_requires_usage(self, engine, plans):
        subscription = make_subscription(plans["STARTER"])

        with pytest.raises(EntitlementError):
            engine.decide(
                subscription,
                subscription.plan,
                None,
                AddStaff(StaffCategory.DOCTOR),
                now=NOW,
            )


class TestPlanChange:
    def test_upgrade_to_higher_price_is_allowed(self, engine, plans):
        subscription = make_subscription(plans["STARTER"])

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            ChangePlan("GROWTH", ChangeDirection.UPGRADE),
            now=NOW,
        )

        assert decision.allowed

    def test_upgrade_allowed_while_trial_has_lapsed(self, engine, plans):
        subscription = make_subscription(
            plans["STARTER"],
            status=SubscriptionStatus.PAST_DUE,
        )

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            ChangePlan("PRO", ChangeDirection.UPGRADE),
            now=NOW,
        )

        assert decision.allowed

    @pytest.mark.parametrize("target", ["STARTER", "CLINIC"])
    def test_upgrade_to_lower_or_equal_price_is_not_an_upgrade(self, engine, plans, target):
        subscription = make_subscription(plans["GROWTH"])

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            ChangePlan(target, ChangeDirection.UPGRADE),
            now=NOW,
        )

        assert decision.reason == DenialReason.NOT_AN_UPGRADE
        assert decision.requires_upgrade is False

    @pytest.mark.parametrize("target", ["PRO", "CLINIC"])
    def test_downgrade_to_higher_or_equal_price_is_not_a_downgrade(
        self,
        engine,
        plans,
        target,
    ):
        subscription = make_subscription(plans["GROWTH"])

        decision = engine.decide(
            subscription,
            subscription.plan,
            UsageSnapshot(),
            ChangePlan(target, ChangeDirection.DOWNGRADE),
            now=NOW,
        )

        assert decision.reason == DenialReason.NOT_A_DOWNGRADE

    def test_unknown_target_plan(self, engine, plans):
        subscription = make_subscription(plans["STARTER"])

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            ChangePlan("PLATINUM", ChangeDirection.UPGRADE),
            now=NOW,
        )

        assert decision.reason == DenialReason.UNKNOWN_PLAN
        assert decision.requires_upgrade is False

    def test_downgrade_over_doctor_limit(self, engine, plans):
        subscription = make_subscription(plans["PRO"])
        usage = UsageSnapshot(doctor_count=6, total_staff_count=6)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            ChangePlan("GROWTH", ChangeDirection.DOWNGRADE),
            now=NOW,
        )

        assert decision.reasons == [DenialReason.DOWNGRADE_EXCEEDS_DOCTOR_LIMIT]
        assert decision.primary.current_count == 6
        assert decision.primary.limit == 5

    def test_downgrade_reports_both_violations(self, engine, plans):
        subscription = make_subscription(plans["PRO"])
        usage = UsageSnapshot(doctor_count=6, total_staff_count=20)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            ChangePlan("GROWTH", ChangeDirection.DOWNGRADE),
            now=NOW,
        )

        assert decision.reasons == [
            DenialReason.DOWNGRADE_EXCEEDS_DOCTOR_LIMIT,
            DenialReason.DOWNGRADE_EXCEEDS_STAFF_LIMIT,
        ]
        body = decision.as_dict()
        assert len(body["violations"]) == 2
        assert body["violations"][1]["current_count"] == 20
        assert body["violations"][1]["limit"] == 15

    def test_downgrade_that_fits_is_allowed(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"])
        usage = UsageSnapshot(doctor_count=1, total_staff_count=2)

        decision = engine.decide(
            subscription,
            subscription.plan,
            usage,
            ChangePlan("STARTER", ChangeDirection.DOWNGRADE),
            now=NOW,
        )

        assert decision.allowed


class TestCancellation:
    def test_cancel_already_canceled(self, engine, plans):
        subscription = make_subscription(plans["GROWTH"], status=SubscriptionStatus.CANCELED)

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            CancelSubscription(),
            now=NOW,
        )

        assert decision.reason == DenialReason.ALREADY_CANCELED
        assert decision.requires_upgrade is False

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE],
    )
    def test_cancel_allowed_from_other_statuses(self, engine, plans, status):
        subscription = make_subscription(plans["GROWTH"], status=status)

        decision = engine.decide(
            subscription,
            subscription.plan,
            None,
            CancelSubscription(),
            now=NOW,
        )

        assert decision.allowed


class TestDecisionBody:
    def test_allowed_body(self):
        assert Decision.allow().as_dict() == {"allowed": True}

    def test_denial_body_flattens_primary(self):
        decision = Decision.deny(
            Denial(
                reason=DenialReason.DOCTOR_LIMIT_REACHED,
                detail="Full.",
                current_plan="GROWTH",
                current_count=5,
                limit=5,
            ),
        )

        body = decision.as_dict()

        assert body["allowed"] is False
        assert body["reason_code"] == "DoctorLimitReached"
        assert body["requires_upgrade"] is True
        assert body["current_count"] == 5
        assert body["limit"] == 5
        assert "feature" not in body
        assert body["violations"] == [
            {
                "reason_code": "DoctorLimitReached",
                "detail": "Full.",
                "current_plan": "GROWTH",
                "current_count": 5,
                "limit": 5,
            },
        ]


class TestTrialDaysRemaining:
    def test_rounds_partial_days_up(self):
        subscription = Subscription(
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW + timedelta(days=2, hours=1),
        )

        assert trial_days_remaining(subscription, NOW) == 3

    def test_floors_at_zero(self):
        subscription = Subscription(
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=NOW - timedelta(days=4),
        )

        assert trial_days_remaining(subscription, NOW) == 0

    def test_none_when_not_trialing(self):
        subscription = Subscription(status=SubscriptionStatus.ACTIVE)

        assert trial_days_remaining(subscription, NOW) is None
