"""
Plan change service for upgrades, downgrades, cancellations and overrides.

Key design decisions:
- Upgrades apply immediately, set the subscription active and end any trial
- Downgrades only swap the plan, and are refused while current staff would
  not fit the target plan's limits
- Cancellation keeps access for a grace period by setting ends_at
- Admin overrides bypass upgrade/downgrade rules entirely
- Every change locks the subscription row, re-runs the entitlement decision
  inside the transaction and is audited via the PlanChange model

Payment capture is not implemented. Upgrades log a mock payment instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.catalog import PlanComparison
from clinicdesk.billing.constants import BillingCycle
from clinicdesk.billing.constants import PlanChangeType
from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.entitlements import CancelSubscription
from clinicdesk.billing.entitlements import ChangeDirection
from clinicdesk.billing.entitlements import ChangePlan
from clinicdesk.billing.entitlements import EntitlementDenied
from clinicdesk.billing.entitlements import EntitlementEngine
from clinicdesk.billing.metering import measure_usage
from clinicdesk.billing.models import PlanChange
from clinicdesk.billing.models import Subscription

if TYPE_CHECKING:
    from datetime import datetime

    from clinicdesk.billing.models import Plan
    from clinicdesk.users.models import Clinic
    from clinicdesk.users.models import User

logger = logging.getLogger(__name__)


@dataclass
class PlanChangeResult:
    """Result of a plan change operation."""

    subscription: Subscription
    change_type: PlanChangeType
    old_plan: Plan
    new_plan: Plan
    message: str = ""
    amount_charged: int | None = None


class PlanChangeService:
    """
    Service for changing a clinic's plan.

    Usage:
        service = PlanChangeService()
        result = service.change_plan(
            clinic,
            "GROWTH",
            ChangeDirection.UPGRADE,
            billing_cycle=BillingCycle.MONTHLY,
            actor=request.user,
        )
    """

    def __init__(self, catalog: PlanCatalog | None = None):
        self.catalog = catalog or PlanCatalog()
        self.engine = EntitlementEngine(self.catalog)

    def get_change_type(self, old_plan: Plan, new_plan: Plan) -> PlanChangeType:
        """
        Determine if this is an upgrade, downgrade, or lateral move.

        Based on monthly price - higher price = upgrade.
        """
        comparison = self.catalog.compare_plans(old_plan, new_plan)
        if comparison == PlanComparison.HIGHER:
            return PlanChangeType.UPGRADE
        if comparison == PlanComparison.LOWER:
            return PlanChangeType.DOWNGRADE
        return PlanChangeType.LATERAL

    @transaction.atomic
    def change_plan(
        self,
        clinic: Clinic,
        target_plan_name: str,
        direction: ChangeDirection,
        *,
        billing_cycle: str = BillingCycle.MONTHLY,
        actor: User | None = None,
        now: datetime | None = None,
    ) -> PlanChangeResult:
        """
        Upgrade or downgrade ``clinic`` to ``target_plan_name``.

        Raises:
            EntitlementDenied: If the change is not allowed.
        """
        now = now or timezone.now()
        subscription = self._lock_subscription(clinic)
        plan = subscription.plan if subscription else None
        usage = (
            measure_usage(clinic)
            if direction == ChangeDirection.DOWNGRADE and subscription
            else None
        )
        decision = self.engine.decide(
            subscription,
            plan,
            usage,
            ChangePlan(target_plan_name=target_plan_name, direction=direction),
            now=now,
        )
        if not decision.allowed:
            logger.info(
                "Plan change to %s refused for clinic=%s: %s",
                target_plan_name,
                clinic.pk,
                ", ".join(decision.reasons),
            )
            raise EntitlementDenied(decision)

        old_plan = plan
        new_plan = self.catalog.get_plan(target_plan_name)
        subscription.plan = new_plan
        update_fields = ["plan", "modified"]
        amount_charged = None

        if direction == ChangeDirection.UPGRADE:
            amount_charged = self._record_mock_payment(clinic, new_plan, billing_cycle)
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.trial_ends_at = None
            subscription.ends_at = None
            subscription.starts_at = now
            update_fields += ["status", "trial_ends_at", "ends_at", "starts_at"]
            change_type = PlanChangeType.UPGRADE
            message = "Subscription upgraded successfully."
        else:
            change_type = PlanChangeType.DOWNGRADE
            message = "Subscription downgraded successfully."

        subscription.save(update_fields=update_fields)
        self._audit(
            subscription,
            old_plan,
            new_plan,
            change_type,
            actor=actor,
            notes=f"billing_cycle={billing_cycle}" if amount_charged is not None else "",
        )
        logger.info(
            "Plan %s for clinic=%s: %s -> %s",
            change_type,
            clinic.pk,
            old_plan.name,
            new_plan.name,
        )
        return PlanChangeResult(
            subscription=subscription,
            change_type=change_type,
            old_plan=old_plan,
            new_plan=new_plan,
            message=message,
            amount_charged=amount_charged,
        )

    @transaction.atomic
    def cancel_subscription(
        self,
        clinic: Clinic,
        *,
        actor: User | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Cancel the clinic's subscription, keeping access for the grace period.

        Raises:
            EntitlementDenied: If there is no subscription or it is already
                canceled.
        """
        now = now or timezone.now()
        subscription = self._lock_subscription(clinic)
        decision = self.engine.decide(
            subscription,
            subscription.plan if subscription else None,
            None,
            CancelSubscription(),
            now=now,
        )
        if not decision.allowed:
            raise EntitlementDenied(decision)

        subscription.status = SubscriptionStatus.CANCELED
        subscription.ends_at = now + timedelta(
            days=settings.BILLING_CANCELLATION_GRACE_DAYS,
        )
        subscription.save(update_fields=["status", "ends_at", "modified"])
        self._audit(
            subscription,
            subscription.plan,
            subscription.plan,
            PlanChangeType.CANCEL,
            actor=actor,
        )
        logger.info(
            "Canceled subscription for clinic=%s, access ends %s",
            clinic.pk,
            subscription.ends_at,
        )
        return subscription

    @transaction.atomic
    def assign_plan(
        self,
        clinic: Clinic,
        plan: Plan,
        *,
        actor: User | None = None,
        status: str = SubscriptionStatus.ACTIVE,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Administrative override: set plan and status directly.

        Upserts the subscription and skips every upgrade/downgrade rule.
        """
        now = now or timezone.now()
        subscription = self._lock_subscription(clinic)
        trial_ends_at = (
            now + timedelta(days=settings.BILLING_TRIAL_DAYS)
            if status == SubscriptionStatus.TRIALING
            else None
        )

        if subscription is None:
            subscription = Subscription.objects.create(
                clinic=clinic,
                plan=plan,
                status=status,
                trial_ends_at=trial_ends_at,
                starts_at=now,
            )
            old_plan = plan
        else:
            old_plan = subscription.plan
            subscription.plan = plan
            subscription.status = status
            subscription.trial_ends_at = trial_ends_at
            subscription.ends_at = None
            subscription.save(
                update_fields=["plan", "status", "trial_ends_at", "ends_at", "modified"],
            )

        self._audit(
            subscription,
            old_plan,
            plan,
            PlanChangeType.OVERRIDE,
            actor=actor,
            notes=f"status={status} move={self.get_change_type(old_plan, plan)}",
        )
        logger.info(
            "Admin override for clinic=%s by user=%s: %s -> %s (%s)",
            clinic.pk,
            actor.pk if actor else None,
            old_plan.name,
            plan.name,
            status,
        )
        return subscription

    def _lock_subscription(self, clinic: Clinic) -> Subscription | None:
        return (
            Subscription.objects.select_for_update()
            .filter(clinic=clinic)
            .first()
        )

    def _record_mock_payment(
        self,
        clinic: Clinic,
        plan: Plan,
        billing_cycle: str,
    ) -> int:
        amount = (
            plan.price_yearly
            if billing_cycle == BillingCycle.YEARLY
            else plan.price_monthly
        )
        logger.info(
            "Mock payment of %d cents (%s) for clinic=%s on plan %s",
            amount,
            billing_cycle,
            clinic.pk,
            plan.name,
        )
        return amount

    def _audit(
        self,
        subscription: Subscription,
        old_plan: Plan,
        new_plan: Plan,
        change_type: PlanChangeType,
        *,
        actor: User | None = None,
        notes: str = "",
    ) -> PlanChange:
        return PlanChange.objects.create(
            subscription=subscription,
            old_plan=old_plan,
            new_plan=new_plan,
            change_type=change_type,
            changed_by=actor if actor is not None and actor.is_authenticated else None,
            notes=notes,
        )
