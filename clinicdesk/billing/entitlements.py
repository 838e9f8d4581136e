"""
Entitlement engine.

Pure decision logic: given a clinic's subscription, its plan, an optional
usage snapshot and an action, decide whether the action is allowed. The
engine never touches the database and never raises for a business-rule
failure; it returns a ``Decision`` carrying one or more ``Denial`` values.

Persisting the trial-expiry transition is the caller's job (see
``services.reconcile_expiry``). The engine only needs to be told whether the
caller just performed that transition.

Usage:
    engine = EntitlementEngine(PlanCatalog())
    decision = engine.decide(
        subscription,
        subscription.plan,
        usage,
        AddStaff(StaffCategory.DOCTOR),
        now=timezone.now(),
    )
    if not decision.allowed:
        raise EntitlementDenied(decision)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import field
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING

from clinicdesk.billing.catalog import PlanComparison
from clinicdesk.billing.catalog import PlanNotFoundError
from clinicdesk.billing.constants import INACTIVE_STATUSES
from clinicdesk.billing.constants import NON_UPGRADE_REASONS
from clinicdesk.billing.constants import DenialReason
from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.users.constants import StaffCategory

if TYPE_CHECKING:
    from datetime import datetime

    from clinicdesk.billing.catalog import PlanCatalog
    from clinicdesk.billing.metering import UsageSnapshot
    from clinicdesk.billing.models import Plan
    from clinicdesk.billing.models import Subscription


# =============================================================================
# Actions
# =============================================================================


class ChangeDirection(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


@dataclass(frozen=True)
class AccessResource:
    """Read or write any gated clinic resource."""


@dataclass(frozen=True)
class UseFeature:
    feature: str


@dataclass(frozen=True)
class AddStaff:
    category: StaffCategory


@dataclass(frozen=True)
class ChangePlan:
    target_plan_name: str
    direction: ChangeDirection


@dataclass(frozen=True)
class CancelSubscription:
    """Cancel the clinic's subscription."""


Action = AccessResource | UseFeature | AddStaff | ChangePlan | CancelSubscription

# Actions that need a usage snapshot to be decided.
USAGE_ACTIONS = (AddStaff, ChangePlan)


# =============================================================================
# Results
# =============================================================================


class EntitlementError(Exception):
    """Raised for conditions the engine cannot decide, e.g. a missing plan."""


class EntitlementDenied(Exception):  # noqa: N818
    """
    Raised by callers of the engine to short-circuit a denied request.

    The API exception handler turns it into a 403 carrying the decision.
    """

    def __init__(self, decision: Decision):
        self.decision = decision
        primary = decision.primary
        self.detail = primary.detail if primary else "Not entitled."
        self.code = str(decision.reason) if primary else "entitlement_denied"
        super().__init__(self.detail)


@dataclass(frozen=True)
class Denial:
    """One reason an action was refused."""

    reason: DenialReason
    detail: str
    current_status: str | None = None
    feature: str | None = None
    current_plan: str | None = None
    current_count: int | None = None
    limit: int | None = None

    @property
    def requires_upgrade(self) -> bool:
        return self.reason not in NON_UPGRADE_REASONS

    def as_dict(self) -> dict:
        data = {"reason_code": str(self.reason), "detail": self.detail}
        for name in ("current_status", "feature", "current_plan", "current_count", "limit"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class Decision:
    denials: tuple[Denial, ...] = field(default_factory=tuple)

    @classmethod
    def allow(cls) -> Decision:
        return cls()

    @classmethod
    def deny(cls, *denials: Denial) -> Decision:
        return cls(denials=tuple(denials))

    @property
    def allowed(self) -> bool:
        return not self.denials

    @property
    def primary(self) -> Denial | None:
        return self.denials[0] if self.denials else None

    @property
    def reason(self) -> DenialReason | None:
        return self.primary.reason if self.primary else None

    @property
    def reasons(self) -> list[DenialReason]:
        return [denial.reason for denial in self.denials]

    @property
    def requires_upgrade(self) -> bool:
        return any(denial.requires_upgrade for denial in self.denials)

    def as_dict(self) -> dict:
        """
        Response body for a denied request.

        The first denial's fields are flattened to the top level and every
        denial is listed under ``violations``.
        """
        if self.allowed:
            return {"allowed": True}
        primary = self.primary.as_dict()
        return {
            "allowed": False,
            **primary,
            "requires_upgrade": self.requires_upgrade,
            "violations": [denial.as_dict() for denial in self.denials],
        }


# =============================================================================
# Engine
# =============================================================================


class EntitlementEngine:
    """
    Decide whether a clinic's plan permits an action.

    The plan catalog is injected so plan-change decisions can resolve target
    plans without the engine knowing where plans live.
    """

    def __init__(self, catalog: PlanCatalog):
        self.catalog = catalog

    def decide(
        self,
        subscription: Subscription | None,
        plan: Plan | None,
        usage: UsageSnapshot | None,
        action: Action,
        *,
        now: datetime,
        expired_now: bool = False,
    ) -> Decision:
        """
        Evaluate ``action`` for a clinic.

        Args:
            subscription: The clinic's subscription, or None if it has none.
            plan: The subscription's plan.
            usage: Staff counts. Required for AddStaff and downgrades.
            action: What the caller wants to do.
            now: Evaluation time.
            expired_now: True when the caller has just persisted the
                trialing to past_due transition for this subscription.

        Raises:
            EntitlementError: If the subscription has no plan, or usage is
                needed but missing.
        """
        if subscription is None:
            return Decision.deny(
                Denial(
                    reason=DenialReason.NO_SUBSCRIPTION,
                    detail="No active subscription found.",
                ),
            )
        if plan is None:
            msg = f"Subscription {subscription.pk} has no plan."
            raise EntitlementError(msg)

        if isinstance(action, CancelSubscription):
            return self._check_cancel(subscription)
        if isinstance(action, ChangePlan):
            return self._check_plan_change(plan, usage, action)

        access = self._check_access(subscription, now=now, expired_now=expired_now)
        if not access.allowed or isinstance(action, AccessResource):
            return access

        if isinstance(action, UseFeature):
            return self._check_feature(plan, action.feature)
        if isinstance(action, AddStaff):
            return self._check_capacity(plan, usage, action.category)

        msg = f"Unsupported action: {action!r}"
        raise EntitlementError(msg)

    # -------------------------------------------------------------------------
    # Gates
    # -------------------------------------------------------------------------

    def _check_access(
        self,
        subscription: Subscription,
        *,
        now: datetime,
        expired_now: bool,
    ) -> Decision:
        if expired_now or subscription.trial_has_lapsed(now):
            return Decision.deny(
                Denial(
                    reason=DenialReason.TRIAL_EXPIRED,
                    detail="Your trial has expired. Please upgrade to continue.",
                    current_status=SubscriptionStatus.PAST_DUE.value,
                ),
            )
        if subscription.status in INACTIVE_STATUSES:
            return Decision.deny(
                Denial(
                    reason=DenialReason.SUBSCRIPTION_INACTIVE,
                    detail=(
                        "Your subscription is not active. "
                        "Please update your billing information."
                    ),
                    current_status=str(subscription.status),
                ),
            )
        return Decision.allow()

    def _check_feature(self, plan: Plan, feature: str) -> Decision:
        if plan.has_feature(feature):
            return Decision.allow()
        return Decision.deny(
            Denial(
                reason=DenialReason.FEATURE_NOT_IN_PLAN,
                detail="This feature requires a higher plan.",
                feature=feature,
                current_plan=plan.name,
            ),
        )

    def _check_capacity(
        self,
        plan: Plan,
        usage: UsageSnapshot | None,
        category: StaffCategory,
    ) -> Decision:
        usage = self._require_usage(usage)
        if category == StaffCategory.DOCTOR:
            limit, count = plan.max_doctors, usage.doctor_count
            if limit is not None and count >= limit:
                return Decision.deny(
                    Denial(
                        reason=DenialReason.DOCTOR_LIMIT_REACHED,
                        detail=(
                            f"Your {plan.name} plan allows up to {limit} doctor(s). "
                            "Please upgrade to add more."
                        ),
                        current_plan=plan.name,
                        current_count=count,
                        limit=limit,
                    ),
                )
            return Decision.allow()

        limit, count = plan.max_staff, usage.total_staff_count
        if limit is not None and count >= limit:
            return Decision.deny(
                Denial(
                    reason=DenialReason.STAFF_LIMIT_REACHED,
                    detail=(
                        f"Your {plan.name} plan allows up to {limit} staff member(s). "
                        "Please upgrade to add more."
                    ),
                    current_plan=plan.name,
                    current_count=count,
                    limit=limit,
                ),
            )
        return Decision.allow()

    def _check_plan_change(
        self,
        plan: Plan,
        usage: UsageSnapshot | None,
        action: ChangePlan,
    ) -> Decision:
        try:
            target = self.catalog.get_plan(action.target_plan_name)
        except PlanNotFoundError:
            return Decision.deny(
                Denial(
                    reason=DenialReason.UNKNOWN_PLAN,
                    detail=f"Plan not found: {action.target_plan_name}.",
                    current_plan=plan.name,
                ),
            )

        comparison = self.catalog.compare_plans(plan, target)
        if action.direction == ChangeDirection.UPGRADE:
            if comparison != PlanComparison.HIGHER:
                return Decision.deny(
                    Denial(
                        reason=DenialReason.NOT_AN_UPGRADE,
                        detail="Use the downgrade endpoint to switch to a lower plan.",
                        current_plan=plan.name,
                    ),
                )
            return Decision.allow()

        if comparison != PlanComparison.LOWER:
            return Decision.deny(
                Denial(
                    reason=DenialReason.NOT_A_DOWNGRADE,
                    detail="Use the upgrade endpoint to switch to a higher plan.",
                    current_plan=plan.name,
                ),
            )

        usage = self._require_usage(usage)
        denials = []
        if target.max_doctors is not None and usage.doctor_count > target.max_doctors:
            denials.append(
                Denial(
                    reason=DenialReason.DOWNGRADE_EXCEEDS_DOCTOR_LIMIT,
                    detail=(
                        f"Cannot downgrade: you have {usage.doctor_count} doctor(s) "
                        f"but the {target.name} plan allows only {target.max_doctors}."
                    ),
                    current_plan=plan.name,
                    current_count=usage.doctor_count,
                    limit=target.max_doctors,
                ),
            )
        if target.max_staff is not None and usage.total_staff_count > target.max_staff:
            denials.append(
                Denial(
                    reason=DenialReason.DOWNGRADE_EXCEEDS_STAFF_LIMIT,
                    detail=(
                        f"Cannot downgrade: you have {usage.total_staff_count} staff "
                        f"member(s) but the {target.name} plan allows only "
                        f"{target.max_staff}."
                    ),
                    current_plan=plan.name,
                    current_count=usage.total_staff_count,
                    limit=target.max_staff,
                ),
            )
        return Decision.deny(*denials) if denials else Decision.allow()

    def _check_cancel(self, subscription: Subscription) -> Decision:
        if subscription.status == SubscriptionStatus.CANCELED:
            return Decision.deny(
                Denial(
                    reason=DenialReason.ALREADY_CANCELED,
                    detail="Subscription is already canceled.",
                    current_status=str(subscription.status),
                ),
            )
        return Decision.allow()

    @staticmethod
    def _require_usage(usage: UsageSnapshot | None) -> UsageSnapshot:
        if usage is None:
            msg = "A usage snapshot is required for this action."
            raise EntitlementError(msg)
        return usage


def trial_days_remaining(subscription: Subscription, now: datetime) -> int | None:
    """
    Whole days left in the trial, rounded up and floored at zero.

    Returns None when the subscription is not trialing.
    """
    if subscription.status != SubscriptionStatus.TRIALING or not subscription.trial_ends_at:
        return None
    remaining = (subscription.trial_ends_at - now) / timedelta(days=1)
    return max(0, math.ceil(remaining))
