"""
Subscription lifecycle services.

This module provides:
- Starting the signup trial for a new clinic
- Lazy trial-expiry reconciliation (the only place that persists the
  trialing to past_due transition)
- The read-only subscription summary used by the billing API
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.entitlements import trial_days_remaining
from clinicdesk.billing.metering import measure_usage
from clinicdesk.billing.models import Subscription

if TYPE_CHECKING:
    from datetime import datetime

    from clinicdesk.users.models import Clinic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpiryReconciliation:
    subscription: Subscription
    # True only for the call that actually performed the transition.
    expired_now: bool


def start_trial_subscription(
    clinic: Clinic,
    *,
    now: datetime | None = None,
    catalog: PlanCatalog | None = None,
) -> Subscription:
    """
    Put ``clinic`` on a trial of the default plan.

    Upserts on clinic so a clinic never ends up with two subscriptions.
    """
    now = now or timezone.now()
    plan = (catalog or PlanCatalog()).default_plan()
    subscription, created = Subscription.objects.update_or_create(
        clinic=clinic,
        defaults={
            "plan": plan,
            "status": SubscriptionStatus.TRIALING,
            "trial_ends_at": now + timedelta(days=settings.BILLING_TRIAL_DAYS),
            "starts_at": now,
            "ends_at": None,
        },
    )
    logger.info(
        "Started %s trial for clinic=%s (created=%s, ends=%s)",
        plan.name,
        clinic.pk,
        created,
        subscription.trial_ends_at,
    )
    return subscription


def reconcile_expiry(
    subscription: Subscription,
    now: datetime | None = None,
) -> ExpiryReconciliation:
    """
    Persist the trialing to past_due transition if the trial has run out.

    The update is conditional on the row still being a lapsed trial, so
    repeated or concurrent calls transition the row at most once. The passed
    instance is updated in place to match.
    """
    now = now or timezone.now()
    if not subscription.trial_has_lapsed(now):
        return ExpiryReconciliation(subscription=subscription, expired_now=False)

    updated = Subscription.objects.filter(
        pk=subscription.pk,
        status=SubscriptionStatus.TRIALING,
        trial_ends_at__lt=now,
    ).update(status=SubscriptionStatus.PAST_DUE, modified=now)

    if not updated:
        # Another request got there first, or the row changed underneath us.
        subscription.refresh_from_db(fields=["status", "trial_ends_at", "plan"])
        return ExpiryReconciliation(subscription=subscription, expired_now=False)

    subscription.status = SubscriptionStatus.PAST_DUE
    logger.info(
        "Trial expired for clinic=%s, subscription=%s now past_due",
        subscription.clinic_id,
        subscription.pk,
    )
    return ExpiryReconciliation(subscription=subscription, expired_now=bool(updated))


def get_subscription_details(clinic: Clinic, now: datetime | None = None) -> dict | None:
    """
    Summary of a clinic's subscription, plan and staff usage.

    Returns None when the clinic has no subscription.
    """
    now = now or timezone.now()
    subscription = (
        Subscription.objects.select_related("plan").filter(clinic=clinic).first()
    )
    if subscription is None:
        return None

    plan = subscription.plan
    usage = measure_usage(clinic)
    return {
        "subscription": {
            "id": subscription.pk,
            "status": subscription.status,
            "plan_name": plan.name,
            "price_monthly": plan.price_monthly,
            "price_yearly": plan.price_yearly,
            "trial_ends_at": subscription.trial_ends_at,
            "trial_days_left": trial_days_remaining(subscription, now),
            "starts_at": subscription.starts_at,
            "ends_at": subscription.ends_at,
        },
        "plan": {
            "name": plan.name,
            "max_doctors": plan.max_doctors,
            "max_staff": plan.max_staff,
            "multi_clinic": plan.multi_clinic,
            "features": list(plan.features or []),
        },
        "usage": {
            "doctors": usage.doctor_count,
            "total_staff": usage.total_staff_count,
            "max_doctors": plan.max_doctors,
            "max_staff": plan.max_staff,
        },
    }
