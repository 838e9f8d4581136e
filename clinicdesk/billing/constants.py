"""
Billing constants for the clinic subscription system.

These enums define the plan names, subscription lifecycle states and denial
reason codes used throughout the billing module.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanName(models.TextChoices):
    """
    Names of the seeded plan tiers.

    Three tiers: Starter (solo practice), Growth (small clinic) and Pro
    (multi-clinic groups). Plan names are open-ended in the database; these
    are the ones the seed command creates.
    """

    STARTER = "STARTER", _("Starter")
    GROWTH = "GROWTH", _("Growth")
    PRO = "PRO", _("Pro")


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Typical flow:
        TRIALING → ACTIVE (on upgrade)
        TRIALING → PAST_DUE (trial ran out, detected on next access)
        ACTIVE/TRIALING → CANCELED (user cancels)
    """

    TRIALING = "trialing", _("Trial")
    ACTIVE = "active", _("Active")
    PAST_DUE = "past_due", _("Past Due")
    CANCELED = "canceled", _("Canceled")


class BillingCycle(models.TextChoices):
    MONTHLY = "monthly", _("Monthly")
    YEARLY = "yearly", _("Yearly")


class PlanChangeType(models.TextChoices):
    """Kinds of change recorded in the PlanChange audit log."""

    UPGRADE = "upgrade", _("Upgrade")
    DOWNGRADE = "downgrade", _("Downgrade")
    LATERAL = "lateral", _("Lateral")
    CANCEL = "cancel", _("Cancel")
    OVERRIDE = "override", _("Admin override")


class DenialReason(models.TextChoices):
    """
    Reason codes returned when the entitlement engine denies an action.
    """

    NO_SUBSCRIPTION = "NoSubscription", _("No subscription")
    SUBSCRIPTION_INACTIVE = "SubscriptionInactive", _("Subscription inactive")
    TRIAL_EXPIRED = "TrialExpired", _("Trial expired")
    FEATURE_NOT_IN_PLAN = "FeatureNotInPlan", _("Feature not in plan")
    DOCTOR_LIMIT_REACHED = "DoctorLimitReached", _("Doctor limit reached")
    STAFF_LIMIT_REACHED = "StaffLimitReached", _("Staff limit reached")
    UNKNOWN_PLAN = "UnknownPlan", _("Unknown plan")
    NOT_AN_UPGRADE = "NotAnUpgrade", _("Not an upgrade")
    NOT_A_DOWNGRADE = "NotADowngrade", _("Not a downgrade")
    DOWNGRADE_EXCEEDS_DOCTOR_LIMIT = (
        "DowngradeExceedsDoctorLimit",
        _("Downgrade exceeds doctor limit"),
    )
    DOWNGRADE_EXCEEDS_STAFF_LIMIT = (
        "DowngradeExceedsStaffLimit",
        _("Downgrade exceeds staff limit"),
    )
    ALREADY_CANCELED = "AlreadyCanceled", _("Already canceled")


# Denials that buying a bigger plan would not fix.
NON_UPGRADE_REASONS = frozenset(
    {
        DenialReason.UNKNOWN_PLAN,
        DenialReason.NOT_AN_UPGRADE,
        DenialReason.NOT_A_DOWNGRADE,
        DenialReason.ALREADY_CANCELED,
    },
)

# Statuses that lock the clinic out of gated resources.
INACTIVE_STATUSES = frozenset(
    {SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED},
)

# Defaults, overridable through settings.BILLING_*
TRIAL_DURATION_DAYS = 14
CANCELLATION_GRACE_DAYS = 30
