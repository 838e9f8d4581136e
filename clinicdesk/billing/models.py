"""
Billing models for the ClinicDesk subscription system.

Key design decisions:
- Plan is a lookup table (Starter, Growth, Pro) holding limits and features
- Subscription is 1:1 with Clinic and has FK to Plan
- Usage is never stored; it is counted from staff role links on demand
- PlanChange is an append-only audit log

Relationship: Clinic ──1:1── Subscription ──N:1── Plan
"""

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from clinicdesk.billing.constants import PlanChangeType
from clinicdesk.billing.constants import SubscriptionStatus


class Plan(models.Model):
    """
    Tier definition: prices, capacity limits and feature tokens.

    Ordering by monthly price defines which moves are upgrades and which are
    downgrades.

    Usage:
        clinic.subscription.plan.max_doctors
    """

    name = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique plan identifier, e.g. STARTER.",
    )
    description = models.TextField(
        blank=True,
        help_text="Marketing description shown on the pricing page.",
    )

    # Pricing in minor currency units (cents)
    price_monthly = models.PositiveIntegerField(
        default=0,
        help_text="Monthly price in cents.",
    )
    price_yearly = models.PositiveIntegerField(
        default=0,
        help_text="Yearly price in cents.",
    )

    # Limits (null = unlimited)
    max_doctors = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Maximum doctors. Null = unlimited.",
    )
    max_staff = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Maximum non-administrative staff links. Null = unlimited.",
    )

    multi_clinic = models.BooleanField(
        default=False,
        help_text="Whether one account may run several clinics.",
    )
    features = models.JSONField(
        default=list,
        blank=True,
        help_text="Capability tokens enabled by this plan, e.g. ['reports'].",
    )

    class Meta:
        ordering = ["price_monthly"]

    def __str__(self) -> str:
        return self.name

    def has_feature(self, feature: str) -> bool:
        return feature in (self.features or [])

    @property
    def price_monthly_dollars(self) -> int:
        """Monthly price in whole dollars for display."""
        return self.price_monthly // 100


class Subscription(TimeStampedModel):
    """
    Billing subscription for a clinic.

    Exactly one row per clinic. Created on signup as a trial on the default
    plan and never hard-deleted by billing code.
    """

    clinic = models.OneToOneField(
        "users.Clinic",
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.TRIALING,
    )
    trial_ends_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the trial window. Only set while trialing.",
    )
    starts_at = models.DateTimeField(
        null=True,
        blank=True,
    )
    ends_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When access ends after cancellation.",
    )

    class Meta:
        indexes = [models.Index(fields=["status", "trial_ends_at"])]

    def __str__(self) -> str:
        return f"{self.clinic.name} - {self.plan.name} ({self.status})"

    def trial_has_lapsed(self, now) -> bool:
        """True for a trialing subscription whose window closed before ``now``."""
        return bool(
            self.status == SubscriptionStatus.TRIALING
            and self.trial_ends_at is not None
            and self.trial_ends_at < now,
        )


class PlanChange(TimeStampedModel):
    """
    Audit log for plan changes.

    Records every upgrade, downgrade, cancellation and admin override for
    support history and billing reconciliation.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="plan_changes",
    )
    old_plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="changes_from",
    )
    new_plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="changes_to",
    )
    change_type = models.CharField(
        max_length=20,
        choices=PlanChangeType.choices,
    )
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="plan_changes",
    )
    notes = models.TextField(
        blank=True,
        help_text="Additional context for the change.",
    )

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return (
            f"{self.subscription.clinic.name}: "
            f"{self.old_plan.name} → {self.new_plan.name} ({self.change_type})"
        )
