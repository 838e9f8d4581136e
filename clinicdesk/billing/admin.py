"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: View/edit pricing tiers, limits and features
- Subscription: View/manage clinic subscriptions
- PlanChange: Read-only audit trail
"""

from django.contrib import admin

from clinicdesk.billing.models import Plan
from clinicdesk.billing.models import PlanChange
from clinicdesk.billing.models import Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for pricing plans."""

    list_display = [
        "name",
        "price_monthly_dollars",
        "max_doctors",
        "max_staff",
        "multi_clinic",
    ]
    ordering = ["price_monthly"]
    search_fields = ["name"]

    fieldsets = [
        (None, {"fields": ["name", "description"]}),
        ("Limits", {"fields": ["max_doctors", "max_staff", "multi_clinic"]}),
        ("Features", {"fields": ["features"]}),
        ("Pricing", {"fields": ["price_monthly", "price_yearly"]}),
    ]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for clinic subscriptions."""

    list_display = [
        "clinic",
        "plan",
        "status",
        "trial_ends_at",
        "ends_at",
    ]
    list_filter = ["status", "plan"]
    search_fields = ["clinic__name", "clinic__slug"]
    raw_id_fields = ["clinic"]
    readonly_fields = ["created", "modified"]


@admin.register(PlanChange)
class PlanChangeAdmin(admin.ModelAdmin):
    list_display = ["subscription", "change_type", "old_plan", "new_plan", "changed_by", "created"]
    list_filter = ["change_type"]
    search_fields = ["subscription__clinic__name"]
    readonly_fields = [
        "subscription",
        "old_plan",
        "new_plan",
        "change_type",
        "changed_by",
        "notes",
        "created",
        "modified",
    ]

    def has_add_permission(self, request):
        return False
