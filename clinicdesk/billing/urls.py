"""
URL configuration for the billing API.

Routes (mounted under /api/billing/):
- plans/                - Plan catalog (public)
- subscription/         - Current clinic subscription and usage
- subscription/history/ - Plan change audit trail
- upgrade/              - Upgrade plan (POST)
- downgrade/            - Downgrade plan (POST)
- cancel/               - Cancel subscription (POST)

Super admin routes (mounted under /api/superadmin/):
- plans/                               - Plan catalog
- clinics/<clinic_id>/subscription/    - Plan override (PATCH)
"""

from django.urls import path

from clinicdesk.billing.views import CancelSubscriptionView
from clinicdesk.billing.views import ClinicSubscriptionOverrideView
from clinicdesk.billing.views import DowngradeView
from clinicdesk.billing.views import PlanChangeHistoryView
from clinicdesk.billing.views import PlanListView
from clinicdesk.billing.views import SubscriptionDetailView
from clinicdesk.billing.views import SuperAdminPlanListView
from clinicdesk.billing.views import UpgradeView

app_name = "billing"

urlpatterns = [
    path("plans/", PlanListView.as_view(), name="plans"),
    path("subscription/", SubscriptionDetailView.as_view(), name="subscription"),
    path(
        "subscription/history/",
        PlanChangeHistoryView.as_view(),
        name="plan-changes",
    ),
    path("upgrade/", UpgradeView.as_view(), name="upgrade"),
    path("downgrade/", DowngradeView.as_view(), name="downgrade"),
    path("cancel/", CancelSubscriptionView.as_view(), name="cancel"),
]

superadmin_urlpatterns = [
    path("plans/", SuperAdminPlanListView.as_view(), name="plans"),
    path(
        "clinics/<int:clinic_id>/subscription/",
        ClinicSubscriptionOverrideView.as_view(),
        name="clinic-subscription",
    ),
]
