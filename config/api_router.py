"""
API router.

Every JSON endpoint lives under /api/. Billing, super admin, auth, schema
and health routes are exempt from SubscriptionAccessMiddleware; everything
else is gated by the clinic's subscription.
"""

from django.urls import include
from django.urls import path
from drf_spectacular.views import SpectacularAPIView
from drf_spectacular.views import SpectacularSwaggerView

from clinicdesk.billing.urls import superadmin_urlpatterns
from clinicdesk.core.views import HealthView

app_name = "api"
urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("auth/", include("clinicdesk.users.urls", namespace="auth")),
    path("billing/", include("clinicdesk.billing.urls", namespace="billing")),
    path(
        "superadmin/",
        include((superadmin_urlpatterns, "superadmin"), namespace="superadmin"),
    ),
    path("staff/", include("clinicdesk.staff.urls", namespace="staff")),
    path("patients/", include("clinicdesk.patients.urls", namespace="patients")),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path(
        "schema/docs/",
        SpectacularSwaggerView.as_view(url_name="api:schema"),
        name="docs",
    ),
]
