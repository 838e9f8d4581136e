"""
Billing middleware for subscription enforcement.

This middleware runs the access gate on each request from a signed-in user
and blocks clinics whose trial has lapsed or whose subscription is inactive.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from django.conf import settings
from django.http import JsonResponse

from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.entitlements import EntitlementDenied
from clinicdesk.billing.gate import EnforcementGate
from clinicdesk.billing.gate import GateUnavailableError
from clinicdesk.users.scoping import ensure_active_clinic_scope

if TYPE_CHECKING:
    from django.http import HttpRequest
    from django.http import HttpResponse

logger = logging.getLogger(__name__)


class SubscriptionAccessMiddleware:
    """
    Block signed-in users of lapsed or inactive clinics from gated paths.

    Denials return a 403 JSON body describing the reason; infrastructure
    failures return a 500 with code ``entitlement_check_failed``.

    Billing, auth, admin and schema paths are exempt so a blocked clinic can
    still see its status and upgrade, and so platform staff without a clinic
    can reach the super admin API. Requests authenticated by API token are
    resolved later by DRF and gated by ``EntitlementGateMixin`` instead.

    This middleware should be added after AuthenticationMiddleware.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.exempt_path_prefixes = tuple(settings.BILLING_GATE_EXEMPT_PATH_PREFIXES)

    def __call__(self, request: HttpRequest) -> HttpResponse:
        # Skip for unauthenticated users
        if not request.user.is_authenticated:
            return self.get_response(request)

        if self._is_exempt_path(request.path):
            return self.get_response(request)

        # A user with no active clinic is denied as NoSubscription, the same
        # answer EntitlementGateMixin gives on the token path.
        clinic, _, _ = ensure_active_clinic_scope(request)
        try:
            request.subscription = EnforcementGate().check(clinic, AccessResource())
        except EntitlementDenied as exc:
            return JsonResponse(exc.decision.as_dict(), status=HTTPStatus.FORBIDDEN)
        except GateUnavailableError as exc:
            return JsonResponse(
                {"detail": exc.detail, "code": exc.code},
                status=HTTPStatus.INTERNAL_SERVER_ERROR,
            )

        return self.get_response(request)

    def _is_exempt_path(self, path: str) -> bool:
        return path.startswith(self.exempt_path_prefixes)
