"""
Enforcement gate.

Loads a clinic's subscription and plan, counts usage when the action needs
it, reconciles trial expiry and asks the entitlement engine for a decision.
Denials raise ``EntitlementDenied``; persistence failures raise
``GateUnavailableError`` unless ``BILLING_GATE_FAIL_OPEN`` is set.

Usage in a DRF view:
    class PatientListView(EntitlementGateMixin, generics.ListCreateAPIView):
        entitlement_action = AccessResource()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.entitlements import USAGE_ACTIONS
from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.entitlements import Decision
from clinicdesk.billing.entitlements import EntitlementDenied
from clinicdesk.billing.entitlements import EntitlementEngine
from clinicdesk.billing.entitlements import EntitlementError
from clinicdesk.billing.metering import measure_usage
from clinicdesk.billing.models import Subscription
from clinicdesk.billing.services import reconcile_expiry
from clinicdesk.users.scoping import ensure_active_clinic_scope

if TYPE_CHECKING:
    from datetime import datetime

    from clinicdesk.billing.entitlements import Action
    from clinicdesk.billing.metering import UsageSnapshot
    from clinicdesk.users.models import Clinic
    from clinicdesk.users.models import ClinicMembership

logger = logging.getLogger(__name__)


class GateUnavailableError(Exception):
    """The gate could not reach a decision because of an infrastructure error."""

    code = "entitlement_check_failed"

    def __init__(self, detail: str = "Unable to verify subscription entitlements."):
        self.detail = detail
        super().__init__(detail)


@dataclass
class GateResult:
    decision: Decision
    subscription: Subscription | None = None
    usage: UsageSnapshot | None = None
    failed_open: bool = False


class EnforcementGate:
    """
    Evaluate an action for a clinic against its current subscription.
    """

    def __init__(self, catalog: PlanCatalog | None = None, *, fail_open: bool | None = None):
        self.engine = EntitlementEngine(catalog or PlanCatalog())
        self.fail_open = (
            settings.BILLING_GATE_FAIL_OPEN if fail_open is None else fail_open
        )

    def evaluate(
        self,
        clinic: Clinic | None,
        action: Action,
        *,
        now: datetime | None = None,
        exclude_membership: ClinicMembership | None = None,
    ) -> GateResult:
        """
        Return the decision for ``action`` without raising on denial.

        ``exclude_membership`` drops that member's role links from the usage
        count, for checking a change to their roles.

        Raises:
            GateUnavailableError: On database or engine failure when the
                gate is not configured to fail open.
        """
        now = now or timezone.now()
        try:
            return self._evaluate(
                clinic,
                action,
                now=now,
                exclude_membership=exclude_membership,
            )
        except (DatabaseError, EntitlementError) as exc:
            if self.fail_open:
                logger.exception(
                    "Entitlement check failed for clinic=%s action=%r; failing open",
                    getattr(clinic, "pk", None),
                    action,
                )
                return GateResult(decision=Decision.allow(), failed_open=True)
            logger.exception(
                "Entitlement check failed for clinic=%s action=%r",
                getattr(clinic, "pk", None),
                action,
            )
            raise GateUnavailableError from exc

    def check(
        self,
        clinic: Clinic | None,
        action: Action,
        *,
        now: datetime | None = None,
        exclude_membership: ClinicMembership | None = None,
    ) -> Subscription | None:
        """
        Like ``evaluate`` but raise ``EntitlementDenied`` on denial.

        Returns the clinic's subscription when the action is allowed.
        """
        result = self.evaluate(
            clinic,
            action,
            now=now,
            exclude_membership=exclude_membership,
        )
        if not result.decision.allowed:
            logger.info(
                "Entitlement denied for clinic=%s action=%r: %s",
                getattr(clinic, "pk", None),
                action,
                ", ".join(result.decision.reasons),
            )
            raise EntitlementDenied(result.decision)
        return result.subscription

    def _evaluate(
        self,
        clinic: Clinic | None,
        action: Action,
        *,
        now: datetime,
        exclude_membership: ClinicMembership | None = None,
    ) -> GateResult:
        subscription = None
        if clinic is not None:
            subscription = (
                Subscription.objects.select_related("plan").filter(clinic=clinic).first()
            )

        expired_now = False
        if subscription is not None:
            reconciliation = reconcile_expiry(subscription, now)
            subscription = reconciliation.subscription
            expired_now = reconciliation.expired_now

        usage = None
        if subscription is not None and isinstance(action, USAGE_ACTIONS):
            usage = measure_usage(clinic, exclude_membership=exclude_membership)

        decision = self.engine.decide(
            subscription,
            subscription.plan if subscription else None,
            usage,
            action,
            now=now,
            expired_now=expired_now,
        )
        return GateResult(decision=decision, subscription=subscription, usage=usage)


class EntitlementGateMixin:
    """
    DRF view mixin that runs the gate after authentication and permissions.

    Set ``entitlement_action`` on the view, or override
    ``get_entitlement_action`` to vary it per method. Returning None skips
    the gate. On success ``request.subscription`` holds the subscription.

    An ``AccessResource`` check already passed by
    ``SubscriptionAccessMiddleware`` for this request is not repeated.
    """

    entitlement_action: Action | None = AccessResource()
    gate_class = EnforcementGate

    def get_entitlement_action(self, request) -> Action | None:
        return self.entitlement_action

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        action = self.get_entitlement_action(request)
        if action is None:
            return
        if isinstance(action, AccessResource):
            checked = getattr(request._request, "subscription", None)  # noqa: SLF001
            if checked is not None:
                request.subscription = checked
                return
        clinic, _, _ = ensure_active_clinic_scope(request)
        request.subscription = self.gate_class().check(clinic, action)
