from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from clinicdesk.users.roles import RoleSet

if TYPE_CHECKING:
    from django.http import HttpRequest

    from clinicdesk.users.models import Clinic
    from clinicdesk.users.models import ClinicMembership

logger = logging.getLogger(__name__)

SESSION_CLINIC_KEY = "active_clinic_id"


def ensure_active_clinic_scope(
    request: HttpRequest,
) -> tuple[Clinic | None, ClinicMembership | None, RoleSet]:
    """
    Resolve the clinic the request acts on and the caller's roles in it.

    Resolution order is the session's ``active_clinic_id``, then the user's
    ``current_clinic``, then their first active membership. Stale values are
    cleared. The result is cached on the request, so calling this more than
    once per request is cheap.

    Returns:
        tuple[Clinic | None, ClinicMembership | None, RoleSet]
    """
    user = request.user
    if not user.is_authenticated:
        return None, None, RoleSet()

    cached = getattr(request, "_clinic_scope", None)
    if cached is not None and cached[0] == user.pk:
        return cached[1]

    memberships = list(
        user.memberships.filter(is_active=True)
        .select_related("clinic")
        .prefetch_related("roles")
        .order_by("clinic__name"),
    )
    session = getattr(request, "session", None)
    active_membership = None

    session_clinic_id = _coerce_int(session.get(SESSION_CLINIC_KEY)) if session else None
    if session_clinic_id:
        active_membership = _membership_for_clinic(session_clinic_id, memberships)
        if active_membership is None:
            session.pop(SESSION_CLINIC_KEY, None)
            logger.info(
                "Removed stale clinic %s from session for user %s",
                session_clinic_id,
                user.pk,
            )

    if active_membership is None and user.current_clinic_id:
        active_membership = _membership_for_clinic(user.current_clinic_id, memberships)
        if active_membership is None:
            logger.info(
                "Cleared stale current_clinic %s for user %s",
                user.current_clinic_id,
                user.pk,
            )
            user.current_clinic = None
            user.save(update_fields=["current_clinic"])

    if active_membership is None and memberships:
        active_membership = memberships[0]

    clinic = active_membership.clinic if active_membership else None
    if clinic is not None:
        if session is not None and session.get(SESSION_CLINIC_KEY) != clinic.id:
            session[SESSION_CLINIC_KEY] = clinic.id
        if user.current_clinic_id != clinic.id:
            user.set_current_clinic(clinic)

    role_set = RoleSet.for_membership(active_membership, user)
    request.active_clinic = clinic
    request.role_set = role_set
    scope = (clinic, active_membership, role_set)
    request._clinic_scope = (user.pk, scope)  # noqa: SLF001
    return scope


def _coerce_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _membership_for_clinic(
    clinic_id: int,
    memberships: list[ClinicMembership],
) -> ClinicMembership | None:
    for membership in memberships:
        if membership.clinic_id == clinic_id:
            return membership
    return None
