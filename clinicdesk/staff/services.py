"""
Staff management services.

Adding staff and changing a member's roles are check-then-act: the
request-level gate decision is only advisory. Both services lock the clinic's
subscription row and re-run the capacity decision with a fresh usage count
before writing role links, so concurrent changes for one clinic are
serialised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.entitlements import AddStaff
from clinicdesk.billing.entitlements import EntitlementDenied
from clinicdesk.billing.entitlements import EntitlementEngine
from clinicdesk.billing.metering import measure_usage
from clinicdesk.billing.models import Subscription
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.models import ClinicMembership
from clinicdesk.users.models import User
from clinicdesk.users.roles import RoleSet

if TYPE_CHECKING:
    from clinicdesk.billing.entitlements import Action
    from clinicdesk.users.models import Clinic

logger = logging.getLogger(__name__)


class StaffError(Exception):
    def __init__(self, detail: str, code: str = "staff_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


def staff_action_for_role(role_code: str) -> Action:
    """Entitlement action needed to give someone ``role_code``."""
    category = RoleSet.category_for(role_code)
    return AccessResource() if category is None else AddStaff(category)


def role_change_action(membership: ClinicMembership, role_code: str) -> Action | None:
    """
    Capacity action for making ``role_code`` the member's staff role.

    None when nothing new is consumed: administrative roles, or a role the
    member already holds.
    """
    if RoleSet.category_for(role_code) is None or membership.has_role(role_code):
        return None
    return staff_action_for_role(role_code)


@transaction.atomic
def add_staff_member(
    clinic: Clinic,
    *,
    email: str,
    role: str,
    username: str = "",
    name: str = "",
    password: str | None = None,
    also_make_admin: bool = False,
) -> ClinicMembership:
    """
    Give the user with ``email`` the ``role`` in ``clinic``.

    An existing user is linked (a doctor working at another clinic, or a
    removed member coming back); otherwise a new user is created. A
    re-activated membership starts over with just the new roles.

    Raises:
        StaffError: If the member already holds the role, or the username
            of a new user is taken.
        EntitlementDenied: If the plan has no room for the role.
    """
    subscription = _lock_subscription(clinic)

    user = User.objects.filter(email__iexact=email).order_by("pk").first()
    membership = None
    if user is not None:
        membership = ClinicMembership.objects.filter(user=user, clinic=clinic).first()
        if membership is not None and membership.is_active and membership.has_role(role):
            raise StaffError(
                "Staff member already holds this role in the clinic.",
                code="duplicate_role",
            )
    elif User.objects.filter(username=username or email).exists():
        raise StaffError("That username is already taken.", code="username_taken")

    _ensure_capacity(clinic, subscription, staff_action_for_role(role))

    created = user is None
    if created:
        user = User.objects.create_user(
            username=username or email,
            email=email,
            password=password,
            name=name,
        )

    if membership is None:
        membership = ClinicMembership.objects.create(user=user, clinic=clinic, is_active=True)
        codes = {role}
    elif not membership.is_active:
        membership.is_active = True
        membership.save(update_fields=["is_active", "modified"])
        codes = {role}
    else:
        codes = membership.role_codes | {role}

    if also_make_admin:
        codes.add(RoleCode.ADMIN)
    membership.set_roles(codes)
    if user.current_clinic_id is None:
        user.set_current_clinic(clinic)

    logger.info(
        "Added %s user=%s to clinic=%s as %s",
        "new" if created else "existing",
        user.pk,
        clinic.pk,
        ", ".join(sorted(codes)),
    )
    return membership


@transaction.atomic
def update_staff_member(
    clinic: Clinic,
    user_id: int,
    *,
    acting_user: User,
    role: str | None = None,
    also_make_admin: bool | None = None,
    name: str | None = None,
) -> ClinicMembership:
    """
    Change a member's staff role, admin flag or name.

    A staff role (DOCTOR, RECEPTIONIST, NURSE) replaces the member's current
    staff roles and is checked against the plan with the member's own links
    left out of the count. ADMIN is granted or revoked without a limit.

    Raises:
        ClinicMembership.DoesNotExist: If the user is not an active member.
        StaffError: If the change would demote the caller or leave the
            member without a role.
        EntitlementDenied: If the plan has no room for the new role.
    """
    subscription = _lock_subscription(clinic)
    membership = ClinicMembership.objects.select_related("user").get(
        clinic=clinic,
        user_id=user_id,
        is_active=True,
    )
    codes = membership.role_codes

    if role is not None:
        if RoleSet.category_for(role) is None:
            codes.add(role)
        else:
            action = role_change_action(membership, role)
            if action is not None:
                _ensure_capacity(clinic, subscription, action, exclude_membership=membership)
            codes = {code for code in codes if RoleSet.category_for(code) is None}
            codes.add(role)

    if also_make_admin is True:
        codes.add(RoleCode.ADMIN)
    elif also_make_admin is False:
        if user_id == acting_user.pk:
            raise StaffError("You cannot revoke your own admin role.", code="self_demotion")
        codes.discard(RoleCode.ADMIN)

    if not codes:
        raise StaffError("A staff member must keep at least one role.", code="no_roles")

    membership.set_roles(codes)
    if name is not None:
        membership.user.name = name
        membership.user.save(update_fields=["name"])

    logger.info(
        "Updated user=%s in clinic=%s: roles=%s",
        user_id,
        clinic.pk,
        ", ".join(sorted(codes)),
    )
    return membership


def deactivate_staff_member(clinic: Clinic, user_id: int, *, acting_user: User) -> ClinicMembership:
    """
    Deactivate a member's access to ``clinic``. Their role links stop counting.

    Raises:
        ClinicMembership.DoesNotExist: If the user is not an active member.
        StaffError: If the caller tries to remove themselves.
    """
    if user_id == acting_user.pk:
        raise StaffError("You cannot remove yourself from the clinic.", code="self_removal")

    membership = ClinicMembership.objects.get(clinic=clinic, user_id=user_id, is_active=True)
    membership.is_active = False
    membership.save(update_fields=["is_active", "modified"])
    logger.info("Deactivated user=%s in clinic=%s", user_id, clinic.pk)
    return membership


def _lock_subscription(clinic: Clinic) -> Subscription | None:
    return (
        Subscription.objects.select_for_update(of=("self",))
        .select_related("plan")
        .filter(clinic=clinic)
        .first()
    )


def _ensure_capacity(
    clinic: Clinic,
    subscription: Subscription | None,
    action: Action,
    *,
    exclude_membership: ClinicMembership | None = None,
) -> None:
    decision = EntitlementEngine(PlanCatalog()).decide(
        subscription,
        subscription.plan if subscription else None,
        measure_usage(clinic, exclude_membership=exclude_membership),
        action,
        now=timezone.now(),
    )
    if not decision.allowed:
        logger.info(
            "Staff change refused for clinic=%s action=%r: %s",
            clinic.pk,
            action,
            ", ".join(decision.reasons),
        )
        raise EntitlementDenied(decision)
