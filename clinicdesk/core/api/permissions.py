"""
Permission classes for clinic-scoped API views.

Both classes resolve the caller's active clinic through
``ensure_active_clinic_scope`` and decide from the resulting ``RoleSet``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from clinicdesk.users.scoping import ensure_active_clinic_scope

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class ClinicMemberPermission(permissions.BasePermission):
    """Caller must be an active member of a clinic."""

    message = "You must belong to a clinic to use this endpoint."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user.is_authenticated:
            return False
        clinic, membership, _ = ensure_active_clinic_scope(request)
        return clinic is not None and membership is not None


class ClinicAdminPermission(ClinicMemberPermission):
    """Caller must hold ADMIN in their active clinic, or be a super admin."""

    message = "You must be a clinic administrator to perform this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not super().has_permission(request, view):
            return False
        _, _, role_set = ensure_active_clinic_scope(request)
        return role_set.has_admin_privilege()


class SuperAdminPermission(permissions.BasePermission):
    """Platform operators only."""

    message = "Super admin access required."

    def has_permission(self, request: Request, view: APIView) -> bool:
        if not request.user.is_authenticated:
            return False
        _, _, role_set = ensure_active_clinic_scope(request)
        return role_set.is_super_admin()
