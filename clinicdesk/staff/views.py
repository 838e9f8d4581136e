"""
Staff administration API.

Listing, role changes and removal require an accessible subscription.
Adding staff or moving a member into a new staff role is gated by the
plan's doctor or staff limit, first as an advisory check here and again
under a row lock in the staff services.
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.gate import EnforcementGate
from clinicdesk.billing.gate import EntitlementGateMixin
from clinicdesk.core.api.permissions import ClinicAdminPermission
from clinicdesk.staff.serializers import StaffCreateSerializer
from clinicdesk.staff.serializers import StaffMemberSerializer
from clinicdesk.staff.serializers import StaffUpdateSerializer
from clinicdesk.staff.services import StaffError
from clinicdesk.staff.services import add_staff_member
from clinicdesk.staff.services import deactivate_staff_member
from clinicdesk.staff.services import role_change_action
from clinicdesk.staff.services import staff_action_for_role
from clinicdesk.staff.services import update_staff_member
from clinicdesk.users.models import ClinicMembership
from clinicdesk.users.scoping import ensure_active_clinic_scope


class StaffListCreateView(EntitlementGateMixin, APIView):
    permission_classes = [ClinicAdminPermission]

    def get_entitlement_action(self, request):
        # POST is gated after the body is validated, once the role is known.
        if request.method == "POST":
            return None
        return AccessResource()

    @extend_schema(
        summary="List staff",
        responses={200: StaffMemberSerializer(many=True)},
        tags=["Staff"],
    )
    def get(self, request):
        memberships = (
            ClinicMembership.objects.filter(clinic=request.active_clinic, is_active=True)
            .select_related("user")
            .prefetch_related("roles")
            .order_by("user__username")
        )
        return Response(StaffMemberSerializer(memberships, many=True).data)

    @extend_schema(
        summary="Add staff member",
        description=(
            "Links the user with this email to the active clinic, creating "
            "the user if needed. Doctors count against the plan's doctor "
            "limit; receptionists and nurses against its staff limit. Admins "
            "are not counted."
        ),
        request=StaffCreateSerializer,
        responses={201: StaffMemberSerializer},
        tags=["Staff"],
    )
    def post(self, request):
        serializer = StaffCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clinic, _, _ = ensure_active_clinic_scope(request)

        data = serializer.validated_data
        existing = ClinicMembership.objects.filter(
            clinic=clinic,
            user__email__iexact=data["email"],
            is_active=True,
        ).first()
        # A role the member already holds is refused as a duplicate below.
        action = (
            AccessResource()
            if existing is not None and existing.has_role(data["role"])
            else staff_action_for_role(data["role"])
        )
        request.subscription = EnforcementGate().check(clinic, action)
        try:
            membership = add_staff_member(
                clinic,
                email=data["email"],
                role=data["role"],
                username=data["username"],
                name=data["name"],
                password=data.get("password"),
                also_make_admin=data["also_make_admin"],
            )
        except StaffError as exc:
            return Response(
                {"detail": exc.detail, "code": exc.code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            StaffMemberSerializer(membership).data,
            status=status.HTTP_201_CREATED,
        )


class StaffDetailView(EntitlementGateMixin, APIView):
    permission_classes = [ClinicAdminPermission]

    @extend_schema(summary="Remove staff member", responses={204: None}, tags=["Staff"])
    def delete(self, request, user_id: int):
        clinic, _, _ = ensure_active_clinic_scope(request)
        try:
            deactivate_staff_member(clinic, user_id, acting_user=request.user)
        except ClinicMembership.DoesNotExist:
            return Response(
                {"detail": "Staff member not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except StaffError as exc:
            return Response(
                {"detail": exc.detail, "code": exc.code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary="Update staff member",
        description=(
            "Change a member's staff role, admin flag or name. Moving into "
            "DOCTOR, RECEPTIONIST or NURSE is checked against the plan's "
            "limits; ADMIN is not counted."
        ),
        request=StaffUpdateSerializer,
        responses={200: StaffMemberSerializer},
        tags=["Staff"],
    )
    def patch(self, request, user_id: int):
        serializer = StaffUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        clinic, _, _ = ensure_active_clinic_scope(request)

        membership = ClinicMembership.objects.filter(
            clinic=clinic,
            user_id=user_id,
            is_active=True,
        ).first()
        if membership is None:
            return Response(
                {"detail": "Staff member not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        action = role_change_action(membership, data["role"]) if "role" in data else None
        if action is not None:
            EnforcementGate().check(clinic, action, exclude_membership=membership)

        try:
            membership = update_staff_member(
                clinic,
                user_id,
                acting_user=request.user,
                role=data.get("role"),
                also_make_admin=data.get("also_make_admin"),
                name=data.get("name"),
            )
        except ClinicMembership.DoesNotExist:
            return Response(
                {"detail": "Staff member not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except StaffError as exc:
            return Response(
                {"detail": exc.detail, "code": exc.code},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(StaffMemberSerializer(membership).data)
