"""
Billing API views.

Views in this module:
- PlanListView: Public plan catalog
- SubscriptionDetailView: Current clinic's subscription, plan and usage
- UpgradeView / DowngradeView: Self-serve plan changes
- CancelSubscriptionView: Cancel with grace period
- PlanChangeHistoryView: Audit trail for the current clinic
- SuperAdminPlanListView / ClinicSubscriptionOverrideView: Platform admin

These paths are exempt from SubscriptionAccessMiddleware so that a clinic
whose trial has lapsed can still see its status and upgrade.
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from clinicdesk.billing.catalog import PlanCatalog
from clinicdesk.billing.entitlements import ChangeDirection
from clinicdesk.billing.models import Plan
from clinicdesk.billing.models import PlanChange
from clinicdesk.billing.plan_changes import PlanChangeService
from clinicdesk.billing.serializers import DowngradeRequestSerializer
from clinicdesk.billing.serializers import PlanChangeSerializer
from clinicdesk.billing.serializers import PlanOverrideSerializer
from clinicdesk.billing.serializers import PlanSerializer
from clinicdesk.billing.serializers import SubscriptionSerializer
from clinicdesk.billing.serializers import UpgradeRequestSerializer
from clinicdesk.billing.services import get_subscription_details
from clinicdesk.core.api.permissions import ClinicAdminPermission
from clinicdesk.core.api.permissions import ClinicMemberPermission
from clinicdesk.core.api.permissions import SuperAdminPermission
from clinicdesk.users.models import Clinic
from clinicdesk.users.scoping import ensure_active_clinic_scope

logger = logging.getLogger(__name__)


class PlanListView(generics.ListAPIView):
    """All plans, cheapest first. Public so the pricing page can use it."""

    permission_classes = [AllowAny]
    serializer_class = PlanSerializer
    pagination_class = None

    def get_queryset(self):
        return Plan.objects.order_by("price_monthly", "name")

    @extend_schema(summary="List plans", tags=["Billing"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class SubscriptionDetailView(APIView):
    permission_classes = [ClinicMemberPermission]

    @extend_schema(
        summary="Current subscription",
        description=(
            "Subscription status, plan limits, staff usage and trial days "
            "left for the caller's active clinic."
        ),
        responses={200: None, 404: {"description": "No subscription found."}},
        tags=["Billing"],
    )
    def get(self, request):
        clinic, _, _ = ensure_active_clinic_scope(request)
        details = get_subscription_details(clinic)
        if details is None:
            return Response(
                {"detail": "No subscription found for this clinic."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(details)


class UpgradeView(APIView):
    permission_classes = [ClinicAdminPermission]

    @extend_schema(
        summary="Upgrade plan",
        request=UpgradeRequestSerializer,
        responses={200: SubscriptionSerializer},
        tags=["Billing"],
    )
    def post(self, request):
        serializer = UpgradeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clinic, _, _ = ensure_active_clinic_scope(request)

        result = PlanChangeService().change_plan(
            clinic,
            serializer.validated_data["plan_name"],
            ChangeDirection.UPGRADE,
            billing_cycle=serializer.validated_data["billing_cycle"],
            actor=request.user,
        )
        return Response(
            {
                "message": result.message,
                "amount_charged": result.amount_charged,
                "subscription": SubscriptionSerializer(result.subscription).data,
            },
        )


class DowngradeView(APIView):
    permission_classes = [ClinicAdminPermission]

    @extend_schema(
        summary="Downgrade plan",
        description=(
            "Refused while the clinic has more doctors or staff than the "
            "target plan allows. Every exceeded limit is reported."
        ),
        request=DowngradeRequestSerializer,
        responses={200: SubscriptionSerializer},
        tags=["Billing"],
    )
    def post(self, request):
        serializer = DowngradeRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clinic, _, _ = ensure_active_clinic_scope(request)

        result = PlanChangeService().change_plan(
            clinic,
            serializer.validated_data["plan_name"],
            ChangeDirection.DOWNGRADE,
            actor=request.user,
        )
        return Response(
            {
                "message": result.message,
                "subscription": SubscriptionSerializer(result.subscription).data,
            },
        )


class CancelSubscriptionView(APIView):
    permission_classes = [ClinicAdminPermission]

    @extend_schema(
        summary="Cancel subscription",
        request=None,
        responses={200: SubscriptionSerializer},
        tags=["Billing"],
    )
    def post(self, request):
        clinic, _, _ = ensure_active_clinic_scope(request)
        subscription = PlanChangeService().cancel_subscription(
            clinic,
            actor=request.user,
        )
        return Response(
            {
                "message": (
                    "Subscription canceled successfully. Access will continue "
                    "until the end of your billing period."
                ),
                "ends_at": subscription.ends_at,
                "subscription": SubscriptionSerializer(subscription).data,
            },
        )


class PlanChangeHistoryView(generics.ListAPIView):
    permission_classes = [ClinicAdminPermission]
    serializer_class = PlanChangeSerializer

    def get_queryset(self):
        clinic, _, _ = ensure_active_clinic_scope(self.request)
        return PlanChange.objects.filter(subscription__clinic=clinic).select_related(
            "old_plan",
            "new_plan",
        )

    @extend_schema(summary="Plan change history", tags=["Billing"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class SuperAdminPlanListView(APIView):
    permission_classes = [SuperAdminPermission]

    @extend_schema(
        summary="List plans (admin)",
        responses={200: PlanSerializer(many=True)},
        tags=["Super admin"],
    )
    def get(self, request):
        plans = PlanCatalog().list_plans()
        return Response(PlanSerializer(plans, many=True).data)


class ClinicSubscriptionOverrideView(APIView):
    """
    Set a clinic's plan and status directly, bypassing upgrade rules.
    """

    permission_classes = [SuperAdminPermission]

    @extend_schema(
        summary="Override clinic subscription",
        request=PlanOverrideSerializer,
        responses={200: SubscriptionSerializer},
        tags=["Super admin"],
    )
    def patch(self, request, clinic_id: int):
        clinic = get_object_or_404(Clinic, pk=clinic_id)
        serializer = PlanOverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        subscription = PlanChangeService().assign_plan(
            clinic,
            serializer.validated_data["plan"],
            actor=request.user,
            status=serializer.validated_data["status"],
        )
        return Response(
            {
                "message": "Subscription plan updated successfully.",
                "subscription": SubscriptionSerializer(subscription).data,
            },
        )
