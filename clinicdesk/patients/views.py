from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework.response import Response
from rest_framework.views import APIView

from clinicdesk.billing.entitlements import AccessResource
from clinicdesk.billing.entitlements import UseFeature
from clinicdesk.billing.gate import EntitlementGateMixin
from clinicdesk.core.api.permissions import ClinicMemberPermission
from clinicdesk.patients.models import Patient
from clinicdesk.patients.serializers import PatientSerializer
from clinicdesk.users.scoping import ensure_active_clinic_scope

EXPORT_FEATURE = "reports"


class PatientListCreateView(EntitlementGateMixin, generics.ListCreateAPIView):
    """Patients of the caller's active clinic."""

    permission_classes = [ClinicMemberPermission]
    serializer_class = PatientSerializer
    entitlement_action = AccessResource()

    def get_queryset(self):
        clinic, _, _ = ensure_active_clinic_scope(self.request)
        return Patient.objects.filter(clinic=clinic)

    def perform_create(self, serializer):
        clinic, _, _ = ensure_active_clinic_scope(self.request)
        serializer.save(clinic=clinic, created_by=self.request.user)

    @extend_schema(summary="List patients", tags=["Patients"])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(summary="Create patient", tags=["Patients"])
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)


class PatientExportView(EntitlementGateMixin, APIView):
    """Full patient export. Only plans with the reports feature include it."""

    permission_classes = [ClinicMemberPermission]
    entitlement_action = UseFeature(EXPORT_FEATURE)

    @extend_schema(
        summary="Export patients",
        responses={200: PatientSerializer(many=True)},
        tags=["Patients"],
    )
    def get(self, request):
        clinic, _, _ = ensure_active_clinic_scope(request)
        patients = Patient.objects.filter(clinic=clinic)
        return Response(
            {
                "clinic": clinic.name,
                "count": patients.count(),
                "patients": PatientSerializer(patients, many=True).data,
            },
        )
