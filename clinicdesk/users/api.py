"""
Authentication and clinic registration endpoints.

- RegisterView: sign up a user together with a new clinic on a trial
- AuthMeView: current user, active clinic and roles (token validation)
- ActiveClinicView: switch the clinic the user is working in
"""

from django.db import transaction
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.permissions import AllowAny
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinicdesk.users.models import User
from clinicdesk.users.models import register_clinic
from clinicdesk.users.scoping import SESSION_CLINIC_KEY
from clinicdesk.users.scoping import ensure_active_clinic_scope
from clinicdesk.users.serializers import ActiveClinicSerializer
from clinicdesk.users.serializers import RegisterSerializer


class RegisterView(APIView):
    """
    Create a user and their clinic in one step.

    The user becomes ADMIN and DOCTOR of the clinic, which starts on a trial
    of the default plan. Returns an API token for the new user.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Register clinic",
        request=RegisterSerializer,
        responses={
            201: inline_serializer(
                name="RegisterResponse",
                fields={
                    "token": serializers.CharField(),
                    "user_id": serializers.IntegerField(),
                    "clinic_id": serializers.IntegerField(),
                },
            ),
        },
        tags=["Authentication"],
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        with transaction.atomic():
            user = User.objects.create_user(
                username=data["username"],
                email=data["email"],
                password=data["password"],
                name=data["name"],
            )
            clinic = register_clinic(user, data["clinic_name"])
            token, _ = Token.objects.get_or_create(user=user)

        return Response(
            {"token": token.key, "user_id": user.pk, "clinic_id": clinic.pk},
            status=status.HTTP_201_CREATED,
        )


class AuthMeView(APIView):
    """
    Get the currently authenticated user's basic information.

    Used by clients to validate tokens and to learn which clinic and roles
    the user is currently acting with.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user info",
        responses={
            200: inline_serializer(
                name="AuthMeResponse",
                fields={
                    "id": serializers.IntegerField(),
                    "username": serializers.CharField(),
                    "email": serializers.EmailField(),
                    "name": serializers.CharField(),
                    "clinic_id": serializers.IntegerField(allow_null=True),
                    "roles": serializers.ListField(child=serializers.CharField()),
                    "is_super_admin": serializers.BooleanField(),
                },
            ),
        },
        tags=["Authentication"],
    )
    def get(self, request):
        user = request.user
        clinic, _, role_set = ensure_active_clinic_scope(request)
        return Response(
            {
                "id": user.pk,
                "username": user.username,
                "email": user.email,
                "name": user.name or "",
                "clinic_id": clinic.pk if clinic else None,
                "roles": sorted(role_set.codes),
                "is_super_admin": role_set.is_super_admin(),
            },
        )


class ActiveClinicView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Switch active clinic",
        request=ActiveClinicSerializer,
        responses={204: None, 400: {"description": "Not a member of that clinic."}},
        tags=["Authentication"],
    )
    def post(self, request):
        serializer = ActiveClinicSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        clinic_id = serializer.validated_data["clinic_id"]

        membership = request.user.memberships.filter(
            clinic_id=clinic_id,
            is_active=True,
        ).select_related("clinic").first()
        if membership is None:
            return Response(
                {"clinic_id": ["You are not a member of this clinic."]},
                status=status.HTTP_400_BAD_REQUEST,
            )
        request.user.set_current_clinic(membership.clinic)
        if hasattr(request, "session"):
            request.session[SESSION_CLINIC_KEY] = clinic_id
        return Response(status=status.HTTP_204_NO_CONTENT)
