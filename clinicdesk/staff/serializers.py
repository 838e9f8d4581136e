from rest_framework import serializers

from clinicdesk.users.constants import RoleCode
from clinicdesk.users.models import ClinicMembership

# Roles a clinic admin may hand out. SUPER_ADMIN is platform-only.
ASSIGNABLE_ROLES = [
    RoleCode.ADMIN,
    RoleCode.DOCTOR,
    RoleCode.RECEPTIONIST,
    RoleCode.NURSE,
]

ROLE_CHOICES = [(code.value, code.label) for code in ASSIGNABLE_ROLES]


class StaffMemberSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(source="user.id", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    name = serializers.CharField(source="user.name", read_only=True)
    roles = serializers.SerializerMethodField()

    class Meta:
        model = ClinicMembership
        fields = ["user_id", "username", "email", "name", "roles", "is_active", "created"]
        read_only_fields = fields

    def get_roles(self, obj) -> list[str]:
        return sorted(obj.role_codes)


class StaffCreateSerializer(serializers.Serializer):
    """
    Existing users are matched by email; username, name and password only
    apply when a new user is created.
    """

    email = serializers.EmailField()
    username = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    password = serializers.CharField(
        write_only=True,
        required=False,
        min_length=8,
        style={"input_type": "password"},
    )
    role = serializers.ChoiceField(choices=ROLE_CHOICES)
    also_make_admin = serializers.BooleanField(required=False, default=False)


class StaffUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=ROLE_CHOICES, required=False)
    also_make_admin = serializers.BooleanField(required=False)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide role, also_make_admin or name.")
        return attrs
