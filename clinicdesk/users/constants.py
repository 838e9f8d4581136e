from django.db import models
from django.utils.translation import gettext_lazy as _


class RoleCode(models.TextChoices):
    """
    Enum for user roles within a clinic.
    """

    # Platform operator. Can manage every clinic, including plan overrides.
    # Holding this role in any clinic grants it everywhere.
    SUPER_ADMIN = "SUPER_ADMIN", _("Super Admin")

    # Administrator of a clinic. Manages staff, billing and clinic settings.
    ADMIN = "ADMIN", _("Admin")

    # Practising doctor. Counted against the plan's doctor limit.
    DOCTOR = "DOCTOR", _("Doctor")

    # Front desk staff. Counted against the plan's staff limit.
    RECEPTIONIST = "RECEPTIONIST", _("Receptionist")

    # Nursing staff. Counted against the plan's staff limit.
    NURSE = "NURSE", _("Nurse")


class StaffCategory(models.TextChoices):
    """
    Capacity bucket a role falls into when it is added to a clinic.
    """

    DOCTOR = "DOCTOR", _("Doctor")
    GENERAL_STAFF = "GENERAL_STAFF", _("General staff")


# Roles that never count towards staff limits.
ADMINISTRATIVE_ROLES = frozenset({RoleCode.ADMIN, RoleCode.SUPER_ADMIN})

# Role codes and the capacity bucket they consume. Administrative roles are
# intentionally absent.
ROLE_STAFF_CATEGORIES = {
    RoleCode.DOCTOR: StaffCategory.DOCTOR,
    RoleCode.RECEPTIONIST: StaffCategory.GENERAL_STAFF,
    RoleCode.NURSE: StaffCategory.GENERAL_STAFF,
}
