from __future__ import annotations

import logging
from uuid import uuid4

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db import transaction
from django.db.models import CharField
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel

from clinicdesk.users.constants import RoleCode

logger = logging.getLogger(__name__)


def _generate_unique_slug(model, base: str) -> str:
    base_slug = slugify(base) or uuid4().hex[:10]
    slug = base_slug
    counter = 2
    while model.objects.filter(slug=slug).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


@transaction.atomic
def register_clinic(owner: User, name: str) -> Clinic:
    """
    Create a clinic for ``owner`` and start its trial.

    The owner becomes both ADMIN and DOCTOR of the new clinic, the clinic
    becomes their current clinic, and a trial subscription on the default
    plan is created.
    """
    # Local import to avoid circular dependency with billing app
    from clinicdesk.billing.services import start_trial_subscription

    clinic = Clinic.objects.create(
        name=name,
        slug=_generate_unique_slug(Clinic, name),
    )
    membership = ClinicMembership.objects.create(
        user=owner,
        clinic=clinic,
        is_active=True,
    )
    membership.set_roles({RoleCode.ADMIN, RoleCode.DOCTOR})
    owner.set_current_clinic(clinic)
    start_trial_subscription(clinic)

    logger.info("Registered clinic %s for user %s", clinic.pk, owner.pk)
    return clinic


class Role(models.Model):
    """
    Global catalog of roles (e.g., ADMIN, DOCTOR, RECEPTIONIST).
    """

    code = models.CharField(
        max_length=32,
        choices=RoleCode.choices,
        unique=True,
    )

    name = models.CharField(max_length=64)  # display name

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return self.code


class Clinic(TimeStampedModel):
    """
    A clinic is the tenant: the unit of subscription and data isolation.
    """

    name = CharField(
        max_length=255,
        help_text=_("Name of the clinic, e.g. 'Harbour Street Family Practice'"),
    )

    slug = models.SlugField(
        unique=True,
        blank=True,
        null=False,
    )

    address = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        """Override save to ensure slug is set if not provided."""
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)


class User(AbstractUser):
    """
    Default custom user model for ClinicDesk.
    """

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Name of User"), blank=True, max_length=255)

    first_name = None  # type: ignore[assignment]

    last_name = None  # type: ignore[assignment]

    clinics = models.ManyToManyField(
        "Clinic",
        through="ClinicMembership",
        related_name="users",
        blank=True,
    )

    # The clinic the user is currently working in. A user can belong to
    # several clinics but acts on one at a time.
    current_clinic = models.ForeignKey(
        "Clinic",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="current_users",
        help_text=_("Clinic the user is currently working in."),
    )

    def set_current_clinic(self, clinic: Clinic, *, save: bool = True):
        """
        Assign current_clinic ensuring the user is a member of it.

        Raises:
            ValueError: If the user is not an active member of the clinic.
        """
        if not clinic:
            msg = "Clinic cannot be None when calling set_current_clinic()."
            raise ValueError(msg)

        if self.current_clinic_id == clinic.id:
            return

        if not self.memberships.filter(clinic=clinic, is_active=True).exists():
            msg = "User must be an active member of the clinic to set it as current."
            raise ValueError(msg)

        self.current_clinic = clinic

        if save:
            self.save(update_fields=["current_clinic"])

    def membership_for(self, clinic: Clinic) -> ClinicMembership | None:
        return (
            self.memberships.filter(clinic=clinic, is_active=True)
            .prefetch_related("roles")
            .first()
        )

    @property
    def holds_super_admin_role(self) -> bool:
        """True when the user is SUPER_ADMIN in any clinic they belong to."""
        return MembershipRole.objects.filter(
            membership__user=self,
            membership__is_active=True,
            role__code=RoleCode.SUPER_ADMIN,
        ).exists()


class ClinicMembership(TimeStampedModel):
    """
    Many-to-many through table. A user can belong to several clinics and hold
    several roles within each (e.g. DOCTOR and ADMIN).
    """

    class Meta:
        unique_together = [("user", "clinic")]
        indexes = [models.Index(fields=["clinic", "user"])]

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    clinic = models.ForeignKey(
        Clinic,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    roles = models.ManyToManyField(
        Role,
        through="MembershipRole",
        related_name="memberships",
        blank=True,
    )

    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"user '{self.user.username}' in clinic '{self.clinic.name}'"

    @property
    def role_codes(self) -> set[str]:
        return {role.code for role in self.roles.all()}

    def has_role(self, role_code: str) -> bool:
        return role_code in self.role_codes

    def add_role(self, role_code: str):
        if role_code not in RoleCode.values:
            raise ValueError(f"Invalid role code: {role_code}")
        updated_codes = set(self.role_codes)
        updated_codes.add(role_code)
        self.set_roles(updated_codes)

    def set_roles(self, role_codes: list[str] | set[str]):
        normalized_codes = {code for code in role_codes if code in RoleCode.values}
        roles = list(Role.objects.filter(code__in=normalized_codes))
        missing = normalized_codes - {role.code for role in roles}
        for code in missing:
            role, _ = Role.objects.get_or_create(
                code=code,
                defaults={"name": RoleCode(code).label},
            )
            roles.append(role)

        self.membership_roles.exclude(role__in=roles).delete()
        for role in roles:
            MembershipRole.objects.get_or_create(membership=self, role=role)

    def remove_role(self, role_code: str):
        updated_codes = set(self.role_codes)
        updated_codes.discard(role_code)
        self.set_roles(updated_codes)


class MembershipRole(models.Model):
    """
    One role link for a membership. Staff usage is counted over these rows.
    """

    membership = models.ForeignKey(
        ClinicMembership,
        on_delete=models.CASCADE,
        related_name="membership_roles",
    )

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name="membership_roles",
    )

    class Meta:
        unique_together = [("membership", "role")]
        indexes = [models.Index(fields=["membership", "role"])]

    def __str__(self):
        return f"{self.membership_id}:{self.role.code}"
