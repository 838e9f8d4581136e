"""
Role set value type.

A ``RoleSet`` is built once per request from the resolved membership and
answers every "may this user do X" question that depends on roles, so views
never inspect raw role-code lists themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

from clinicdesk.users.constants import ROLE_STAFF_CATEGORIES
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.constants import StaffCategory

if TYPE_CHECKING:
    from collections.abc import Iterable

    from clinicdesk.users.models import ClinicMembership
    from clinicdesk.users.models import User


@dataclass(frozen=True)
class RoleSet:
    """Immutable set of role codes held by a user in one clinic."""

    codes: frozenset[str] = field(default_factory=frozenset)
    # Platform-wide super admin (Django superuser or SUPER_ADMIN anywhere).
    platform_admin: bool = False

    @classmethod
    def of(cls, codes: Iterable[str], *, platform_admin: bool = False) -> RoleSet:
        return cls(codes=frozenset(codes), platform_admin=platform_admin)

    @classmethod
    def for_membership(
        cls,
        membership: ClinicMembership | None,
        user: User | None = None,
    ) -> RoleSet:
        codes = membership.role_codes if membership is not None else set()
        platform_admin = False
        if user is not None and user.is_authenticated:
            platform_admin = user.is_superuser or (
                RoleCode.SUPER_ADMIN in codes or user.holds_super_admin_role
            )
        return cls.of(codes, platform_admin=platform_admin)

    def __contains__(self, code: str) -> bool:
        return code in self.codes

    def has_any(self, *codes: str) -> bool:
        return any(code in self.codes for code in codes)

    def is_super_admin(self) -> bool:
        return self.platform_admin or RoleCode.SUPER_ADMIN in self.codes

    def has_admin_privilege(self) -> bool:
        return self.is_super_admin() or RoleCode.ADMIN in self.codes

    def is_doctor(self) -> bool:
        return RoleCode.DOCTOR in self.codes

    @staticmethod
    def category_for(role_code: str) -> StaffCategory | None:
        """Capacity bucket for a role, or None for administrative roles."""
        return ROLE_STAFF_CATEGORIES.get(role_code)
