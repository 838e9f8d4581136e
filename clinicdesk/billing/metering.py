"""
Staff usage metering.

Usage is never stored. It is counted on demand from the active role links of
a clinic's memberships, so a user holding DOCTOR and ADMIN counts once as a
doctor and once towards total staff only through the DOCTOR link.

Usage:
    usage = measure_usage(clinic)
    usage.doctor_count, usage.total_staff_count
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clinicdesk.users.constants import ADMINISTRATIVE_ROLES
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.models import MembershipRole

if TYPE_CHECKING:
    from clinicdesk.users.models import Clinic
    from clinicdesk.users.models import ClinicMembership

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """Point-in-time staff counts for one clinic."""

    doctor_count: int = 0
    total_staff_count: int = 0

    def as_dict(self) -> dict:
        return {
            "doctor_count": self.doctor_count,
            "total_staff_count": self.total_staff_count,
        }


def measure_usage(
    clinic: Clinic,
    *,
    exclude_membership: ClinicMembership | None = None,
) -> UsageSnapshot:
    """
    Count active doctor links and active non-administrative links.

    ``exclude_membership`` leaves one member's links out, giving the usage a
    role change for that member is checked against.
    """
    links = MembershipRole.objects.filter(
        membership__clinic=clinic,
        membership__is_active=True,
        membership__user__is_active=True,
    )
    if exclude_membership is not None:
        links = links.exclude(membership=exclude_membership)
    doctor_count = links.filter(role__code=RoleCode.DOCTOR).count()
    total_staff_count = links.exclude(role__code__in=ADMINISTRATIVE_ROLES).count()

    logger.debug(
        "Usage for clinic=%s: doctors=%d staff=%d",
        clinic.pk,
        doctor_count,
        total_staff_count,
    )
    return UsageSnapshot(
        doctor_count=doctor_count,
        total_staff_count=total_staff_count,
    )
