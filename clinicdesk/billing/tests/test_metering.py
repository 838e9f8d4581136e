"""
Tests for staff usage counting.
"""

import pytest

from clinicdesk.billing.metering import UsageSnapshot
from clinicdesk.billing.metering import measure_usage
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.tests.factories import ClinicFactory
from clinicdesk.users.tests.factories import UserFactory
from clinicdesk.users.tests.factories import add_staff
from clinicdesk.users.tests.factories import grant_role


@pytest.mark.django_db
class TestMeasureUsage:
    def test_empty_clinic(self):
        assert measure_usage(ClinicFactory()) == UsageSnapshot(0, 0)

    def test_admins_are_not_counted(self):
        clinic = ClinicFactory()
        add_staff(clinic, RoleCode.ADMIN, count=3)
        add_staff(clinic, RoleCode.SUPER_ADMIN)

        assert measure_usage(clinic) == UsageSnapshot(0, 0)

    def test_doctor_admin_counts_once_as_doctor(self):
        clinic = ClinicFactory()
        owner = UserFactory()
        grant_role(owner, clinic, RoleCode.ADMIN)
        grant_role(owner, clinic, RoleCode.DOCTOR)

        usage = measure_usage(clinic)

        assert usage.doctor_count == 1
        assert usage.total_staff_count == 1

    def test_counts_role_links_by_category(self):
        clinic = ClinicFactory()
        add_staff(clinic, RoleCode.DOCTOR, count=2)
        add_staff(clinic, RoleCode.RECEPTIONIST)
        add_staff(clinic, RoleCode.NURSE, count=2)

        usage = measure_usage(clinic)

        assert usage.doctor_count == 2
        assert usage.total_staff_count == 5

    def test_inactive_memberships_and_other_clinics_ignored(self):
        clinic = ClinicFactory()
        (doctor,) = add_staff(clinic, RoleCode.DOCTOR)
        add_staff(ClinicFactory(), RoleCode.DOCTOR, count=4)
        membership = doctor.membership_for(clinic)
        membership.is_active = False
        membership.save()

        assert measure_usage(clinic) == UsageSnapshot(0, 0)

    def test_excluding_a_member(self):
        clinic = ClinicFactory()
        add_staff(clinic, RoleCode.DOCTOR, count=2)
        user = UserFactory()
        grant_role(user, clinic, RoleCode.DOCTOR)
        membership = grant_role(user, clinic, RoleCode.NURSE)

        usage = measure_usage(clinic, exclude_membership=membership)

        assert usage == UsageSnapshot(doctor_count=2, total_staff_count=2)
