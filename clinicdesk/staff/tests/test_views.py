"""
Tests for the staff API and its capacity gate.
"""

from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework import status

from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.entitlements import Decision
from clinicdesk.billing.gate import GateResult
from clinicdesk.billing.models import Plan
from clinicdesk.billing.models import Subscription
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.models import ClinicMembership
from clinicdesk.users.models import User
from clinicdesk.users.tests.factories import SubscriptionFactory
from clinicdesk.users.tests.factories import UserFactory
from clinicdesk.users.tests.factories import add_staff
from clinicdesk.users.tests.factories import grant_role


def staff_payload(role, username="newhire"):
    return {
        "username": username,
        "email": f"{username}@example.com",
        "name": "New Hire",
        "password": "a-long-password",
        "role": role,
    }


@pytest.fixture
def growth_clinic(db):
    subscription = SubscriptionFactory(plan=Plan.objects.get(name="GROWTH"))
    admin = UserFactory()
    grant_role(admin, subscription.clinic, RoleCode.ADMIN)
    return subscription.clinic, admin


@pytest.fixture
def client_for(api_client):
    def _client(user):
        api_client.force_authenticate(user)
        return api_client

    return _client


@pytest.mark.django_db
class TestStaffList:
    def test_lists_active_staff_with_roles(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        (doctor,) = add_staff(clinic, RoleCode.DOCTOR)

        response = client_for(admin).get(reverse("api:staff:list"))

        assert response.status_code == status.HTTP_200_OK
        roles = {row["username"]: row["roles"] for row in response.json()}
        assert roles[doctor.username] == ["DOCTOR"]
        assert roles[admin.username] == ["ADMIN"]

    def test_requires_admin(self, growth_clinic, client_for):
        clinic, _ = growth_clinic
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        response = client_for(nurse).get(reverse("api:staff:list"))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_blocked_when_subscription_inactive(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        Subscription.objects.filter(clinic=clinic).update(status=SubscriptionStatus.PAST_DUE)

        response = client_for(admin).get(reverse("api:staff:list"))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "SubscriptionInactive"


@pytest.mark.django_db
class TestAddStaff:
    def test_adds_doctor_under_limit(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=4)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.DOCTOR),
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        user = User.objects.get(username="newhire")
        assert user.membership_for(clinic).has_role(RoleCode.DOCTOR)
        assert user.check_password("a-long-password")

    def test_doctor_limit_reached(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=5)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.DOCTOR),
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        body = response.json()
        assert body["reason_code"] == "DoctorLimitReached"
        assert body["current_count"] == 5
        assert body["limit"] == 5
        assert body["requires_upgrade"] is True
        assert not User.objects.filter(username="newhire").exists()

    def test_staff_limit_counts_doctors_too(self, client_for):
        subscription = SubscriptionFactory()  # STARTER: 1 doctor, 2 staff
        admin = UserFactory()
        grant_role(admin, subscription.clinic, RoleCode.ADMIN)
        add_staff(subscription.clinic, RoleCode.DOCTOR)
        add_staff(subscription.clinic, RoleCode.RECEPTIONIST)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.NURSE),
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "StaffLimitReached"

    def test_admins_not_capacity_gated(self, client_for):
        subscription = SubscriptionFactory()
        admin = UserFactory()
        grant_role(admin, subscription.clinic, RoleCode.ADMIN)
        add_staff(subscription.clinic, RoleCode.DOCTOR)
        add_staff(subscription.clinic, RoleCode.NURSE, count=2)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.ADMIN),
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED

    def test_invalid_role_is_validation_error(self, growth_clinic, client_for):
        _, admin = growth_clinic

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload("JANITOR"),
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "role" in response.json()

    def test_locked_recheck_catches_stale_gate(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=5)

        # Simulate the advisory gate having seen an older, lower count.
        with patch(
            "clinicdesk.billing.gate.EnforcementGate.evaluate",
            return_value=GateResult(decision=Decision.allow()),
        ):
            response = client_for(admin).post(
                reverse("api:staff:list"),
                staff_payload(RoleCode.DOCTOR),
                format="json",
            )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "DoctorLimitReached"
        assert (
            ClinicMembership.objects.filter(
                clinic=clinic,
                roles__code=RoleCode.DOCTOR,
            ).count()
            == 5
        )


@pytest.mark.django_db
class TestRemoveStaff:
    def test_deactivates_membership_and_frees_capacity(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        doctors = add_staff(clinic, RoleCode.DOCTOR, count=5)
        client = client_for(admin)

        response = client.delete(reverse("api:staff:detail", args=[doctors[0].pk]))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not doctors[0].membership_for(clinic)
        response = client.post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.DOCTOR),
            format="json",
        )
        assert response.status_code == status.HTTP_201_CREATED

    def test_cannot_remove_self(self, growth_clinic, client_for):
        _, admin = growth_clinic

        response = client_for(admin).delete(reverse("api:staff:detail", args=[admin.pk]))

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_member(self, growth_clinic, client_for):
        _, admin = growth_clinic

        response = client_for(admin).delete(reverse("api:staff:detail", args=[999_999]))

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestAddExistingUser:
    def test_links_doctor_from_another_clinic(self, client_for):
        subscription = SubscriptionFactory(plan=Plan.objects.get(name="PRO"))
        admin = UserFactory()
        grant_role(admin, subscription.clinic, RoleCode.ADMIN)
        (doctor,) = add_staff(SubscriptionFactory().clinic, RoleCode.DOCTOR)
        users_before = User.objects.count()

        response = client_for(admin).post(
            reverse("api:staff:list"),
            {"email": doctor.email, "role": RoleCode.DOCTOR},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["user_id"] == doctor.pk
        assert User.objects.count() == users_before
        assert doctor.membership_for(subscription.clinic).has_role(RoleCode.DOCTOR)

    def test_other_clinic_doctor_counts_against_limit(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=5)
        (doctor,) = add_staff(SubscriptionFactory().clinic, RoleCode.DOCTOR)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            {"email": doctor.email, "role": RoleCode.DOCTOR},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "DoctorLimitReached"
        assert doctor.membership_for(clinic) is None

    def test_readd_after_removal(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        doctors = add_staff(clinic, RoleCode.DOCTOR, count=5)
        client = client_for(admin)
        client.delete(reverse("api:staff:detail", args=[doctors[0].pk]))

        response = client.post(
            reverse("api:staff:list"),
            {"email": doctors[0].email, "role": RoleCode.NURSE},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        membership = doctors[0].membership_for(clinic)
        assert membership.role_codes == {RoleCode.NURSE}
        assert ClinicMembership.objects.filter(user=doctors[0], clinic=clinic).count() == 1

    def test_readd_after_removal_counts_against_limit(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        doctors = add_staff(clinic, RoleCode.DOCTOR, count=5)
        client = client_for(admin)
        client.delete(reverse("api:staff:detail", args=[doctors[0].pk]))
        add_staff(clinic, RoleCode.DOCTOR)

        response = client.post(
            reverse("api:staff:list"),
            {"email": doctors[0].email, "role": RoleCode.DOCTOR},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "DoctorLimitReached"
        assert doctors[0].membership_for(clinic) is None

    def test_duplicate_role_refused(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            {"email": nurse.email, "role": RoleCode.NURSE},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "duplicate_role"

    def test_existing_member_gains_role(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        response = client_for(admin).post(
            reverse("api:staff:list"),
            {"email": nurse.email, "role": RoleCode.DOCTOR, "also_make_admin": True},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["roles"] == ["ADMIN", "DOCTOR", "NURSE"]

    def test_new_user_username_taken(self, growth_clinic, client_for):
        _, admin = growth_clinic
        UserFactory(username="newhire", email="someone-else@example.com")

        response = client_for(admin).post(
            reverse("api:staff:list"),
            staff_payload(RoleCode.NURSE),
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "username_taken"


@pytest.mark.django_db
class TestUpdateStaff:
    def patch(self, client, user, payload):
        return client.patch(
            reverse("api:staff:detail", args=[user.pk]),
            payload,
            format="json",
        )

    def test_promotion_denied_at_doctor_limit(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=5)
        (receptionist,) = add_staff(clinic, RoleCode.RECEPTIONIST)

        response = self.patch(client_for(admin), receptionist, {"role": RoleCode.DOCTOR})

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["reason_code"] == "DoctorLimitReached"
        assert receptionist.membership_for(clinic).role_codes == {RoleCode.RECEPTIONIST}

    def test_promotion_allowed_below_doctor_limit(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=4)
        (receptionist,) = add_staff(clinic, RoleCode.RECEPTIONIST)

        response = self.patch(client_for(admin), receptionist, {"role": RoleCode.DOCTOR})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["roles"] == ["DOCTOR"]

    def test_move_within_full_staff_limit(self, client_for):
        subscription = SubscriptionFactory()  # STARTER: 1 doctor, 2 staff
        admin = UserFactory()
        grant_role(admin, subscription.clinic, RoleCode.ADMIN)
        (doctor,) = add_staff(subscription.clinic, RoleCode.DOCTOR)
        add_staff(subscription.clinic, RoleCode.RECEPTIONIST)

        response = self.patch(client_for(admin), doctor, {"role": RoleCode.NURSE})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["roles"] == ["NURSE"]

    def test_admin_flag_is_not_counted(self, client_for):
        subscription = SubscriptionFactory()
        admin = UserFactory()
        grant_role(admin, subscription.clinic, RoleCode.ADMIN)
        (doctor,) = add_staff(subscription.clinic, RoleCode.DOCTOR)
        add_staff(subscription.clinic, RoleCode.NURSE)
        client = client_for(admin)

        granted = self.patch(client, doctor, {"also_make_admin": True})
        revoked = self.patch(client, doctor, {"also_make_admin": False})

        assert granted.json()["roles"] == ["ADMIN", "DOCTOR"]
        assert revoked.json()["roles"] == ["DOCTOR"]

    def test_cannot_revoke_own_admin(self, growth_clinic, client_for):
        _, admin = growth_clinic

        response = self.patch(client_for(admin), admin, {"also_make_admin": False})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["code"] == "self_demotion"

    def test_updates_name(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        response = self.patch(client_for(admin), nurse, {"name": "Nurse Jackie"})

        assert response.status_code == status.HTTP_200_OK
        nurse.refresh_from_db()
        assert nurse.name == "Nurse Jackie"

    def test_empty_body(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        response = self.patch(client_for(admin), nurse, {})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_member(self, growth_clinic, client_for):
        _, admin = growth_clinic

        response = client_for(admin).patch(
            reverse("api:staff:detail", args=[999_999]),
            {"role": RoleCode.NURSE},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_locked_recheck_on_promotion(self, growth_clinic, client_for):
        clinic, admin = growth_clinic
        add_staff(clinic, RoleCode.DOCTOR, count=5)
        (nurse,) = add_staff(clinic, RoleCode.NURSE)

        with patch(
            "clinicdesk.billing.gate.EnforcementGate.evaluate",
            return_value=GateResult(decision=Decision.allow()),
        ):
            response = self.patch(client_for(admin), nurse, {"role": RoleCode.DOCTOR})

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert nurse.membership_for(clinic).role_codes == {RoleCode.NURSE}
