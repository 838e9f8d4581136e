import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.authtoken.models import Token

from clinicdesk.billing.models import Subscription
from clinicdesk.users.constants import RoleCode
from clinicdesk.users.models import User
from clinicdesk.users.tests.factories import ClinicFactory
from clinicdesk.users.tests.factories import UserFactory
from clinicdesk.users.tests.factories import grant_role

REGISTER_PAYLOAD = {
    "username": "drsmith",
    "email": "smith@example.com",
    "password": "correct-horse-battery",
    "name": "Dr Smith",
    "clinic_name": "Smith Clinic",
}


@pytest.mark.django_db
class TestRegister:
    def test_register_creates_clinic_on_trial(self, api_client):
        response = api_client.post(reverse("api:auth:register"), REGISTER_PAYLOAD, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        user = User.objects.get(username="drsmith")
        assert body["user_id"] == user.pk
        assert Token.objects.get(user=user).key == body["token"]
        subscription = Subscription.objects.get(clinic_id=body["clinic_id"])
        assert subscription.status == "trialing"

    def test_token_authenticates(self, api_client):
        token = api_client.post(
            reverse("api:auth:register"),
            REGISTER_PAYLOAD,
            format="json",
        ).json()["token"]
        api_client.credentials(HTTP_AUTHORIZATION=f"Token {token}")

        response = api_client.get(reverse("api:auth:me"))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["roles"] == ["ADMIN", "DOCTOR"]
        assert response.json()["is_super_admin"] is False

    def test_duplicate_username(self, api_client):
        UserFactory(username="drsmith")

        response = api_client.post(reverse("api:auth:register"), REGISTER_PAYLOAD, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "username" in response.json()

    def test_short_password(self, api_client):
        payload = {**REGISTER_PAYLOAD, "password": "short"}

        response = api_client.post(reverse("api:auth:register"), payload, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestActiveClinic:
    def test_switch_clinic(self, api_client):
        user = UserFactory()
        grant_role(user, ClinicFactory(name="A"), RoleCode.DOCTOR)
        other = ClinicFactory(name="B")
        grant_role(user, other, RoleCode.NURSE)
        api_client.force_authenticate(user)

        response = api_client.post(
            reverse("api:auth:active-clinic"),
            {"clinic_id": other.pk},
            format="json",
        )

        assert response.status_code == status.HTTP_204_NO_CONTENT
        user.refresh_from_db()
        assert user.current_clinic == other

    def test_not_a_member(self, api_client, user):
        api_client.force_authenticate(user)

        response = api_client.post(
            reverse("api:auth:active-clinic"),
            {"clinic_id": ClinicFactory().pk},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
