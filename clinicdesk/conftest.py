import pytest
from rest_framework.test import APIClient

from clinicdesk.users.models import User
from clinicdesk.users.tests.factories import UserFactory
from clinicdesk.users.tests.factories import ensure_plans


@pytest.fixture(autouse=True)
def _ensure_billing_plans(db) -> None:
    """
    Ensure billing Plans exist for tests that create clinics.

    Clinic registration starts a trial on STARTER, so the plan rows must exist.
    """
    ensure_plans()


@pytest.fixture
def user(db) -> User:
    return UserFactory()


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()
