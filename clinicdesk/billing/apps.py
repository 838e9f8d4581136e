from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Handles plans, clinic subscriptions and entitlement enforcement.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "clinicdesk.billing"
