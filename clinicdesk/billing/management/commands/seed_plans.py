"""
Management command to seed billing plans.

Creates or updates the three pricing plans (Starter, Growth, Pro) with their
limits and features, and optionally starts trials for clinics that predate
the billing system.

Usage:
    python manage.py seed_plans                  # Create missing plans
    python manage.py seed_plans --force          # Update existing plans too
    python manage.py seed_plans --grant-trials   # Trial for clinics without one
"""

from django.core.management.base import BaseCommand

from clinicdesk.billing.constants import PlanName
from clinicdesk.billing.models import Plan
from clinicdesk.billing.services import start_trial_subscription
from clinicdesk.users.models import Clinic

STARTER_FEATURES = [
    "appointments",
    "prescriptions",
    "basic_billing",
    "patient_records",
]
GROWTH_FEATURES = [
    "appointments",
    "prescriptions",
    "billing",
    "inventory",
    "patient_records",
    "reports",
    "advanced_scheduling",
]
PRO_FEATURES = [
    *GROWTH_FEATURES,
    "multi_clinic",
    "audit_logs",
    "api_access",
    "priority_support",
]

PLAN_CONFIG = {
    PlanName.STARTER: {
        "description": "For solo practitioners getting started.",
        "price_monthly": 2900,  # $29
        "price_yearly": 29000,  # $290
        "max_doctors": 1,
        "max_staff": 2,
        "multi_clinic": False,
        "features": STARTER_FEATURES,
    },
    PlanName.GROWTH: {
        "description": "For growing clinics with a small team.",
        "price_monthly": 5900,  # $59
        "price_yearly": 59000,  # $590
        "max_doctors": 5,
        "max_staff": 15,
        "multi_clinic": False,
        "features": GROWTH_FEATURES,
    },
    PlanName.PRO: {
        "description": "For clinic groups that need unlimited staff and locations.",
        "price_monthly": 12900,  # $129
        "price_yearly": 129000,  # $1290
        "max_doctors": None,
        "max_staff": None,
        "multi_clinic": True,
        "features": PRO_FEATURES,
    },
}


class Command(BaseCommand):
    help = "Seed billing plans"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with latest configuration",
        )
        parser.add_argument(
            "--grant-trials",
            action="store_true",
            help="Start a trial for every clinic that has no subscription",
        )

    def handle(self, *args, **options):
        self._seed_plans(force_update=options["force"])
        if options["grant_trials"]:
            self._grant_trials()
        self._show_summary()

    def _seed_plans(self, force_update: bool):  # noqa: FBT001
        """Create or update Plan records."""
        self.stdout.write("Seeding plans")

        for plan_name, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(
                name=plan_name,
                defaults=config,
            )

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif force_update:
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(
                    f"  Exists: {plan.name} (use --force to update limits)",
                )

    def _grant_trials(self):
        clinics = Clinic.objects.filter(subscription__isnull=True)
        granted = 0
        for clinic in clinics:
            start_trial_subscription(clinic)
            granted += 1
        self.stdout.write(self.style.SUCCESS(f"  Started {granted} trial(s)"))

    def _show_summary(self):
        """Show final summary of all plans."""
        for plan in Plan.objects.order_by("price_monthly"):
            doctors = plan.max_doctors if plan.max_doctors is not None else "unlimited"
            staff = plan.max_staff if plan.max_staff is not None else "unlimited"
            self.stdout.write(
                f"  {plan.name}: ${plan.price_monthly / 100:.0f}/mo, "
                f"{doctors} doctors, {staff} staff, "
                f"{len(plan.features)} features",
            )

        self.stdout.write(self.style.SUCCESS("Done!"))
