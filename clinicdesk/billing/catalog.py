"""
Read-only plan catalog.

The catalog is handed to the entitlement engine at construction time. In
production it reads Plan rows; tests pass an in-memory list of unsaved plans
so the engine can be exercised without a database.

Usage:
    catalog = PlanCatalog()
    growth = catalog.get_plan("GROWTH")
    catalog.compare_plans(current, growth)  # PlanComparison.HIGHER
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings

from clinicdesk.billing.models import Plan

if TYPE_CHECKING:
    from collections.abc import Iterable


class PlanComparison(str, Enum):
    """Position of a target plan relative to the current one."""

    LOWER = "lower"
    HIGHER = "higher"
    EQUAL = "equal"


class PlanNotFoundError(LookupError):
    """Raised when a plan name is not in the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown plan: {name}")


class PlanCatalog:
    """Lookup and ordering of plan tiers."""

    def __init__(self, plans: Iterable[Plan] | None = None):
        self._plans = None if plans is None else {plan.name: plan for plan in plans}

    def get_plan(self, name: str) -> Plan:
        """
        Return the plan called ``name``.

        Raises:
            PlanNotFoundError: If no such plan exists.
        """
        if self._plans is not None:
            try:
                return self._plans[name]
            except KeyError:
                raise PlanNotFoundError(name) from None
        try:
            return Plan.objects.get(name=name)
        except Plan.DoesNotExist:
            raise PlanNotFoundError(name) from None

    def list_plans(self) -> list[Plan]:
        """All plans, cheapest first."""
        if self._plans is not None:
            return sorted(self._plans.values(), key=lambda plan: plan.price_monthly)
        return list(Plan.objects.order_by("price_monthly", "name"))

    def default_plan(self) -> Plan:
        return self.get_plan(settings.BILLING_DEFAULT_PLAN)

    @staticmethod
    def compare_plans(current: Plan, target: Plan) -> PlanComparison:
        """
        Compare ``target`` against ``current`` by monthly price only.
        """
        if target.price_monthly > current.price_monthly:
            return PlanComparison.HIGHER
        if target.price_monthly < current.price_monthly:
            return PlanComparison.LOWER
        return PlanComparison.EQUAL
