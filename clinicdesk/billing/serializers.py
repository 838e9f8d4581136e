from rest_framework import serializers

from clinicdesk.billing.constants import BillingCycle
from clinicdesk.billing.constants import SubscriptionStatus
from clinicdesk.billing.models import Plan
from clinicdesk.billing.models import PlanChange
from clinicdesk.billing.models import Subscription


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plan
        fields = [
            "id",
            "name",
            "description",
            "price_monthly",
            "price_yearly",
            "max_doctors",
            "max_staff",
            "multi_clinic",
            "features",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    plan = PlanSerializer(read_only=True)
    clinic = serializers.IntegerField(source="clinic_id", read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "clinic",
            "plan",
            "status",
            "trial_ends_at",
            "starts_at",
            "ends_at",
            "created",
            "modified",
        ]
        read_only_fields = fields


class PlanChangeSerializer(serializers.ModelSerializer):
    old_plan = serializers.SlugRelatedField(slug_field="name", read_only=True)
    new_plan = serializers.SlugRelatedField(slug_field="name", read_only=True)

    class Meta:
        model = PlanChange
        fields = ["id", "old_plan", "new_plan", "change_type", "notes", "created"]
        read_only_fields = fields


class UpgradeRequestSerializer(serializers.Serializer):
    plan_name = serializers.CharField(max_length=50)
    billing_cycle = serializers.ChoiceField(choices=BillingCycle.choices)


class DowngradeRequestSerializer(serializers.Serializer):
    plan_name = serializers.CharField(max_length=50)


class PlanOverrideSerializer(serializers.Serializer):
    """Admin override body. Either ``plan_id`` or ``plan_name`` is required."""

    plan_id = serializers.PrimaryKeyRelatedField(
        queryset=Plan.objects.all(),
        required=False,
        source="plan",
    )
    plan_name = serializers.SlugRelatedField(
        slug_field="name",
        queryset=Plan.objects.all(),
        required=False,
        source="plan_by_name",
    )
    status = serializers.ChoiceField(
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )

    def validate(self, attrs):
        plan = attrs.pop("plan", None) or attrs.pop("plan_by_name", None)
        attrs.pop("plan_by_name", None)
        if plan is None:
            raise serializers.ValidationError({"plan_id": "Plan ID is required."})
        attrs["plan"] = plan
        return attrs
