import uuid

from rest_framework import serializers

from apps.catalog.models import InventoryItem
from apps.core.models import Branch
from apps.inventory.log_details import describe
from apps.inventory.models import AdjustmentType, Batch, LedgerLog, LogAction, Portion


class PortionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Portion
        fields = ("id", "batch", "current_branch", "portion_number", "label", "quantity", "status")


class BatchSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source="item.code", read_only=True)
    branch_code = serializers.CharField(source="branch.code", read_only=True)

    class Meta:
        model = Batch
        fields = (
            "id",
            "item",
            "item_code",
            "branch",
            "branch_code",
            "batch_number",
            "label",
            "source",
            "source_batch",
            "quantity_received",
            "remaining_quantity",
            "unit_cost",
            "received_at",
            "expiration_date",
            "created_at",
        )


class BatchReceiveSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())
    branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.filter(is_active=True))
    quantity_received = serializers.DecimalField(max_digits=12, decimal_places=2)
    unit_cost = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    received_at = serializers.DateTimeField(required=False)
    expiration_date = serializers.DateField(required=False, allow_null=True)
    source = serializers.CharField(max_length=255, required=False, allow_blank=True)
    label = serializers.CharField(max_length=128, required=False, allow_blank=True)
    portion_size = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)

    def validate_quantity_received(self, value):
        if value <= 0:
            raise serializers.ValidationError("quantity_received must be greater than 0.")
        return value


class AdjustmentSerializer(serializers.Serializer):
    adjustment_type = serializers.ChoiceField(choices=AdjustmentType.choices)
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())
    branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.all())
    batch = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    portion_ids = serializers.ListField(child=serializers.UUIDField(), required=False, allow_empty=True)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        item = attrs["item"]
        if item.is_portioned:
            if not attrs.get("portion_ids"):
                raise serializers.ValidationError({"portion_ids": "portion_ids are required for portioned items."})
        else:
            errors = {}
            if not attrs.get("batch"):
                errors["batch"] = "batch is required for measured items."
            if attrs.get("quantity") is None:
                errors["quantity"] = "quantity is required for measured items."
            if errors:
                raise serializers.ValidationError(errors)
        return attrs


class CorrectCountSerializer(serializers.Serializer):
    corrected_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    reason = serializers.CharField()


class RestorePortionsSerializer(serializers.Serializer):
    portion_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    reason = serializers.CharField()


class RestoreQuantitySerializer(serializers.Serializer):
    amounts = serializers.DictField(
        child=serializers.DecimalField(max_digits=12, decimal_places=2),
        allow_empty=False,
    )
    reason = serializers.CharField()

    def validate_amounts(self, value):
        for log_id, amount in value.items():
            try:
                uuid.UUID(log_id)
            except ValueError as exc:
                raise serializers.ValidationError({log_id: "not a ledger entry id."}) from exc
            if amount <= 0:
                raise serializers.ValidationError({log_id: "amount must be greater than 0."})
        return value


class LedgerLogSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source="batch.item.code", read_only=True)
    branch_code = serializers.CharField(source="batch.branch.code", read_only=True)
    batch_number = serializers.IntegerField(source="batch.batch_number", read_only=True)
    portion_label = serializers.CharField(source="portion.label", read_only=True, default=None)
    actor_name = serializers.CharField(source="actor.name", read_only=True, default=None)
    summary = serializers.SerializerMethodField()

    class Meta:
        model = LedgerLog
        fields = (
            "id",
            "action",
            "batch",
            "batch_number",
            "item_code",
            "branch_code",
            "portion",
            "portion_label",
            "actor",
            "actor_name",
            "sale",
            "details",
            "summary",
            "created_at",
        )

    def get_summary(self, obj):
        return describe(obj)


class LedgerQuerySerializer(serializers.Serializer):
    batch = serializers.UUIDField(required=False)
    portion = serializers.UUIDField(required=False)
    branch = serializers.UUIDField(required=False)
    item = serializers.UUIDField(required=False)
    action = serializers.ListField(
        child=serializers.ChoiceField(choices=LogAction.choices),
        required=False,
    )
    date_from = serializers.DateTimeField(required=False)
    date_to = serializers.DateTimeField(required=False)
    search = serializers.CharField(required=False, allow_blank=True)
