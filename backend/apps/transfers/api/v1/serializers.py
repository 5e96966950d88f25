from rest_framework import serializers

from apps.catalog.models import InventoryItem
from apps.core.models import Branch
from apps.transfers.models import ReceptionStatus, Transfer, TransferItem


class TransferItemSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source="item.code", read_only=True)
    portion_label = serializers.CharField(source="portion.label", read_only=True, default=None)

    class Meta:
        model = TransferItem
        fields = (
            "id",
            "item",
            "item_code",
            "batch",
            "portion",
            "portion_label",
            "quantity",
            "reception_status",
            "received_quantity",
            "reception_notes",
            "destination_batch",
        )


class TransferSerializer(serializers.ModelSerializer):
    items = TransferItemSerializer(many=True, read_only=True)

    class Meta:
        model = Transfer
        fields = (
            "id",
            "source_branch",
            "destination_branch",
            "sent_by",
            "received_by",
            "status",
            "notes",
            "sent_at",
            "received_at",
            "items",
        )


class TransferLineInputSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())
    batch_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    portion_ids = serializers.ListField(child=serializers.UUIDField(), required=False, allow_empty=True)

    def validate_quantity(self, value):
        if value is not None and value <= 0:
            raise serializers.ValidationError("quantity must be greater than 0.")
        return value


class TransferCreateSerializer(serializers.Serializer):
    source_branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.filter(is_active=True))
    destination_branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.filter(is_active=True))
    items = TransferLineInputSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        line_errors = []
        has_errors = False
        for line in attrs.get("items", []):
            current_error = {}
            item = line["item"]
            if item.is_portioned:
                if not line.get("portion_ids") and line.get("quantity") is None:
                    current_error["portion_ids"] = "portion_ids or quantity is required for portioned items."
                    has_errors = True
            else:
                if line.get("portion_ids"):
                    current_error["portion_ids"] = "portion_ids are not allowed for measured items."
                    has_errors = True
                if line.get("quantity") is None:
                    current_error["quantity"] = "quantity is required for measured items."
                    has_errors = True
            line_errors.append(current_error)

        if has_errors:
            raise serializers.ValidationError({"items": line_errors})
        return attrs


class ReceptionSerializer(serializers.Serializer):
    item_line = serializers.UUIDField()
    status = serializers.ChoiceField(
        choices=[
            ReceptionStatus.RECEIVED,
            ReceptionStatus.RECEIVED_WITH_ISSUES,
            ReceptionStatus.REJECTED,
        ]
    )
    received_quantity = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
        min_value=0,
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class TransferReceiveSerializer(serializers.Serializer):
    receptions = ReceptionSerializer(many=True, allow_empty=False)


class TransferReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
