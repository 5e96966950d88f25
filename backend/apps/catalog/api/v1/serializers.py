from django.db import transaction
from rest_framework import serializers

from apps.catalog.models import BranchStocking, InventoryCategory, InventoryItem
from apps.core.codes import CODE_RE, normalize_code


class InventoryCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryCategory
        fields = ("id", "name", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")


class BranchStockingSerializer(serializers.ModelSerializer):
    class Meta:
        model = BranchStocking
        fields = ("branch", "low_stock_threshold")


class InventoryItemSerializer(serializers.ModelSerializer):
    stockings = BranchStockingSerializer(many=True, required=False)

    class Meta:
        model = InventoryItem
        fields = (
            "id",
            "name",
            "code",
            "category",
            "unit",
            "tracking_type",
            "days_to_warn_before_expiry",
            "stockings",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")

    def validate_code(self, value):
        normalized = normalize_code(value)
        if not normalized:
            raise serializers.ValidationError("Item code is required.")
        if not CODE_RE.match(normalized):
            raise serializers.ValidationError("Use letters, digits and underscores only.")
        if self.instance is not None and normalized != self.instance.code and self.instance.batches.exists():
            raise serializers.ValidationError("Code cannot change once the item has batches.")
        return normalized

    def validate_stockings(self, value):
        branch_ids = [entry["branch"].id for entry in value]
        if len(branch_ids) != len(set(branch_ids)):
            raise serializers.ValidationError("Each branch may appear only once.")
        return value

    @staticmethod
    def _sync_stockings(item: InventoryItem, stockings):
        keep = []
        for entry in stockings:
            stocking, _ = BranchStocking.objects.update_or_create(
                item=item,
                branch=entry["branch"],
                defaults={"low_stock_threshold": entry.get("low_stock_threshold", 0)},
            )
            keep.append(stocking.id)
        item.stockings.exclude(id__in=keep).delete()

    @transaction.atomic
    def create(self, validated_data):
        stockings = validated_data.pop("stockings", [])
        item = InventoryItem.objects.create(**validated_data)
        self._sync_stockings(item, stockings)
        return item

    @transaction.atomic
    def update(self, instance, validated_data):
        stockings = validated_data.pop("stockings", None)
        for field, value in validated_data.items():
            setattr(instance, field, value)
        instance.save()
        if stockings is not None:
            self._sync_stockings(instance, stockings)
        return instance
