from django.db import transaction
from rest_framework import serializers

from apps.catalog.models import InventoryItem
from apps.core.models import Branch
from apps.pos.models import Product, RecipeIngredient, Sale, SaleLine


class RecipeIngredientSerializer(serializers.ModelSerializer):
    item = serializers.PrimaryKeyRelatedField(queryset=InventoryItem.objects.all())

    class Meta:
        model = RecipeIngredient
        fields = ("item", "quantity_required")

    def validate_quantity_required(self, value):
        if value <= 0:
            raise serializers.ValidationError("quantity_required must be greater than 0.")
        return value


class ProductSerializer(serializers.ModelSerializer):
    ingredients = RecipeIngredientSerializer(many=True, required=False)

    class Meta:
        model = Product
        fields = ("id", "name", "code", "price", "is_active", "ingredients", "created_at", "updated_at")
        read_only_fields = ("id", "created_at", "updated_at")

    def validate_ingredients(self, value):
        item_ids = [entry["item"].id for entry in value]
        if len(item_ids) != len(set(item_ids)):
            raise serializers.ValidationError("Each inventory item may appear only once.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        ingredients = validated_data.pop("ingredients", [])
        product = Product.objects.create(**validated_data)
        RecipeIngredient.objects.bulk_create(
            [RecipeIngredient(product=product, **ingredient) for ingredient in ingredients]
        )
        return product

    @transaction.atomic
    def update(self, instance, validated_data):
        ingredients = validated_data.pop("ingredients", None)
        instance = super().update(instance, validated_data)
        if ingredients is not None:
            instance.ingredients.all().delete()
            RecipeIngredient.objects.bulk_create(
                [RecipeIngredient(product=instance, **ingredient) for ingredient in ingredients]
            )
        return instance


class SaleLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = SaleLine
        fields = ("id", "product", "quantity", "unit_price", "line_total")


class SaleSerializer(serializers.ModelSerializer):
    lines = SaleLineSerializer(many=True, read_only=True)

    class Meta:
        model = Sale
        fields = ("id", "branch", "staff", "total_amount", "sold_at", "lines", "created_at")


class SaleLineInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True))
    quantity = serializers.IntegerField(min_value=1)


class SaleCreateSerializer(serializers.Serializer):
    branch = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.filter(is_active=True))
    lines = SaleLineInputSerializer(many=True, allow_empty=False)
    portions = serializers.DictField(
        child=serializers.ListField(child=serializers.UUIDField(), allow_empty=False),
        required=False,
    )
    sold_at = serializers.DateTimeField(required=False)
