import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from apps.catalog.models import InventoryItem
from apps.core.models import Branch, StaffMember


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))])
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "pos_product"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class RecipeIngredient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="ingredients")
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="recipe_uses")
    quantity_required = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )

    class Meta:
        db_table = "pos_recipe_ingredient"
        ordering = ["product", "item"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "item"],
                name="uq_pos_recipe_ingredient_product_item",
            )
        ]

    def __str__(self) -> str:
        return f"{self.product.code}: {self.quantity_required} x {self.item.code}"


class Sale(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="sales")
    staff = models.ForeignKey(
        StaffMember,
        on_delete=models.SET_NULL,
        related_name="sales",
        blank=True,
        null=True,
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    sold_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "pos_sale"
        ordering = ["-sold_at"]

    def __str__(self) -> str:
        return f"Sale {self.id} @ {self.branch.code}"


class SaleLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="lines")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="sale_lines")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "pos_sale_line"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product.code}"
