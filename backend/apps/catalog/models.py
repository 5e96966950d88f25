from __future__ import annotations

import uuid

from django.core.validators import MinValueValidator
from django.db import models

from apps.core.codes import check_code
from apps.core.models import Branch
from apps.inventory.errors import ImmutableFieldViolation


class Unit(models.TextChoices):
    KG = "kg", "kg"
    G = "g", "g"
    L = "l", "l"
    ML = "ml", "ml"
    CL = "cl", "cl"
    PC = "pc", "pc"


class TrackingType(models.TextChoices):
    BY_PORTION = "by_portion", "by portion"
    BY_MEASURE = "by_measure", "by measure"


class InventoryCategory(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_inventory_category"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class InventoryItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    category = models.ForeignKey(
        InventoryCategory,
        on_delete=models.SET_NULL,
        related_name="items",
        blank=True,
        null=True,
    )
    unit = models.CharField(max_length=8, choices=Unit.choices)
    tracking_type = models.CharField(max_length=16, choices=TrackingType.choices)
    days_to_warn_before_expiry = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    LOCKED_FIELDS = ("tracking_type", "code")

    class Meta:
        db_table = "catalog_inventory_item"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._stored = {field: instance.__dict__.get(field) for field in cls.LOCKED_FIELDS}
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._stored = {field: getattr(self, field) for field in self.LOCKED_FIELDS}

    @property
    def is_portioned(self) -> bool:
        return self.tracking_type == TrackingType.BY_PORTION

    def save(self, *args, **kwargs):
        check_code(self.code)
        stored = getattr(self, "_stored", {})
        changed = [
            field
            for field in self.LOCKED_FIELDS
            if stored.get(field) is not None and stored[field] != getattr(self, field)
        ]
        if changed and self.batches.exists():
            raise ImmutableFieldViolation(
                f"{changed[0]} cannot change once batches exist.",
                {field: "Item already has batches." for field in changed},
            )
        super().save(*args, **kwargs)
        self._stored = {field: getattr(self, field) for field in self.LOCKED_FIELDS}


class BranchStocking(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(Branch, on_delete=models.CASCADE, related_name="stockings")
    item = models.ForeignKey(InventoryItem, on_delete=models.CASCADE, related_name="stockings")
    low_stock_threshold = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)],
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_branch_stocking"
        ordering = ["branch", "item"]
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "item"],
                name="uq_catalog_branch_stocking_branch_item",
            )
        ]

    def __str__(self) -> str:
        return f"{self.item.code} @ {self.branch.code}"
