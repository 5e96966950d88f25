from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from apps.catalog.models import InventoryItem
from apps.core.models import Branch, StaffMember
from apps.inventory.errors import ImmutableFieldViolation

ZERO = Decimal("0.00")


class PortionStatus(models.TextChoices):
    UNUSED = "unused", "unused"
    USED = "used", "used"
    SPOILED = "spoiled", "spoiled"
    WASTED = "wasted", "wasted"
    STOLEN = "stolen", "stolen"
    MISSING = "missing", "missing"
    DAMAGED = "damaged", "damaged"
    EXPIRED = "expired", "expired"
    CONSUMED = "consumed", "consumed"
    IN_TRANSIT = "in_transit", "in transit"
    TRANSFERRED = "transferred", "transferred"
    RESTORED = "restored", "restored"


ADJUSTED_STATUSES = frozenset(
    {
        PortionStatus.SPOILED,
        PortionStatus.WASTED,
        PortionStatus.STOLEN,
        PortionStatus.MISSING,
        PortionStatus.DAMAGED,
        PortionStatus.EXPIRED,
        PortionStatus.CONSUMED,
    }
)


class LogAction(models.TextChoices):
    BATCH_CREATED = "batch_created", "batch created"
    DEDUCTED_FOR_SALE = "deducted_for_sale", "deducted for sale"
    ADJUSTMENT_SPOILAGE = "adjustment_spoilage", "spoilage"
    ADJUSTMENT_WASTE = "adjustment_waste", "waste"
    ADJUSTMENT_THEFT = "adjustment_theft", "theft"
    ADJUSTMENT_MISSING = "adjustment_missing", "missing"
    ADJUSTMENT_DAMAGE = "adjustment_damage", "damage"
    ADJUSTMENT_EXPIRY = "adjustment_expiry", "expiry"
    ADJUSTMENT_STAFF_MEAL = "adjustment_staff_meal", "staff meal"
    ADJUSTMENT_OTHER = "adjustment_other", "other adjustment"
    TRANSFER_INITIATED = "transfer_initiated", "transfer initiated"
    TRANSFER_RECEIVED = "transfer_received", "transfer received"
    TRANSFER_CANCELLED = "transfer_cancelled", "transfer cancelled"
    TRANSFER_REJECTED = "transfer_rejected", "transfer rejected"
    TRANSFER_SHORTFALL = "transfer_shortfall", "transfer shortfall"
    BATCH_COUNT_CORRECTED = "batch_count_corrected", "batch count corrected"
    PORTION_RESTORED = "portion_restored", "portion restored"
    QUANTITY_RESTORED = "quantity_restored", "quantity restored"


class AdjustmentType(models.TextChoices):
    SPOILAGE = "spoilage", "spoilage"
    WASTE = "waste", "waste"
    THEFT = "theft", "theft"
    MISSING = "missing", "missing"
    DAMAGE = "damage", "damage"
    EXPIRY = "expiry", "expiry"
    STAFF_MEAL = "staff_meal", "staff meal"
    OTHER = "other", "other"

    def to_log_action(self) -> str:
        return ADJUSTMENT_LOG_ACTIONS[self]

    def to_portion_status(self) -> str:
        return ADJUSTMENT_PORTION_STATUSES[self]

    def requires_reason(self) -> bool:
        return self in REASON_REQUIRED


ADJUSTMENT_LOG_ACTIONS = {
    AdjustmentType.SPOILAGE: LogAction.ADJUSTMENT_SPOILAGE,
    AdjustmentType.WASTE: LogAction.ADJUSTMENT_WASTE,
    AdjustmentType.THEFT: LogAction.ADJUSTMENT_THEFT,
    AdjustmentType.MISSING: LogAction.ADJUSTMENT_MISSING,
    AdjustmentType.DAMAGE: LogAction.ADJUSTMENT_DAMAGE,
    AdjustmentType.EXPIRY: LogAction.ADJUSTMENT_EXPIRY,
    AdjustmentType.STAFF_MEAL: LogAction.ADJUSTMENT_STAFF_MEAL,
    AdjustmentType.OTHER: LogAction.ADJUSTMENT_OTHER,
}

ADJUSTMENT_PORTION_STATUSES = {
    AdjustmentType.SPOILAGE: PortionStatus.SPOILED,
    AdjustmentType.WASTE: PortionStatus.WASTED,
    AdjustmentType.THEFT: PortionStatus.STOLEN,
    AdjustmentType.MISSING: PortionStatus.MISSING,
    AdjustmentType.DAMAGE: PortionStatus.DAMAGED,
    AdjustmentType.EXPIRY: PortionStatus.EXPIRED,
    AdjustmentType.STAFF_MEAL: PortionStatus.CONSUMED,
    AdjustmentType.OTHER: PortionStatus.DAMAGED,
}

REASON_REQUIRED = frozenset({AdjustmentType.OTHER, AdjustmentType.MISSING})

ADJUSTMENT_ACTIONS = frozenset(ADJUSTMENT_LOG_ACTIONS.values())


class Batch(models.Model):
    # Fields that only the count correction path may rewrite.
    FROZEN_FIELDS = ("batch_number", "item_id", "branch_id", "quantity_received")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="batches")
    branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="batches")
    batch_number = models.PositiveIntegerField()
    label = models.CharField(max_length=128, blank=True, null=True)
    source = models.CharField(max_length=255, blank=True, null=True)
    source_batch = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        related_name="derived_batches",
        blank=True,
        null=True,
    )
    quantity_received = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)],
    )
    remaining_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)],
    )
    unit_cost = models.DecimalField(max_digits=12, decimal_places=4, blank=True, null=True)
    received_at = models.DateTimeField()
    expiration_date = models.DateField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "inventory_batch"
        ordering = ["received_at", "batch_number", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "item", "batch_number"],
                name="uq_inventory_batch_branch_item_number",
            )
        ]

    def __str__(self) -> str:
        return f"{self.item.code} B{self.batch_number} @ {self.branch.code}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._stored = {name: instance.__dict__.get(name) for name in cls.FROZEN_FIELDS}
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._stored = {name: getattr(self, name) for name in self.FROZEN_FIELDS}

    def save(self, *args, recount: bool = False, **kwargs):
        stored = getattr(self, "_stored", None)
        if stored:
            allowed = {"quantity_received"} if recount else set()
            changed = [
                name
                for name in self.FROZEN_FIELDS
                if name not in allowed
                and name in stored
                and stored[name] is not None
                and stored[name] != getattr(self, name)
            ]
            if changed:
                raise ImmutableFieldViolation(
                    f"Batch fields cannot change after creation: {', '.join(changed)}.",
                    {name: "immutable" for name in changed},
                )
        super().save(*args, **kwargs)
        self._stored = {name: getattr(self, name) for name in self.FROZEN_FIELDS}


class Portion(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="portions")
    current_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="portions")
    portion_number = models.PositiveIntegerField()
    label = models.CharField(max_length=128, unique=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    status = models.CharField(max_length=16, choices=PortionStatus.choices, default=PortionStatus.UNUSED)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "inventory_portion"
        ordering = ["batch", "portion_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "portion_number"],
                name="uq_inventory_portion_batch_number",
            )
        ]
        indexes = [
            models.Index(fields=["current_branch", "status"], name="idx_inv_portion_branch_status"),
        ]

    def __str__(self) -> str:
        return f"{self.label} [{self.status}]"

    def delete(self, *args, **kwargs):
        raise ImmutableFieldViolation("Portions are never deleted.")


class LedgerLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableFieldViolation("Ledger entries are append-only.")

    def delete(self):
        raise ImmutableFieldViolation("Ledger entries are append-only.")


class LedgerLog(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="logs")
    portion = models.ForeignKey(
        Portion,
        on_delete=models.PROTECT,
        related_name="logs",
        blank=True,
        null=True,
    )
    actor = models.ForeignKey(
        StaffMember,
        on_delete=models.SET_NULL,
        related_name="ledger_logs",
        blank=True,
        null=True,
    )
    sale = models.ForeignKey(
        "pos.Sale",
        on_delete=models.SET_NULL,
        related_name="ledger_logs",
        blank=True,
        null=True,
    )
    action = models.CharField(max_length=32, choices=LogAction.choices)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LedgerLogQuerySet.as_manager()

    class Meta:
        db_table = "inventory_ledger_log"
        ordering = ["-created_at", "id"]
        indexes = [
            models.Index(fields=["batch", "action"], name="idx_inv_log_batch_action"),
            models.Index(fields=["created_at"], name="idx_inv_log_created"),
        ]

    def __str__(self) -> str:
        return f"{self.action} on {self.batch_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableFieldViolation("Ledger entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableFieldViolation("Ledger entries are append-only.")
