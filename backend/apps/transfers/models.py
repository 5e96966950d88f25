import uuid

from django.db import models

from apps.catalog.models import InventoryItem
from apps.core.models import Branch, StaffMember
from apps.inventory.models import Batch, Portion


class TransferStatus(models.TextChoices):
    PENDING = "pending", "pending"
    COMPLETED = "completed", "completed"
    CANCELLED = "cancelled", "cancelled"
    REJECTED = "rejected", "rejected"


class ReceptionStatus(models.TextChoices):
    PENDING = "pending", "pending"
    RECEIVED = "received", "received"
    RECEIVED_WITH_ISSUES = "received_with_issues", "received with issues"
    REJECTED = "rejected", "rejected"


ACCEPTED_RECEPTIONS = frozenset({ReceptionStatus.RECEIVED, ReceptionStatus.RECEIVED_WITH_ISSUES})


class Transfer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="outgoing_transfers")
    destination_branch = models.ForeignKey(Branch, on_delete=models.PROTECT, related_name="incoming_transfers")
    sent_by = models.ForeignKey(
        StaffMember,
        on_delete=models.SET_NULL,
        related_name="sent_transfers",
        blank=True,
        null=True,
    )
    received_by = models.ForeignKey(
        StaffMember,
        on_delete=models.SET_NULL,
        related_name="received_transfers",
        blank=True,
        null=True,
    )
    status = models.CharField(max_length=16, choices=TransferStatus.choices, default=TransferStatus.PENDING)
    notes = models.TextField(blank=True, null=True)
    sent_at = models.DateTimeField()
    received_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "transfers_transfer"
        ordering = ["-sent_at"]

    def __str__(self) -> str:
        return f"{self.source_branch.code} -> {self.destination_branch.code} [{self.status}]"


class TransferItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    transfer = models.ForeignKey(Transfer, on_delete=models.CASCADE, related_name="items")
    item = models.ForeignKey(InventoryItem, on_delete=models.PROTECT, related_name="transfer_items")
    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="transfer_items")
    portion = models.ForeignKey(
        Portion,
        on_delete=models.PROTECT,
        related_name="transfer_items",
        blank=True,
        null=True,
    )
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    reception_status = models.CharField(
        max_length=24,
        choices=ReceptionStatus.choices,
        default=ReceptionStatus.PENDING,
    )
    received_quantity = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    reception_notes = models.TextField(blank=True, null=True)
    destination_batch = models.ForeignKey(
        Batch,
        on_delete=models.SET_NULL,
        related_name="incoming_transfer_items",
        blank=True,
        null=True,
    )

    class Meta:
        db_table = "transfers_transfer_item"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.quantity} x {self.item.code} [{self.reception_status}]"

    @property
    def is_resolved(self) -> bool:
        return self.reception_status != ReceptionStatus.PENDING
