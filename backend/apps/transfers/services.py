"""Transfer workflow between branches.

A transfer is created PENDING with its stock already taken out of the source
branch. Receiving resolves lines one by one and creates the stock at the
destination; cancelling or rejecting a pending transfer puts everything back.
"""

from __future__ import annotations

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from apps.core.models import Branch, StaffMember
from apps.inventory.errors import (
    InsufficientStock,
    InvalidQuantity,
    InvalidStateTransition,
    SameBranchTransfer,
    TransferNotPending,
    UnknownReference,
)
from apps.inventory.models import Batch, LogAction
from apps.inventory.quantities import ZERO, format_quantity, to_positive_quantity, to_quantity
from apps.inventory.services import accounting
from apps.inventory.services.access import require_branch_access
from apps.inventory.stock import stock_request
from apps.transfers.models import ACCEPTED_RECEPTIONS, ReceptionStatus, Transfer, TransferItem, TransferStatus

logger = logging.getLogger(__name__)


def lock_transfer(transfer_id) -> Transfer:
    try:
        return Transfer.objects.select_for_update().select_related(
            "source_branch",
            "destination_branch",
        ).get(pk=transfer_id)
    except (Transfer.DoesNotExist, DjangoValidationError) as exc:
        raise UnknownReference("Transfer not found.", {"transfer": str(transfer_id)}) from exc


def _require_pending(transfer: Transfer) -> None:
    if transfer.status != TransferStatus.PENDING:
        raise TransferNotPending(
            f"Transfer is {transfer.status}; only pending transfers can change.",
            {"status": transfer.status},
        )


def _dispatch_measure_fifo(item, quantity, transfer, actor) -> list[TransferItem]:
    amount = to_positive_quantity(quantity)
    candidates = Batch.objects.filter(item=item, branch=transfer.source_branch, remaining_quantity__gt=ZERO)
    batches = sorted(
        accounting.lock_batches(candidates.values_list("id", flat=True)).values(),
        key=accounting.fifo_key,
    )
    available = sum((batch.remaining_quantity for batch in batches), ZERO)
    if available < amount:
        raise InsufficientStock(
            f"Only {available} {item.unit} of {item.code} available at {transfer.source_branch.code}.",
            {"quantity": f"available {format_quantity(available)}"},
        )
    lines = []
    outstanding = amount
    for batch in batches:
        if outstanding <= ZERO:
            break
        take = min(outstanding, batch.remaining_quantity)
        accounting.dispatch_measure(batch.id, item, take, transfer, actor)
        lines.append(TransferItem(transfer=transfer, item=item, batch=batch, quantity=take))
        outstanding -= take
    return lines


def _dispatch_line(line: dict, transfer: Transfer, actor) -> list[TransferItem]:
    item = line["item"]
    if item.is_portioned:
        portion_ids = line.get("portion_ids")
        if portion_ids:
            portions = accounting.dispatch_portions(portion_ids, item, transfer, actor)
        else:
            if line.get("quantity") is None:
                raise InvalidQuantity("portion_ids or quantity is required.", {"portion_ids": "required"})
            request = stock_request(item, quantity=line["quantity"])
            selected = accounting.select_oldest_portions(item, transfer.source_branch, request.count)
            portions = accounting.dispatch_portions([p.id for p in selected], item, transfer, actor)
        return [
            TransferItem(transfer=transfer, item=item, batch=portion.batch, portion=portion, quantity=1)
            for portion in portions
        ]

    if line.get("portion_ids"):
        raise InvalidQuantity(f"{item.code} is tracked by measure.", {"portion_ids": "not allowed"})
    if line.get("quantity") is None:
        raise InvalidQuantity("quantity is required.", {"quantity": "required"})
    if line.get("batch_id"):
        batch, amount = accounting.dispatch_measure(line["batch_id"], item, line["quantity"], transfer, actor)
        return [TransferItem(transfer=transfer, item=item, batch=batch, quantity=amount)]
    return _dispatch_measure_fifo(item, line["quantity"], transfer, actor)


@transaction.atomic
def create_transfer(
    source: Branch,
    destination: Branch,
    lines: list[dict],
    actor: StaffMember,
    notes: str | None = None,
) -> Transfer:
    """Reserve stock at ``source`` for delivery to ``destination``.

    Each line is ``{"item", "quantity"}`` plus optionally ``"batch_id"`` for
    measured items or ``"portion_ids"`` for portioned items. Measured lines
    without a batch are split across batches oldest first.
    """
    if source.id == destination.id:
        raise SameBranchTransfer("Source and destination must differ.", {"destination_branch": "same as source"})
    require_branch_access(actor, source.id, "send transfers")
    if not lines:
        raise InvalidQuantity("A transfer needs at least one line.", {"items": "required"})

    transfer = Transfer.objects.create(
        source_branch=source,
        destination_branch=destination,
        sent_by=actor,
        notes=notes,
        sent_at=timezone.now(),
    )
    items = []
    for line in lines:
        items.extend(_dispatch_line(line, transfer, actor))
    TransferItem.objects.bulk_create(items)

    logger.info(
        "Transfer %s created %s -> %s with %d lines",
        transfer.id,
        source.code,
        destination.code,
        len(items),
    )
    return transfer


def _resolve_receptions(transfer: Transfer, receptions) -> list[tuple[TransferItem, dict]]:
    lines = {str(line.id): line for line in transfer.items.select_for_update().order_by("id")}
    resolved = []
    seen = set()
    for reception in receptions:
        line_id = str(reception["item_line"])
        line = lines.get(line_id)
        if line is None:
            raise UnknownReference("Transfer line not found.", {"item_line": line_id})
        if line_id in seen:
            raise InvalidQuantity("Each line may be received once per request.", {"item_line": line_id})
        seen.add(line_id)
        if line.is_resolved:
            raise InvalidStateTransition(
                f"Transfer line is already {line.reception_status}.",
                {"item_line": line_id},
            )
        status = reception["status"]
        if status == ReceptionStatus.PENDING:
            raise InvalidStateTransition("A line cannot be received as pending.", {"item_line": line_id})
        resolved.append((line, reception))
    return resolved


def _received_quantity(line: TransferItem, reception: dict):
    if line.portion_id:
        return line.quantity
    raw = reception.get("received_quantity")
    received = line.quantity if raw is None else to_quantity(raw, "received_quantity")
    if received < ZERO or received > line.quantity:
        raise InvalidQuantity(
            f"received_quantity must be between 0 and {line.quantity}.",
            {str(line.id): f"maximum {format_quantity(line.quantity)}"},
        )
    return received


@transaction.atomic
def receive_transfer(transfer_id, receptions: list[dict], actor: StaffMember) -> Transfer:
    """Resolve transfer lines at the destination.

    ``receptions`` holds ``{"item_line", "status", "received_quantity", "notes"}``
    entries. A measured line received short is recorded as
    ``RECEIVED_WITH_ISSUES``. Lines not mentioned stay pending; the transfer
    completes once no line is pending, even when every line was rejected.
    """
    transfer = lock_transfer(transfer_id)
    _require_pending(transfer)
    require_branch_access(actor, transfer.destination_branch_id, "receive transfers")
    if not receptions:
        raise InvalidQuantity("At least one line must be received.", {"receptions": "required"})

    accepted_portion_lines = []
    for line, reception in _resolve_receptions(transfer, receptions):
        status = reception["status"]
        notes = reception.get("notes")
        if status in ACCEPTED_RECEPTIONS:
            line.received_quantity = _received_quantity(line, reception)
            if line.received_quantity < line.quantity:
                status = ReceptionStatus.RECEIVED_WITH_ISSUES
            if line.portion_id:
                accepted_portion_lines.append(line)
            else:
                line.destination_batch = accounting.deliver_measure(
                    line.batch_id,
                    line.received_quantity,
                    line.quantity,
                    transfer,
                    actor,
                )
        else:
            line.received_quantity = ZERO
            if line.portion_id:
                accounting.return_portions([line.portion_id], transfer, actor, LogAction.TRANSFER_REJECTED, notes)
            else:
                accounting.return_measure(
                    line.batch_id,
                    line.quantity,
                    transfer,
                    actor,
                    LogAction.TRANSFER_REJECTED,
                    notes,
                )
        line.reception_status = status
        line.reception_notes = notes
        line.save(update_fields=["reception_status", "received_quantity", "reception_notes", "destination_batch"])

    if accepted_portion_lines:
        destination_batches = accounting.deliver_portions(
            [line.portion_id for line in accepted_portion_lines],
            transfer,
            actor,
        )
        for line in accepted_portion_lines:
            line.destination_batch = destination_batches[line.batch_id]
            line.save(update_fields=["destination_batch"])

    if not transfer.items.filter(reception_status=ReceptionStatus.PENDING).exists():
        transfer.status = TransferStatus.COMPLETED
        transfer.received_at = timezone.now()
        transfer.received_by = actor
        transfer.save(update_fields=["status", "received_at", "received_by", "updated_at"])
        logger.info("Transfer %s closed as %s", transfer.id, transfer.status)
    return transfer


def _reverse_all(transfer: Transfer, actor, action: str, reason) -> list[TransferItem]:
    lines = list(transfer.items.select_for_update().order_by("id"))
    if any(line.is_resolved for line in lines):
        raise TransferNotPending(
            "Transfer has lines already received and can no longer be reversed.",
            {"items": "partially received"},
        )
    portion_ids = [line.portion_id for line in lines if line.portion_id]
    if portion_ids:
        accounting.return_portions(portion_ids, transfer, actor, action, reason)
    for line in lines:
        if not line.portion_id:
            accounting.return_measure(line.batch_id, line.quantity, transfer, actor, action, reason)
    return lines


@transaction.atomic
def cancel_transfer(transfer_id, actor: StaffMember, reason: str | None = None) -> Transfer:
    transfer = lock_transfer(transfer_id)
    _require_pending(transfer)
    require_branch_access(actor, transfer.source_branch_id, "cancel transfers")
    _reverse_all(transfer, actor, LogAction.TRANSFER_CANCELLED, reason)
    transfer.status = TransferStatus.CANCELLED
    transfer.save(update_fields=["status", "updated_at"])
    logger.info("Transfer %s cancelled", transfer.id)
    return transfer


@transaction.atomic
def reject_transfer(transfer_id, actor: StaffMember, reason: str | None = None) -> Transfer:
    transfer = lock_transfer(transfer_id)
    _require_pending(transfer)
    require_branch_access(actor, transfer.destination_branch_id, "reject transfers")
    lines = _reverse_all(transfer, actor, LogAction.TRANSFER_REJECTED, reason)
    for line in lines:
        line.reception_status = ReceptionStatus.REJECTED
        line.received_quantity = ZERO
        line.reception_notes = reason
        line.save(update_fields=["reception_status", "received_quantity", "reception_notes"])
    transfer.status = TransferStatus.REJECTED
    transfer.received_at = timezone.now()
    transfer.received_by = actor
    transfer.save(update_fields=["status", "received_at", "received_by", "updated_at"])
    logger.info("Transfer %s rejected", transfer.id)
    return transfer
