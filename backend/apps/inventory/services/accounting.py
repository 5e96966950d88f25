"""Stock accounting engine.

The only code allowed to change ``Batch.remaining_quantity`` or
``Portion.status``. Each public function runs in one ``transaction.atomic``
block, locks every batch and portion row it reads before validating, and
writes a ledger entry for each change. Business failures raise a
``LedgerError`` subclass from inside the block so nothing partial is kept.

Batch rows are always locked before portion rows, ordered by primary key.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from apps.catalog.models import InventoryItem
from apps.core.models import Branch, StaffMember
from apps.inventory import log_details
from apps.inventory.errors import (
    CrossBranchMismatch,
    CrossItemMismatch,
    ImmutableFieldViolation,
    InsufficientStock,
    InvalidQuantity,
    UnknownReference,
)
from apps.inventory.models import (
    ADJUSTMENT_ACTIONS,
    AdjustmentType,
    Batch,
    LedgerLog,
    LogAction,
    Portion,
    PortionStatus,
)
from apps.inventory.quantities import ZERO, format_quantity, to_portion_count, to_positive_quantity, to_quantity
from apps.inventory.services import ledger
from apps.inventory.services.access import clean_reason, require_branch_access, require_elevated
from apps.inventory.stock import Measured, stock_request
from apps.inventory.transitions import Trigger, apply_transition

logger = logging.getLogger(__name__)


def fifo_key(batch: Batch):
    return (batch.received_at, batch.batch_number, str(batch.id))


def lock_batch(batch_id) -> Batch:
    try:
        return Batch.objects.select_for_update().select_related("item", "branch").get(pk=batch_id)
    except (Batch.DoesNotExist, DjangoValidationError) as exc:
        raise UnknownReference("Batch not found.", {"batch": str(batch_id)}) from exc


def lock_batches(batch_ids) -> dict:
    batches = Batch.objects.select_for_update().select_related("item", "branch").filter(id__in=set(batch_ids))
    return {batch.id: batch for batch in batches.order_by("id")}


def lock_portions(portion_ids) -> tuple[dict, list[Portion]]:
    """Lock the portions and their batches, returning ``(batches_by_id, portions)``.

    Portions come back in the order of ``portion_ids``.
    """
    try:
        wanted = [str(uuid.UUID(str(pid))) for pid in portion_ids]
    except ValueError as exc:
        raise UnknownReference("Portion not found.", {"portion_ids": "invalid id"}) from exc
    batch_ids = set(Portion.objects.filter(id__in=wanted).values_list("batch_id", flat=True))
    batches = lock_batches(batch_ids)
    locked = {
        str(portion.id): portion
        for portion in Portion.objects.select_for_update().filter(id__in=wanted).order_by("id")
    }
    missing = [pid for pid in wanted if pid not in locked]
    if missing:
        raise UnknownReference("Portion not found.", {"portion_ids": missing})
    portions = [locked[pid] for pid in wanted]
    for portion in portions:
        portion.batch = batches[portion.batch_id]
    return batches, portions


def sync_portion_counter(batch: Batch) -> None:
    batch.remaining_quantity = Decimal(batch.portions.filter(status=PortionStatus.UNUSED).count())
    batch.save(update_fields=["remaining_quantity", "updated_at"])


def _check_portions(portions, item: InventoryItem, branch_id) -> None:
    for portion in portions:
        if portion.batch.item_id != item.id:
            raise CrossItemMismatch(
                f"Portion {portion.label} does not belong to {item.code}.",
                {"portion_ids": str(portion.id)},
            )
        if portion.current_branch_id != branch_id:
            raise CrossBranchMismatch(
                f"Portion {portion.label} is not held by this branch.",
                {"portion_ids": str(portion.id)},
            )


def _check_batch(batch: Batch, item: InventoryItem, branch_id) -> None:
    if batch.item_id != item.id:
        raise CrossItemMismatch(f"Batch does not belong to {item.code}.", {"batch": str(batch.id)})
    if batch.branch_id != branch_id:
        raise CrossBranchMismatch("Batch is not held by this branch.", {"batch": str(batch.id)})


def _decrement(batch: Batch, quantity: Decimal) -> tuple[Decimal, Decimal]:
    if quantity > batch.remaining_quantity:
        raise InsufficientStock(
            f"Batch B{batch.batch_number} has only {batch.remaining_quantity} {batch.item.unit} left.",
            {"quantity": f"available {format_quantity(batch.remaining_quantity)}"},
        )
    before = batch.remaining_quantity
    batch.remaining_quantity = before - quantity
    batch.save(update_fields=["remaining_quantity", "updated_at"])
    return before, batch.remaining_quantity


def _next_batch_number(item: InventoryItem, branch: Branch) -> int:
    # The item row lock serialises numbering across concurrent receipts.
    InventoryItem.objects.select_for_update().filter(pk=item.pk).first()
    current = Batch.objects.filter(item=item, branch=branch).aggregate(top=Max("batch_number"))["top"]
    return (current or 0) + 1


def create_batch(
    item: InventoryItem,
    branch: Branch,
    quantity_received,
    *,
    unit_cost=None,
    received_at: datetime | None = None,
    expiration_date: date | None = None,
    source: str | None = None,
    label: str | None = None,
    source_batch: Batch | None = None,
    portion_size=None,
) -> Batch:
    """Insert a batch and, for portioned items, its UNUSED portions. Caller logs."""
    if item.is_portioned:
        quantity = Decimal(to_portion_count(quantity_received, "quantity_received"))
    else:
        quantity = to_positive_quantity(quantity_received, "quantity_received")

    batch_number = _next_batch_number(item, branch)
    batch = Batch.objects.create(
        item=item,
        branch=branch,
        batch_number=batch_number,
        label=label,
        source=source,
        source_batch=source_batch,
        quantity_received=quantity,
        remaining_quantity=quantity,
        unit_cost=unit_cost,
        received_at=received_at or timezone.now(),
        expiration_date=expiration_date,
    )
    if item.is_portioned:
        size = to_positive_quantity(portion_size, "portion_size") if portion_size is not None else None
        Portion.objects.bulk_create(
            [
                Portion(
                    batch=batch,
                    current_branch=branch,
                    portion_number=number,
                    label=f"{item.code}-{branch.code}-B{batch_number}-{number:02d}",
                    quantity=size,
                    status=PortionStatus.UNUSED,
                )
                for number in range(1, int(quantity) + 1)
            ]
        )
    return batch


@transaction.atomic
def receive_batch(
    item: InventoryItem,
    branch: Branch,
    quantity_received,
    actor: StaffMember,
    **options,
) -> Batch:
    require_branch_access(actor, branch.id, "receive stock")
    batch = create_batch(item, branch, quantity_received, **options)
    portions_created = batch.portions.count() if item.is_portioned else 0
    ledger.append(
        batch,
        LogAction.BATCH_CREATED,
        {
            "v": log_details.PAYLOAD_VERSION,
            "quantity_received": format_quantity(batch.quantity_received),
            "unit": item.unit,
            "portions_created": portions_created,
            "source": batch.source,
        },
        actor=actor,
    )
    logger.info(
        "Received batch %s B%s at %s: %s %s",
        item.code,
        batch.batch_number,
        branch.code,
        batch.quantity_received,
        item.unit,
    )
    return batch


def _deduct_measured(item, branch, actor, quantity: Decimal, sale) -> list[LedgerLog]:
    candidates = Batch.objects.filter(item=item, branch=branch, remaining_quantity__gt=ZERO)
    batches = sorted(lock_batches(candidates.values_list("id", flat=True)).values(), key=fifo_key)
    available = sum((batch.remaining_quantity for batch in batches), ZERO)
    if available < quantity:
        raise InsufficientStock(
            f"Only {available} {item.unit} of {item.code} available at {branch.code}.",
            {"quantity": f"available {format_quantity(available)}"},
        )

    logs = []
    outstanding = quantity
    for batch in batches:
        if outstanding <= ZERO:
            break
        take = min(outstanding, batch.remaining_quantity)
        if take <= ZERO:
            continue
        before, after = _decrement(batch, take)
        outstanding -= take
        logs.append(
            ledger.append(
                batch,
                LogAction.DEDUCTED_FOR_SALE,
                log_details.movement(
                    -take,
                    item.unit,
                    original_quantity=format_quantity(before),
                    new_quantity=format_quantity(after),
                    sale_id=str(sale.id) if sale else None,
                ),
                actor=actor,
                sale=sale,
            )
        )
    return logs


def select_oldest_portions(item, branch, count: int) -> list[Portion]:
    candidates = Batch.objects.filter(item=item, branch=branch, remaining_quantity__gt=ZERO)
    lock_batches(candidates.values_list("id", flat=True))
    portions = list(
        Portion.objects.select_for_update()
        .select_related("batch")
        .filter(batch__item=item, current_branch=branch, status=PortionStatus.UNUSED)
        .order_by("batch__received_at", "batch__batch_number", "portion_number")[:count]
    )
    if len(portions) < count:
        raise InsufficientStock(
            f"Only {len(portions)} portions of {item.code} available at {branch.code}.",
            {"quantity": f"available {len(portions)}"},
        )
    return portions


def _consume_portions(portions, trigger, to_status, action, actor, sale=None, **extra) -> list[LedgerLog]:
    logs = []
    touched = {}
    for portion in portions:
        previous = apply_transition(portion, trigger, to_status)
        portion.save(update_fields=["status", "updated_at"])
        touched[portion.batch_id] = portion.batch
        logs.append(
            ledger.append(
                portion.batch,
                action,
                log_details.portion_change(
                    portion,
                    previous,
                    to_status,
                    quantity_change="-1.00",
                    sale_id=str(sale.id) if sale else None,
                    **extra,
                ),
                actor=actor,
                portion=portion,
                sale=sale,
            )
        )
    for batch in touched.values():
        sync_portion_counter(batch)
    return logs


@transaction.atomic
def deduct_for_sale(
    item: InventoryItem,
    branch: Branch,
    actor: StaffMember,
    *,
    quantity=None,
    portion_ids=None,
    sale=None,
) -> list[LedgerLog]:
    require_branch_access(actor, branch.id, "record sales")
    request = stock_request(item, quantity, portion_ids)

    if isinstance(request, Measured):
        logs = _deduct_measured(item, branch, actor, request.quantity, sale)
    else:
        if request.is_explicit:
            _, portions = lock_portions(request.portion_ids)
            _check_portions(portions, item, branch.id)
        else:
            portions = select_oldest_portions(item, branch, request.count)
        logs = _consume_portions(
            portions,
            Trigger.SALE,
            PortionStatus.USED,
            LogAction.DEDUCTED_FOR_SALE,
            actor,
            sale=sale,
        )

    logger.info("Deducted %s for sale at %s (%d ledger entries)", item.code, branch.code, len(logs))
    return logs


@transaction.atomic
def record_adjustment(
    adjustment_type,
    item: InventoryItem,
    branch: Branch,
    actor: StaffMember,
    *,
    batch_id=None,
    quantity=None,
    portion_ids=None,
    reason: str | None = None,
) -> list[LedgerLog]:
    adjustment_type = AdjustmentType(adjustment_type)
    reason = clean_reason(reason, adjustment_type.requires_reason())
    require_branch_access(actor, branch.id, "adjust stock")
    action = adjustment_type.to_log_action()

    if item.is_portioned and not portion_ids:
        raise InvalidQuantity("portion_ids are required for portioned items.", {"portion_ids": "required"})
    request = stock_request(item, quantity, portion_ids)

    if isinstance(request, Measured):
        if batch_id is None:
            raise UnknownReference("batch is required for measured items.", {"batch": "required"})
        batch = lock_batch(batch_id)
        _check_batch(batch, item, branch.id)
        before, after = _decrement(batch, request.quantity)
        logs = [
            ledger.append(
                batch,
                action,
                log_details.movement(
                    -request.quantity,
                    item.unit,
                    original_quantity=format_quantity(before),
                    new_quantity=format_quantity(after),
                    adjustment_type=adjustment_type.value,
                    reason=reason,
                ),
                actor=actor,
            )
        ]
    else:
        _, portions = lock_portions(request.portion_ids)
        _check_portions(portions, item, branch.id)
        logs = _consume_portions(
            portions,
            Trigger.ADJUSTMENT,
            adjustment_type.to_portion_status(),
            action,
            actor,
            adjustment_type=adjustment_type.value,
            reason=reason,
        )

    logger.info("Recorded %s adjustment of %s at %s", adjustment_type.value, item.code, branch.code)
    return logs


@transaction.atomic
def correct_batch_count(batch_id, corrected_quantity, reason: str | None, actor: StaffMember) -> LedgerLog:
    require_elevated(actor, "correct batch counts")
    reason = clean_reason(reason, True)
    batch = lock_batch(batch_id)
    require_branch_access(actor, batch.branch_id, "correct batch counts")
    if batch.item.is_portioned:
        raise ImmutableFieldViolation(
            "Portioned batches keep their received count; adjust individual portions instead.",
            {"quantity_received": "immutable for portioned items"},
        )

    corrected = to_quantity(corrected_quantity, "corrected_quantity")
    if corrected < ZERO:
        raise InvalidQuantity("corrected_quantity cannot be negative.", {"corrected_quantity": "negative"})

    delta = corrected - batch.quantity_received
    new_remaining = batch.remaining_quantity + delta
    if new_remaining < ZERO:
        raise InsufficientStock(
            "Correction would leave the batch with negative remaining stock.",
            {"corrected_quantity": f"minimum {format_quantity(batch.quantity_received - batch.remaining_quantity)}"},
        )

    details = log_details.movement(
        delta,
        batch.item.unit,
        previous_quantity_received=format_quantity(batch.quantity_received),
        new_quantity_received=format_quantity(corrected),
        previous_remaining=format_quantity(batch.remaining_quantity),
        new_remaining=format_quantity(new_remaining),
        reason=reason,
    )
    batch.quantity_received = corrected
    batch.remaining_quantity = new_remaining
    batch.save(recount=True, update_fields=["quantity_received", "remaining_quantity", "updated_at"])
    log = ledger.append(batch, LogAction.BATCH_COUNT_CORRECTED, details, actor=actor)
    logger.info("Corrected count of batch %s to %s", batch.id, corrected)
    return log


def _latest_adjustment(portion: Portion) -> LedgerLog | None:
    return (
        LedgerLog.objects.filter(portion=portion, action__in=ADJUSTMENT_ACTIONS)
        .order_by("-created_at")
        .first()
    )


@transaction.atomic
def restore_portions(portion_ids, reason: str | None, actor: StaffMember) -> list[LedgerLog]:
    require_elevated(actor, "restore portions")
    reason = clean_reason(reason, True)
    if not portion_ids:
        raise InvalidQuantity("portion_ids are required.", {"portion_ids": "required"})
    _, portions = lock_portions(portion_ids)

    logs = []
    touched = {}
    for portion in portions:
        require_branch_access(actor, portion.current_branch_id, "restore portions")
        original = _latest_adjustment(portion)
        previous = apply_transition(portion, Trigger.RESTORE, PortionStatus.RESTORED)
        apply_transition(portion, Trigger.REACTIVATE, PortionStatus.UNUSED)
        portion.save(update_fields=["status", "updated_at"])
        touched[portion.batch_id] = portion.batch
        original_adjustment = None
        if original is not None:
            original_adjustment = {
                "log_id": str(original.id),
                "action": original.action,
                "reason": original.details.get("reason"),
            }
        logs.append(
            ledger.append(
                portion.batch,
                LogAction.PORTION_RESTORED,
                log_details.portion_change(
                    portion,
                    previous,
                    PortionStatus.UNUSED,
                    quantity_change="1.00",
                    reason=reason,
                    original_adjustment=original_adjustment,
                ),
                actor=actor,
                portion=portion,
            )
        )
    for batch in touched.values():
        sync_portion_counter(batch)

    logger.info("Restored %d portions", len(logs))
    return logs


@transaction.atomic
def restore_quantity(batch_id, amounts_by_log_id: dict, reason: str | None, actor: StaffMember) -> LedgerLog:
    require_elevated(actor, "restore quantities")
    reason = clean_reason(reason, True)
    if not amounts_by_log_id:
        raise InvalidQuantity("At least one adjustment entry is required.", {"amounts": "required"})
    batch = lock_batch(batch_id)
    require_branch_access(actor, batch.branch_id, "restore quantities")
    if batch.item.is_portioned:
        raise InvalidQuantity(
            "Portioned batches are restored portion by portion.",
            {"batch": "portioned item"},
        )

    try:
        wanted = {str(uuid.UUID(str(log_id))): amount for log_id, amount in amounts_by_log_id.items()}
    except ValueError as exc:
        raise UnknownReference("Adjustment entry not found.", {"amounts": "invalid id"}) from exc
    sources = {
        str(log.id): log
        for log in batch.logs.filter(id__in=list(wanted), action__in=ADJUSTMENT_ACTIONS)
    }
    missing = [log_id for log_id in wanted if log_id not in sources]
    if missing:
        raise UnknownReference(
            "Adjustment entries not found on this batch.",
            {"amounts": missing},
        )

    already = log_details.restored_by_source(batch.logs.filter(action=LogAction.QUANTITY_RESTORED))
    total = ZERO
    restored = []
    for log_id, raw_amount in wanted.items():
        amount = to_positive_quantity(raw_amount, "amount")
        log = sources[log_id]
        available = log_details.deducted_amount(log.details) - already.get(log_id, ZERO)
        if amount > available:
            raise InvalidQuantity(
                f"At most {format_quantity(max(available, ZERO))} can be restored from this entry.",
                {log_id: f"maximum {format_quantity(max(available, ZERO))}"},
            )
        total += amount
        restored.append({"log_id": log_id, "action": log.action, "amount": format_quantity(amount)})

    if batch.remaining_quantity + total > batch.quantity_received:
        raise InvalidQuantity(
            "Restoring would exceed the quantity received.",
            {"amounts": f"maximum {format_quantity(batch.quantity_received - batch.remaining_quantity)}"},
        )

    before = batch.remaining_quantity
    batch.remaining_quantity = before + total
    batch.save(update_fields=["remaining_quantity", "updated_at"])
    log = ledger.append(
        batch,
        LogAction.QUANTITY_RESTORED,
        log_details.movement(
            total,
            batch.item.unit,
            original_quantity=format_quantity(before),
            new_quantity=format_quantity(batch.remaining_quantity),
            reason=reason,
            sources=restored,
        ),
        actor=actor,
    )
    logger.info("Restored %s to batch %s from %d entries", total, batch.id, len(restored))
    return log


# Transfer support. These run inside the transfer workflow's transaction.


def dispatch_measure(batch_id, item: InventoryItem, quantity, transfer, actor) -> tuple[Batch, Decimal]:
    batch = lock_batch(batch_id)
    _check_batch(batch, item, transfer.source_branch_id)
    amount = to_positive_quantity(quantity)
    before, after = _decrement(batch, amount)
    ledger.append(
        batch,
        LogAction.TRANSFER_INITIATED,
        log_details.movement(
            -amount,
            item.unit,
            original_quantity=format_quantity(before),
            new_quantity=format_quantity(after),
            transfer_id=str(transfer.id),
            destination_branch=transfer.destination_branch.code,
        ),
        actor=actor,
    )
    return batch, amount


def dispatch_portions(portion_ids, item: InventoryItem, transfer, actor) -> list[Portion]:
    _, portions = lock_portions(portion_ids)
    _check_portions(portions, item, transfer.source_branch_id)
    _consume_portions(
        portions,
        Trigger.TRANSFER_DISPATCH,
        PortionStatus.IN_TRANSIT,
        LogAction.TRANSFER_INITIATED,
        actor,
        transfer_id=str(transfer.id),
        destination_branch=transfer.destination_branch.code,
    )
    return portions


def return_measure(batch_id, quantity: Decimal, transfer, actor, action: str, reason=None) -> Batch:
    batch = lock_batch(batch_id)
    before = batch.remaining_quantity
    batch.remaining_quantity = before + quantity
    batch.save(update_fields=["remaining_quantity", "updated_at"])
    ledger.append(
        batch,
        action,
        log_details.movement(
            quantity,
            batch.item.unit,
            original_quantity=format_quantity(before),
            new_quantity=format_quantity(batch.remaining_quantity),
            transfer_id=str(transfer.id),
            reason=reason,
        ),
        actor=actor,
    )
    return batch


def return_portions(portion_ids, transfer, actor, action: str, reason=None) -> list[Portion]:
    _, portions = lock_portions(portion_ids)
    touched = {}
    for portion in portions:
        previous = apply_transition(portion, Trigger.TRANSFER_RETURN, PortionStatus.UNUSED)
        portion.save(update_fields=["status", "updated_at"])
        touched[portion.batch_id] = portion.batch
        ledger.append(
            portion.batch,
            action,
            log_details.portion_change(
                portion,
                previous,
                PortionStatus.UNUSED,
                quantity_change="1.00",
                transfer_id=str(transfer.id),
                reason=reason,
            ),
            actor=actor,
            portion=portion,
        )
    for batch in touched.values():
        sync_portion_counter(batch)
    return portions


def _transfer_source_text(transfer) -> str:
    return f"Transfer from {transfer.source_branch.code} ({transfer.id})"


def deliver_measure(source_batch_id, received_quantity: Decimal, sent_quantity: Decimal, transfer, actor) -> Batch | None:
    source_batch = lock_batch(source_batch_id)
    destination_batch = None
    if received_quantity > ZERO:
        destination_batch = create_batch(
            source_batch.item,
            transfer.destination_branch,
            received_quantity,
            unit_cost=source_batch.unit_cost,
            expiration_date=source_batch.expiration_date,
            source=_transfer_source_text(transfer),
            label=source_batch.label,
            source_batch=source_batch,
        )
        ledger.append(
            destination_batch,
            LogAction.TRANSFER_RECEIVED,
            log_details.movement(
                received_quantity,
                source_batch.item.unit,
                transfer_id=str(transfer.id),
                source_batch_id=str(source_batch.id),
            ),
            actor=actor,
        )
    shortfall = sent_quantity - received_quantity
    if shortfall > ZERO:
        ledger.append(
            source_batch,
            LogAction.TRANSFER_SHORTFALL,
            {
                "v": log_details.PAYLOAD_VERSION,
                "quantity_sent": format_quantity(sent_quantity),
                "quantity_received": format_quantity(received_quantity),
                "quantity_lost": format_quantity(shortfall),
                "unit": source_batch.item.unit,
                "transfer_id": str(transfer.id),
            },
            actor=actor,
        )
        logger.warning("Transfer %s lost %s of batch %s in transit", transfer.id, shortfall, source_batch.id)
    return destination_batch


def deliver_portions(portion_ids, transfer, actor) -> dict:
    """Mark in-transit portions delivered and rebuild them at the destination.

    Received portions are grouped by their source batch; each group becomes one
    new destination batch holding the same number of fresh UNUSED portions.
    Returns the destination batches keyed by source batch id.
    """
    _, portions = lock_portions(portion_ids)
    groups = defaultdict(list)
    for portion in portions:
        apply_transition(portion, Trigger.TRANSFER_DELIVERY, PortionStatus.TRANSFERRED)
        portion.current_branch = transfer.destination_branch
        portion.save(update_fields=["status", "current_branch", "updated_at"])
        groups[portion.batch_id].append(portion)

    destination_batches = {}
    for source_batch_id in sorted(groups, key=str):
        group = groups[source_batch_id]
        source_batch = group[0].batch
        destination_batch = create_batch(
            source_batch.item,
            transfer.destination_branch,
            len(group),
            unit_cost=source_batch.unit_cost,
            expiration_date=source_batch.expiration_date,
            source=_transfer_source_text(transfer),
            label=source_batch.label,
            source_batch=source_batch,
            portion_size=group[0].quantity,
        )
        for portion in group:
            ledger.append(
                destination_batch,
                LogAction.TRANSFER_RECEIVED,
                log_details.portion_change(
                    portion,
                    PortionStatus.IN_TRANSIT,
                    PortionStatus.TRANSFERRED,
                    quantity_change="1.00",
                    transfer_id=str(transfer.id),
                    source_batch_id=str(source_batch.id),
                ),
                actor=actor,
                portion=portion,
            )
        destination_batches[source_batch_id] = destination_batch
    return destination_batches
