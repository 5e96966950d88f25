"""Read-only stock queries. Nothing here writes."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.db.models import Sum
from django.utils import timezone

from apps.catalog.models import BranchStocking, InventoryItem
from apps.core.models import Branch
from apps.inventory import log_details
from apps.inventory.models import ADJUSTMENT_ACTIONS, Batch, LogAction, Portion, PortionStatus
from apps.inventory.quantities import ZERO

OUT_OF_STOCK = "out_of_stock"
LOW_STOCK = "low_stock"
IN_STOCK = "in_stock"


def current_stock(item: InventoryItem, branch: Branch) -> Decimal:
    if item.is_portioned:
        count = Portion.objects.filter(
            batch__item=item,
            current_branch=branch,
            status=PortionStatus.UNUSED,
        ).count()
        return Decimal(count)
    total = Batch.objects.filter(item=item, branch=branch).aggregate(total=Sum("remaining_quantity"))["total"]
    return total or ZERO


def classify(stock: Decimal, threshold: Decimal) -> str:
    if stock <= ZERO:
        return OUT_OF_STOCK
    if threshold > ZERO and stock <= threshold:
        return LOW_STOCK
    return IN_STOCK


def low_stock_threshold(item: InventoryItem, branch: Branch) -> Decimal:
    stocking = BranchStocking.objects.filter(item=item, branch=branch).first()
    return stocking.low_stock_threshold if stocking else ZERO


def stock_status(item: InventoryItem, branch: Branch) -> str:
    return classify(current_stock(item, branch), low_stock_threshold(item, branch))


def is_expiring_soon(batch: Batch, today: date | None = None) -> bool:
    if batch.expiration_date is None or batch.remaining_quantity <= ZERO:
        return False
    today = today or timezone.localdate()
    return batch.expiration_date <= today + timedelta(days=batch.item.days_to_warn_before_expiry)


def expiring_batches(branch: Branch, today: date | None = None) -> list[Batch]:
    today = today or timezone.localdate()
    candidates = (
        Batch.objects.select_related("item")
        .filter(branch=branch, remaining_quantity__gt=ZERO, expiration_date__isnull=False)
        .order_by("expiration_date", "batch_number")
    )
    return [batch for batch in candidates if is_expiring_soon(batch, today)]


def available_portions(batch: Batch):
    return batch.portions.filter(status=PortionStatus.UNUSED, current_branch=batch.branch).order_by("portion_number")


def branch_overview(branch: Branch, today: date | None = None) -> list[dict]:
    today = today or timezone.localdate()
    expiring_items = {batch.item_id for batch in expiring_batches(branch, today)}
    stockings = BranchStocking.objects.select_related("item").filter(branch=branch).order_by("item__name")
    rows = []
    for stocking in stockings:
        item = stocking.item
        stock = current_stock(item, branch)
        rows.append(
            {
                "item_id": str(item.id),
                "code": item.code,
                "name": item.name,
                "unit": item.unit,
                "tracking_type": item.tracking_type,
                "current_stock": str(stock),
                "low_stock_threshold": str(stocking.low_stock_threshold),
                "status": classify(stock, stocking.low_stock_threshold),
                "expiring_soon": item.id in expiring_items,
            }
        )
    return rows


def restorable_adjustments(batch: Batch) -> list[dict]:
    """Negative adjustments of a measured batch that still have something to restore."""
    if batch.item.is_portioned:
        return []
    already = log_details.restored_by_source(batch.logs.filter(action=LogAction.QUANTITY_RESTORED))
    rows = []
    for log in batch.logs.filter(action__in=ADJUSTMENT_ACTIONS, portion__isnull=True).order_by("created_at"):
        deducted = log_details.deducted_amount(log.details)
        restorable = deducted - already.get(str(log.id), ZERO)
        if restorable > ZERO:
            rows.append(
                {
                    "log_id": str(log.id),
                    "action": log.action,
                    "created_at": log.created_at,
                    "reason": log.details.get("reason"),
                    "deducted": str(deducted),
                    "restorable": str(restorable),
                }
            )
    return rows
