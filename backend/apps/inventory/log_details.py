"""Structured payloads stored in ``LedgerLog.details``.

Writers always emit the current payload version (``"v": 2``), which records
stock movements as a signed ``quantity_change`` string. Older rows were
written in other shapes; the detectors below recover the deducted amount from
any of them so quantity restores keep working on historical entries.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal, InvalidOperation

from apps.inventory.errors import UnparsableLogDetails
from apps.inventory.models import LogAction
from apps.inventory.quantities import ZERO, format_quantity

PAYLOAD_VERSION = 2

DECREASE_DIRECTIONS = {"decrease", "decreased", "subtract", "remove", "removed", "minus", "-"}


def movement(quantity_change: Decimal, unit: str, **extra) -> dict:
    details = {
        "v": PAYLOAD_VERSION,
        "quantity_change": format_quantity(quantity_change),
        "unit": unit,
    }
    details.update({key: value for key, value in extra.items() if value is not None})
    return details


def portion_change(portion, previous_status: str, new_status: str, **extra) -> dict:
    details = {
        "v": PAYLOAD_VERSION,
        "portion_label": portion.label,
        "previous_status": previous_status,
        "new_status": new_status,
    }
    details.update({key: value for key, value in extra.items() if value is not None})
    return details


def _decimal(details: dict, key: str) -> Decimal:
    try:
        value = Decimal(str(details[key]))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise UnparsableLogDetails(
            f"Log details field {key!r} is not numeric.",
            {"details": key},
        ) from exc
    if not value.is_finite():
        raise UnparsableLogDetails(f"Log details field {key!r} is not numeric.", {"details": key})
    return value


def _from_quantity_change(details: dict) -> Decimal:
    change = _decimal(details, "quantity_change")
    return -change if change < ZERO else ZERO


def _from_direction(details: dict) -> Decimal:
    amount = abs(_decimal(details, "quantity_adjusted"))
    direction = str(details.get("adjustment_direction", "")).strip().lower()
    return amount if direction in DECREASE_DIRECTIONS else ZERO


def _from_before_after(details: dict) -> Decimal:
    delta = _decimal(details, "original_quantity") - _decimal(details, "new_quantity")
    return delta if delta > ZERO else ZERO


SHAPE_DETECTORS = (
    (lambda details: "quantity_change" in details, _from_quantity_change),
    (
        lambda details: "quantity_adjusted" in details and "adjustment_direction" in details,
        _from_direction,
    ),
    (
        lambda details: "original_quantity" in details and "new_quantity" in details,
        _from_before_after,
    ),
)


def deducted_amount(details) -> Decimal:
    """Return how much stock the logged operation took out of its batch."""
    if isinstance(details, dict):
        for matches, extract in SHAPE_DETECTORS:
            if matches(details):
                return extract(details)
    raise UnparsableLogDetails(
        "Log details do not match any known quantity shape.",
        {"details": "unrecognised shape"},
    )


def restored_by_source(restore_logs) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for log in restore_logs:
        for source in log.details.get("sources", []):
            totals[str(source["log_id"])] += Decimal(str(source["amount"]))
    return dict(totals)


TITLES = {
    LogAction.BATCH_CREATED: "Batch received",
    LogAction.DEDUCTED_FOR_SALE: "Sold",
    LogAction.TRANSFER_INITIATED: "Sent on transfer",
    LogAction.TRANSFER_RECEIVED: "Received from transfer",
    LogAction.TRANSFER_CANCELLED: "Transfer cancelled",
    LogAction.TRANSFER_REJECTED: "Transfer rejected",
    LogAction.TRANSFER_SHORTFALL: "Lost in transfer",
    LogAction.BATCH_COUNT_CORRECTED: "Count corrected",
    LogAction.PORTION_RESTORED: "Portion restored",
    LogAction.QUANTITY_RESTORED: "Quantity restored",
}


def describe(log) -> dict:
    """Human readable summary of a ledger entry for audit screens."""
    details = log.details if isinstance(log.details, dict) else {}
    title = TITLES.get(log.action) or f"Adjustment: {LogAction(log.action).label}"
    unit = details.get("unit", "")
    parts = []
    quantity = None

    if "portion_label" in details:
        parts.append(f"Portion {details['portion_label']}")
        if details.get("previous_status") and details.get("new_status"):
            parts.append(f"{details['previous_status']} -> {details['new_status']}")
    if log.action == LogAction.BATCH_CREATED:
        quantity = f"{details.get('quantity_received', '?')} {unit}".strip()
        if details.get("portions_created"):
            parts.append(f"{details['portions_created']} portions created")
    elif log.action == LogAction.BATCH_COUNT_CORRECTED:
        parts.append(
            f"Received {details.get('previous_quantity_received')} -> {details.get('new_quantity_received')}"
        )
    elif "quantity_change" in details:
        quantity = f"{details['quantity_change']} {unit}".strip()
    if details.get("transfer_id"):
        parts.append(f"Transfer {details['transfer_id']}")
    if details.get("reason"):
        parts.append(f"Reason: {details['reason']}")

    return {
        "title": title,
        "description": ". ".join(parts),
        "quantity": quantity,
    }
