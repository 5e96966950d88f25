"""Portion status state machine.

Every status write goes through :func:`check_transition`; pairs missing from
``TRANSITIONS`` are rejected. USED and TRANSFERRED have no outgoing edges.
"""

from __future__ import annotations

from django.db import models

from apps.inventory.errors import InvalidStateTransition
from apps.inventory.models import ADJUSTED_STATUSES, PortionStatus


class Trigger(models.TextChoices):
    SALE = "sale", "sale"
    ADJUSTMENT = "adjustment", "adjustment"
    TRANSFER_DISPATCH = "transfer_dispatch", "transfer dispatch"
    TRANSFER_DELIVERY = "transfer_delivery", "transfer delivery"
    TRANSFER_RETURN = "transfer_return", "transfer return"
    RESTORE = "restore", "restore"
    REACTIVATE = "reactivate", "reactivate"


TRANSITIONS = {
    (PortionStatus.UNUSED, Trigger.SALE): frozenset({PortionStatus.USED}),
    (PortionStatus.UNUSED, Trigger.ADJUSTMENT): ADJUSTED_STATUSES,
    (PortionStatus.UNUSED, Trigger.TRANSFER_DISPATCH): frozenset({PortionStatus.IN_TRANSIT}),
    (PortionStatus.IN_TRANSIT, Trigger.TRANSFER_DELIVERY): frozenset({PortionStatus.TRANSFERRED}),
    (PortionStatus.IN_TRANSIT, Trigger.TRANSFER_RETURN): frozenset({PortionStatus.UNUSED}),
    (PortionStatus.RESTORED, Trigger.REACTIVATE): frozenset({PortionStatus.UNUSED}),
}
TRANSITIONS.update(
    {(status, Trigger.RESTORE): frozenset({PortionStatus.RESTORED}) for status in ADJUSTED_STATUSES}
)


def allowed_targets(from_status: str, trigger: str) -> frozenset:
    return TRANSITIONS.get((from_status, trigger), frozenset())


def check_transition(portion, trigger: str, to_status: str) -> None:
    if to_status not in allowed_targets(portion.status, trigger):
        raise InvalidStateTransition(
            f"Portion {portion.label} cannot move from {portion.status} to {to_status} on {trigger}.",
            {"portion": str(portion.id)},
        )


def apply_transition(portion, trigger: str, to_status: str) -> str:
    """Move ``portion`` to ``to_status`` in memory and return the previous status."""
    check_transition(portion, trigger, to_status)
    previous = portion.status
    portion.status = to_status
    return previous
