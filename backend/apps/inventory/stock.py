"""How a caller asks the engine for stock of an item.

Measured items are addressed by an amount; portioned items by explicit
portion ids or by a whole number of portions picked oldest first.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from apps.catalog.models import InventoryItem
from apps.inventory.errors import InvalidQuantity
from apps.inventory.quantities import to_portion_count, to_positive_quantity


@dataclass(frozen=True)
class Measured:
    quantity: Decimal


@dataclass(frozen=True)
class Portioned:
    portion_ids: tuple = ()
    count: int | None = None

    @property
    def is_explicit(self) -> bool:
        return bool(self.portion_ids)


def stock_request(item: InventoryItem, quantity=None, portion_ids=None) -> Measured | Portioned:
    if not item.is_portioned:
        if portion_ids:
            raise InvalidQuantity(
                f"{item.code} is tracked by measure; portions cannot be addressed.",
                {"portion_ids": "not allowed for measured items"},
            )
        if quantity is None:
            raise InvalidQuantity("quantity is required.", {"quantity": "required"})
        return Measured(to_positive_quantity(quantity))

    if portion_ids:
        unique_ids = tuple(dict.fromkeys(str(pid) for pid in portion_ids))
        if len(unique_ids) != len(portion_ids):
            raise InvalidQuantity("Portion ids must be unique.", {"portion_ids": "duplicates"})
        return Portioned(portion_ids=unique_ids)
    if quantity is None:
        raise InvalidQuantity(
            "Either portion_ids or a portion count is required.",
            {"portion_ids": "required"},
        )
    return Portioned(count=to_portion_count(quantity))
