from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from apps.core.models import Branch, StaffMember
from apps.inventory.errors import InvalidQuantity
from apps.inventory.quantities import ZERO
from apps.inventory.services.access import require_branch_access
from apps.inventory.services.accounting import deduct_for_sale
from apps.pos.models import Product, Sale, SaleLine

logger = logging.getLogger(__name__)


def ingredient_requirements(lines) -> dict:
    """Sum recipe quantity times units sold per inventory item."""
    needed = defaultdict(lambda: ZERO)
    items = {}
    for product, quantity in lines:
        for ingredient in product.ingredients.select_related("item"):
            needed[ingredient.item_id] += ingredient.quantity_required * quantity
            items[ingredient.item_id] = ingredient.item
    return {items[item_id]: amount for item_id, amount in needed.items()}


@transaction.atomic
def record_sale(
    branch: Branch,
    lines: list[tuple[Product, int]],
    actor: StaffMember,
    *,
    portions: dict | None = None,
    sold_at: datetime | None = None,
) -> Sale:
    """Record a sale and take every recipe ingredient out of the branch stock.

    ``portions`` optionally maps an item id to the exact portion ids to use for
    it; other portioned ingredients are picked oldest first.
    """
    require_branch_access(actor, branch.id, "record sales")
    if not lines:
        raise InvalidQuantity("A sale needs at least one line.", {"lines": "required"})
    portions = {str(item_id): ids for item_id, ids in (portions or {}).items()}

    sale = Sale.objects.create(branch=branch, staff=actor, sold_at=sold_at or timezone.now())
    total = ZERO
    for product, quantity in lines:
        line_total = product.price * quantity
        SaleLine.objects.create(
            sale=sale,
            product=product,
            quantity=quantity,
            unit_price=product.price,
            line_total=line_total,
        )
        total += line_total
    sale.total_amount = total
    sale.save(update_fields=["total_amount"])

    requirements = ingredient_requirements(lines)
    for item in sorted(requirements, key=lambda entry: entry.code):
        amount = requirements[item]
        explicit = portions.pop(str(item.id), None)
        if explicit:
            if not item.is_portioned or Decimal(len(explicit)) != amount:
                raise InvalidQuantity(
                    f"Sale needs {amount} portions of {item.code}; {len(explicit)} given.",
                    {"portions": str(item.id)},
                )
            deduct_for_sale(item, branch, actor, portion_ids=explicit, sale=sale)
        else:
            deduct_for_sale(item, branch, actor, quantity=amount, sale=sale)
    if portions:
        raise InvalidQuantity(
            "Portions were given for items the sale does not use.",
            {"portions": sorted(portions)},
        )

    logger.info("Recorded sale %s at %s for %s", sale.id, branch.code, total)
    return sale
