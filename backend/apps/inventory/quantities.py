from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from apps.inventory.errors import InvalidQuantity

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_quantity(value, field: str = "quantity") -> Decimal:
    """Coerce ``value`` to a two-place Decimal, never going through float."""
    if isinstance(value, float):
        value = repr(value)
    try:
        quantity = Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidQuantity(f"{field} is not a valid quantity.", {field: "invalid"}) from exc
    if not quantity.is_finite():
        raise InvalidQuantity(f"{field} is not a valid quantity.", {field: "invalid"})
    return quantity


def to_positive_quantity(value, field: str = "quantity") -> Decimal:
    quantity = to_quantity(value, field)
    if quantity <= ZERO:
        raise InvalidQuantity(f"{field} must be greater than 0.", {field: "must be positive"})
    return quantity


def to_portion_count(value, field: str = "quantity") -> int:
    quantity = to_positive_quantity(value, field)
    if quantity != quantity.to_integral_value():
        raise InvalidQuantity(
            f"{field} must be a whole number of portions.",
            {field: "must be a whole number"},
        )
    return int(quantity)


def format_quantity(value: Decimal) -> str:
    return str(to_quantity(value))
