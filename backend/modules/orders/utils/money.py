# backend/modules/orders/utils/money.py

"""
Fixed-point money helpers.

All amounts are ``Decimal`` values with two decimal places. Anything that
multiplies or divides (tax, averages) is rounded half-up, the same rule
everywhere, so recomputing a total never drifts by a cent.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

from core.error_handling import APIValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Convert a value to a two-decimal Decimal, going through str for floats"""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return quantize_money(Decimal(value))
    except (InvalidOperation, ValueError, TypeError):
        raise APIValidationError(f"Invalid monetary amount: {value!r}")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(item_price: Number, modifiers_total: Number, quantity: int) -> Decimal:
    """(item price + modifiers) * quantity"""
    return quantize_money((to_money(item_price) + to_money(modifiers_total)) * quantity)


def subtotal(line_totals: Iterable[Number]) -> Decimal:
    return quantize_money(sum((to_money(t) for t in line_totals), ZERO))


def tax_amount(subtotal_amount: Number, tax_rate: Number) -> Decimal:
    return quantize_money(to_money(subtotal_amount) * Decimal(str(tax_rate)))


def order_total(
    subtotal_amount: Number,
    tax: Number,
    tip: Number = ZERO,
    delivery_fee: Number = ZERO,
    discount: Number = ZERO,
) -> Decimal:
    total = (
        to_money(subtotal_amount)
        + to_money(tax)
        + to_money(tip)
        + to_money(delivery_fee)
        - to_money(discount)
    )
    if total < ZERO:
        raise APIValidationError(
            "Discount exceeds order amount",
            {
                "discount_amount": str(to_money(discount)),
                "total_before_discount": str(total + to_money(discount)),
            },
        )
    return quantize_money(total)


def average(total: Number, count: int) -> Decimal:
    """Average amount per unit; zero when there is nothing to divide by"""
    if count <= 0:
        return ZERO
    return quantize_money(to_money(total) / count)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    tip_amount: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def calculate_totals(
    line_totals: Iterable[Number],
    tax_rate: Number,
    tip: Number = ZERO,
    delivery_fee: Number = ZERO,
    discount: Number = ZERO,
) -> OrderTotals:
    """Compute every monetary field of an order from its line totals"""
    for name, amount in (("tip_amount", tip), ("delivery_fee", delivery_fee), ("discount_amount", discount)):
        if to_money(amount) < ZERO:
            raise APIValidationError(f"{name} must be non-negative", {name: str(amount)})

    lines = [to_money(t) for t in line_totals]
    for index, amount in enumerate(lines):
        if amount < ZERO:
            raise APIValidationError(
                "Modifiers cannot bring a line below zero",
                {"line": index, "line_total": str(amount)},
            )

    sub = subtotal(lines)
    tax = tax_amount(sub, tax_rate)
    return OrderTotals(
        subtotal=sub,
        tax_amount=tax,
        tip_amount=to_money(tip),
        delivery_fee=to_money(delivery_fee),
        discount_amount=to_money(discount),
        total_amount=order_total(sub, tax, tip, delivery_fee, discount),
    )
