# backend/tests/modules/orders/test_money.py

import pytest
from decimal import Decimal

from core.error_handling import APIValidationError
from modules.orders.utils.money import (
    average,
    calculate_totals,
    line_total,
    order_total,
    subtotal,
    tax_amount,
    to_money,
)


@pytest.mark.unit
class TestMoneyMath:
    """Fixed-point order arithmetic"""

    def test_to_money_avoids_float_artifacts(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money("19.999") == Decimal("20.00")
        assert to_money(None) == Decimal("0.00")

    def test_to_money_rejects_garbage(self):
        with pytest.raises(APIValidationError):
            to_money("twelve dollars")

    def test_line_total_includes_modifiers_per_unit(self):
        assert line_total(Decimal("2.50"), Decimal("0.75"), 3) == Decimal("9.75")

    def test_subtotal_sums_lines(self):
        assert subtotal([Decimal("9.75"), Decimal("0.25"), "1.10"]) == Decimal("11.10")
        assert subtotal([]) == Decimal("0.00")

    def test_tax_rounds_half_up(self):
        # 0.50 * 0.05 = 0.025; half-even would give 0.02
        assert tax_amount(Decimal("0.50"), Decimal("0.05")) == Decimal("0.03")
        assert tax_amount(Decimal("10.05"), Decimal("0.08")) == Decimal("0.80")

    def test_average_rounds_half_up(self):
        assert average(Decimal("0.05"), 2) == Decimal("0.03")
        assert average(Decimal("10.00"), 3) == Decimal("3.33")

    def test_average_with_no_visits_is_zero(self):
        assert average(Decimal("10.00"), 0) == Decimal("0.00")

    def test_order_total(self):
        total = order_total(
            Decimal("15.50"), Decimal("1.24"), tip=Decimal("2.00"),
            delivery_fee=Decimal("5.00"), discount=Decimal("1.00"),
        )
        assert total == Decimal("22.74")

    def test_discount_larger_than_order_is_rejected(self):
        with pytest.raises(APIValidationError) as exc_info:
            order_total(Decimal("5.00"), Decimal("0.40"), discount=Decimal("10.00"))
        assert exc_info.value.status_code == 422

    def test_calculate_totals(self):
        totals = calculate_totals(
            [Decimal("10.00"), Decimal("5.50")],
            Decimal("0.08"),
            tip=Decimal("2"),
            delivery_fee=Decimal("5"),
            discount=Decimal("1"),
        )
        assert totals.subtotal == Decimal("15.50")
        assert totals.tax_amount == Decimal("1.24")
        assert totals.delivery_fee == Decimal("5.00")
        assert totals.total_amount == Decimal("22.74")

    def test_calculate_totals_rejects_negative_tip(self):
        with pytest.raises(APIValidationError):
            calculate_totals([Decimal("10.00")], Decimal("0.08"), tip=Decimal("-1.00"))

    def test_calculate_totals_rejects_negative_line(self):
        with pytest.raises(APIValidationError) as exc_info:
            calculate_totals(
                [Decimal("3.00"), Decimal("-4.00")], Decimal("0.08"), tip=Decimal("10.00")
            )
        assert exc_info.value.details == {
            "validation_errors": {"line": 1, "line_total": "-4.00"}
        }
