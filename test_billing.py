# test_billing.py
from decimal import Decimal

from foodorder.models.core import DiscountType
from foodorder.services.billing import compute_bill, discount_for, money
from foodorder.services.checkout import CartLine


class _Coupon:
    def __init__(self, discount_type, value):
        self.discount_type = discount_type
        self.value = value


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money(0.1 + 0.2) == Decimal("0.30")
    assert money(None) == Decimal("0.00")


def test_bill_without_coupon():
    lines = [CartLine("a", "Dosa", Decimal("80.00"), 2), CartLine("b", "Chai", Decimal("15.50"), 1)]
    bill = compute_bill(lines, 0.05)
    assert bill.subtotal == Decimal("175.50")
    assert bill.gst == Decimal("8.78")
    assert bill.discount == Decimal("0.00")
    assert bill.total == bill.subtotal + bill.gst


def test_percentage_discount_is_taken_on_subtotal_plus_gst():
    bill = compute_bill([CartLine("a", "Thali", Decimal("95.24"), 1)], 0.05,
                        _Coupon(DiscountType.PERCENTAGE, Decimal("10")))
    assert bill.gross == Decimal("100.00")
    assert bill.discount == Decimal("10.00")
    assert bill.total == Decimal("90.00")


def test_fixed_discount_is_clamped_to_the_bill():
    assert discount_for(DiscountType.FIXED, 50, Decimal("30.00")) == Decimal("30.00")
    bill = compute_bill([CartLine("a", "Lassi", Decimal("28.57"), 1)], 0.05,
                        _Coupon(DiscountType.FIXED, Decimal("50")))
    assert bill.gross == Decimal("30.00")
    assert bill.total == Decimal("0.00")
