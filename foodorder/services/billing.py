from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from foodorder.models.core import DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(x) -> Decimal:
    # go through str so floats don't drag binary artifacts into the cents
    d = x if isinstance(x, Decimal) else Decimal(str(x if x is not None else "0"))
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Bill:
    subtotal: Decimal
    gst: Decimal
    discount: Decimal
    total: Decimal

    @property
    def gross(self) -> Decimal:
        """subtotal + gst, the amount coupons are validated and computed against."""
        return self.subtotal + self.gst


def subtotal_of(lines: Iterable) -> Decimal:
    return money(sum((money(l.unit_price) * int(l.quantity) for l in lines), ZERO))


def discount_for(discount_type: DiscountType, value, gross: Decimal) -> Decimal:
    """Never more than `gross`, never negative."""
    value = Decimal(str(value))
    if discount_type == DiscountType.PERCENTAGE:
        amount = money(value / 100 * gross)
    else:
        amount = money(value)
    return max(ZERO, min(amount, gross))


def compute_bill(lines: Iterable, gst_rate: float, coupon=None) -> Bill:
    """
    Price a cart snapshot. `coupon` is anything with `discount_type` and
    `value` (a Coupon row or its snapshot); omit it for an undiscounted bill.
    """
    subtotal = subtotal_of(lines)
    gst = money(subtotal * Decimal(str(gst_rate)))
    gross = subtotal + gst
    discount = discount_for(coupon.discount_type, coupon.value, gross) if coupon is not None else ZERO
    return Bill(subtotal=subtotal, gst=gst, discount=discount, total=money(gross - discount))
