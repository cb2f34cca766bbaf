"""
Checkout: price a cart, apply and redeem an optional coupon, create the order.

Everything happens in one transaction. The coupon is validated up front,
the order is written with the discount, and the redemption is the last
write; if another checkout took the coupon's last use in between, the
order is re-priced without the discount before anything is committed, so a
discounted order always has a matching redemption row.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from foodorder.config import Settings
from foodorder.db import run_with_retries
from foodorder.errors import CouponExhausted, CouponInvalid, EngineError, InvalidInput
from foodorder.models.core import Customer, Order, OrderItem, OrderStatus, OrderType, ResourceKind
from foodorder.services import coupons, customers, resources
from foodorder.services.billing import Bill, compute_bill, money
from foodorder.util.audit import audit

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product_ref: str
    name: str
    unit_price: Decimal
    quantity: int
    image_url: str | None = None


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    user_id: str | None = None


@dataclass
class CustomerInfo:
    name: str
    phone: str
    email: str | None = None
    order_type: str = OrderType.DINE_IN.value
    table_number: str | None = None
    room_number: str | None = None
    delivery_address: str | None = None
    delivery_notes: str | None = None


@dataclass
class CheckoutResult:
    order: Order
    applied_discount: Decimal
    coupon_error: EngineError | None = None


def _validated_lines(cart: Cart) -> list[CartLine]:
    if not cart.lines:
        raise InvalidInput("At least one item is required in the order")
    out = []
    for i, line in enumerate(cart.lines, start=1):
        if not str(line.product_ref or "").strip() or not str(line.name or "").strip():
            raise InvalidInput(f"Item {i}: missing product reference or name")
        try:
            price = Decimal(str(line.unit_price))
        except (InvalidOperation, ValueError):
            raise InvalidInput(f"Item {i}: invalid item price")
        if not price.is_finite() or price < 0:
            raise InvalidInput(f"Item {i}: invalid item price")
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
            raise InvalidInput(f"Item {i}: invalid item quantity")
        out.append(CartLine(str(line.product_ref), line.name.strip(), money(price), line.quantity, line.image_url))
    return out


def _resource_ref(info: CustomerInfo, order_type: OrderType) -> tuple[ResourceKind | None, str | None]:
    table = str(info.table_number).strip() if info.table_number not in (None, "") else None
    room = str(info.room_number).strip() if info.room_number not in (None, "") else None
    if table and room:
        raise InvalidInput("an order can reference a table or a room, not both")
    if (table or room) and order_type != OrderType.DINE_IN:
        raise InvalidInput("a table or room can only be given for dine-in orders")
    if table:
        return ResourceKind.TABLE, table
    if room:
        return ResourceKind.ROOM, room
    return None, None


def _apply_bill(o: Order, bill: Bill) -> None:
    o.subtotal = bill.subtotal
    o.gst = bill.gst
    o.discount_amount = bill.discount
    o.total = bill.total


def checkout(db: Session, cart: Cart, info: CustomerInfo, coupon_code: str | None = None,
             *, settings: Settings, now: datetime | None = None) -> CheckoutResult:
    lines = _validated_lines(cart)
    try:
        order_type = OrderType(str(info.order_type or "").strip().lower())
    except ValueError:
        raise InvalidInput("order_type must be one of: dine-in, takeaway, delivery")
    kind, number = _resource_ref(info, order_type)
    code = coupons.normalize_code(coupon_code) or None

    def _attempt() -> CheckoutResult:
        buyer = db.get(Customer, cart.user_id) if cart.user_id else None
        if buyer is None:
            buyer = customers.find_or_create(db, info.name, info.phone, info.email)

        bill = compute_bill(lines, settings.GST_RATE)
        coupon, coupon_error = None, None
        if code:
            try:
                coupon = coupons.validate(db, code, bill.gross, now)
            except CouponInvalid as exc:
                if exc.reason != CouponInvalid.EXHAUSTED:
                    raise
                coupon_error = CouponExhausted(code)
            if coupon is not None:
                bill = compute_bill(lines, settings.GST_RATE, coupon)

        o = Order(
            user_id=buyer.id,
            customer_name=info.name.strip(),
            customer_phone=info.phone.strip(),
            customer_email=info.email or None,
            order_type=order_type,
            resource_kind=kind,
            resource_number=number,
            delivery_address=info.delivery_address,
            delivery_notes=info.delivery_notes,
            status=OrderStatus.CONFIRMED,
            estimated_time=settings.DEFAULT_ESTIMATED_TIME,
            items=[
                OrderItem(position=i, product_ref=l.product_ref, name=l.name,
                          unit_price=l.unit_price, quantity=l.quantity, image_url=l.image_url)
                for i, l in enumerate(lines)
            ],
        )
        _apply_bill(o, bill)
        if coupon is not None:
            o.coupon_code = coupon.code
            o.coupon_id = coupon.id
            o.coupon_discount_type = coupon.discount_type
            o.coupon_discount_value = coupon.value
        db.add(o)
        db.flush()

        if coupon is not None:
            try:
                coupons.redeem(db, code, buyer.id, o.id, commit=False)
            except CouponExhausted as exc:
                coupon_error = exc
                _apply_bill(o, compute_bill(lines, settings.GST_RATE))
                o.coupon_code = o.coupon_id = None
                o.coupon_discount_type = o.coupon_discount_value = None

        if not o.totals_consistent():
            raise InvalidInput("computed totals are inconsistent")

        if kind is not None:
            resources.link_order(db, kind, number, o)

        audit(db, buyer.id, "Order", o.id, "CREATE",
              after={"total": o.total, "discount": o.discount_amount, "coupon": o.coupon_code})
        db.commit()
        return CheckoutResult(order=o, applied_discount=money(o.discount_amount), coupon_error=coupon_error)

    result = run_with_retries(db, _attempt, what=f"checkout for {info.phone}")
    o = result.order
    if result.coupon_error is not None:
        logger.warning("order %s placed without coupon %s: %s", o.id, code, result.coupon_error.message)
    logger.info("order %s placed: subtotal=%s gst=%s discount=%s total=%s",
                o.id, o.subtotal, o.gst, o.discount_amount, o.total)
    return result
