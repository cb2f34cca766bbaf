"""
Order lifecycle and the payment embedded in each order.

    confirmed -> preparing -> ready -> completed
        \\___________\\__________\\____-> cancelled

Every mutation is a read-modify-write of one order row guarded by its
version column; collisions are retried by `run_with_retries`.
"""
import logging
import math
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodorder.db import run_with_retries
from foodorder.errors import (
    InvalidInput, InvalidPaymentStatus, InvalidTransition, NoPaymentFound, NotFound,
)
from foodorder.models.common import utcnow
from foodorder.models.core import Order, OrderStatus, PayMethod, PaymentStatus
from foodorder.services.billing import money
from foodorder.util.audit import audit

logger = logging.getLogger(__name__)

FORWARD = [OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED]
TERMINAL = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidInput(f"Invalid status. Must be one of: {allowed}")


def parse_payment_status(value) -> PaymentStatus:
    if isinstance(value, PaymentStatus):
        return value
    wanted = str(value or "").strip().lower()
    for s in PaymentStatus:
        if s.value.lower() == wanted:
            return s
    allowed = ", ".join(s.value for s in PaymentStatus)
    raise InvalidPaymentStatus(f"Invalid payment status. Must be one of: {allowed}")


def parse_pay_method(value) -> PayMethod:
    wanted = str(value or "").strip().lower()
    for m in PayMethod:
        if m.value.lower() == wanted:
            return m
    raise InvalidInput("Invalid payment method. Must be one of: UPI, Cash")


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if current in TERMINAL:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return FORWARD.index(target) == FORWARD.index(current) + 1


def get_order(db: Session, order_id: str) -> Order:
    o = db.get(Order, order_id)
    if not o:
        raise NotFound("Order not found")
    return o


def list_orders(db: Session, statuses: list[str] | None = None, phone: str | None = None,
                user_id: str | None = None) -> list[Order]:
    q = select(Order)
    if user_id:
        q = q.where(Order.user_id == user_id)
    elif phone:
        q = q.where(Order.customer_phone == phone)
    wanted = [parse_status(s) for raw in (statuses or []) for s in raw.split(",") if s.strip()]
    if wanted:
        q = q.where(Order.status.in_(wanted))
    return list(db.scalars(q.order_by(Order.created_at.desc())).all())


def _checked(o: Order) -> Order:
    if not o.totals_consistent():
        # totals are written once at checkout; anything else is a bug upstream
        raise InvalidInput(f"order {o.id} totals are inconsistent")
    return o


def transition(db: Session, order_id: str, target, actor: str | None = None) -> Order:
    """
    Move the order to `target` (any casing). Cancelling an order whose
    payment is still Pending marks the payment Failed in the same write.
    """
    target = parse_status(target)

    def _apply() -> Order:
        o = get_order(db, order_id)
        current = o.status
        if not can_transition(current, target):
            raise InvalidTransition(current.value, target.value)
        o.status = target
        failed_payment = False
        if target == OrderStatus.CANCELLED and o.payment_status == PaymentStatus.PENDING:
            o.payment_status = PaymentStatus.FAILED
            o.payment_updated_at = utcnow()
            failed_payment = True
        _checked(o)
        audit(db, actor, "Order", o.id, "STATUS",
              before={"status": current.value}, after={"status": target.value})
        db.commit()
        if failed_payment:
            logger.info("order %s cancelled with pending payment; payment marked Failed", o.id)
        return o

    o = run_with_retries(db, _apply, what=f"order {order_id} -> {target.value}")
    logger.info("order %s is now %s", o.id, o.status.value)
    return o


def _valid_minutes(minutes) -> bool:
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float, Decimal)):
        return False
    finite = minutes.is_finite() if isinstance(minutes, Decimal) else math.isfinite(minutes)
    return finite and minutes >= 0


def set_estimated_time(db: Session, order_id: str, minutes, actor: str | None = None) -> Order:
    if not _valid_minutes(minutes):
        raise InvalidInput("estimated_time must be a non-negative number of minutes")

    def _apply() -> Order:
        o = get_order(db, order_id)
        o.estimated_time = float(minutes)
        db.commit()
        return o

    o = run_with_retries(db, _apply, what=f"order {order_id} estimated time")
    logger.info("order %s estimated time set to %s min", o.id, minutes)
    return o


def attach_payment(db: Session, order_id: str, *, method, status="Pending", amount=None,
                   transaction_id: str | None = None, actor: str | None = None) -> Order:
    """
    Create the order's payment, replacing any previous one (no history is
    kept). `amount` defaults to the order total and must match it.
    """
    pay_status = parse_payment_status(status)
    pay_method = parse_pay_method(method)

    def _apply() -> Order:
        o = get_order(db, order_id)
        pay_amount = money(o.total) if amount is None else money(amount)
        if pay_amount != money(o.total):
            raise InvalidInput(f"payment amount {pay_amount} does not match order total {money(o.total)}")
        before = {"status": o.payment_status.value} if o.has_payment else None
        now = utcnow()
        o.clear_payment()
        o.payment_method = pay_method
        o.payment_status = pay_status
        o.payment_amount = pay_amount
        o.payment_transaction_id = transaction_id
        o.payment_created_at = now
        o.payment_updated_at = now
        _checked(o)
        audit(db, actor, "Order", o.id, "PAYMENT_CREATE", before=before,
              after={"method": pay_method.value, "status": pay_status.value})
        db.commit()
        return o

    o = run_with_retries(db, _apply, what=f"order {order_id} payment")
    logger.info("order %s payment created: %s %s", o.id, pay_method.value, pay_status.value)
    return o


def update_payment_status(db: Session, order_id: str, new_status, actor: str | None = None) -> Order:
    """Only the nested status changes; method, amount and transaction id stay."""
    pay_status = parse_payment_status(new_status)

    def _apply() -> Order:
        o = get_order(db, order_id)
        if not o.has_payment:
            raise NoPaymentFound("No payment found for this order")
        before = o.payment_status.value
        o.payment_status = pay_status
        o.payment_updated_at = utcnow()
        audit(db, actor, "Order", o.id, "PAYMENT_STATUS",
              before={"status": before}, after={"status": pay_status.value})
        db.commit()
        return o

    o = run_with_retries(db, _apply, what=f"order {order_id} payment status")
    logger.info("order %s payment is now %s", o.id, pay_status.value)
    return o
