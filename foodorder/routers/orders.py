# foodorder/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from foodorder.db import get_db
from foodorder.deps import require_auth
from foodorder.schemas.orders import (
    EstimatedTimeIn, OrderListOut, OrderOut, PaymentIn, PaymentStatusIn, StatusIn,
)
from foodorder.services import orders as svc

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=OrderListOut)
def list_orders(
    status: Optional[List[str]] = Query(None),
    phone: Optional[str] = None,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Newest first. `status` may repeat or be comma separated
    (`?status=confirmed,preparing`); `user_id` wins over `phone`.
    """
    rows = svc.list_orders(db, statuses=status, phone=phone, user_id=user_id)
    return OrderListOut(count=len(rows), items=[OrderOut.from_order(o) for o in rows])


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return OrderOut.from_order(svc.get_order(db, order_id))


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: str,
    body: StatusIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    return OrderOut.from_order(svc.transition(db, order_id, body.status, actor=sub))


@router.patch("/{order_id}/estimated-time", response_model=OrderOut)
def update_estimated_time(
    order_id: str,
    body: EstimatedTimeIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    return OrderOut.from_order(svc.set_estimated_time(db, order_id, body.estimated_time, actor=sub))


@router.put("/{order_id}/payment", response_model=OrderOut)
def attach_payment(order_id: str, body: PaymentIn, db: Session = Depends(get_db)):
    # replaces any earlier payment on the order
    o = svc.attach_payment(
        db, order_id,
        method=body.method,
        status=body.status,
        amount=body.amount,
        transaction_id=body.transaction_id,
    )
    return OrderOut.from_order(o)


@router.patch("/{order_id}/payment/status", response_model=OrderOut)
def update_payment_status(
    order_id: str,
    body: PaymentStatusIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    return OrderOut.from_order(svc.update_payment_status(db, order_id, body.status, actor=sub))
