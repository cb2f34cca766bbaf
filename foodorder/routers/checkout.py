# foodorder/routers/checkout.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from foodorder.config import Settings
from foodorder.db import get_db
from foodorder.deps import get_app_settings
from foodorder.schemas.checkout import CheckoutIn, CheckoutOut, CouponErrorOut
from foodorder.schemas.orders import OrderOut
from foodorder.services.checkout import Cart, CartLine, CustomerInfo, checkout

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutOut)
def place_order(
    body: CheckoutIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Customer-facing; no token. A coupon that ran out between validation and
    checkout does not fail the order: it is placed at full price and
    `coupon_error` says why.
    """
    cart = Cart(
        lines=[CartLine(l.product_ref, l.name, l.unit_price, l.quantity, l.image_url) for l in body.items],
        user_id=body.user_id,
    )
    info = CustomerInfo(
        name=body.customer.name,
        phone=body.customer.phone,
        email=body.customer.email,
        order_type=body.order_type,
        table_number=body.table_number,
        room_number=body.room_number,
        delivery_address=body.delivery_address,
        delivery_notes=body.delivery_notes,
    )
    result = checkout(db, cart, info, body.coupon_code, settings=settings)
    o = result.order
    coupon_error = None
    if result.coupon_error is not None:
        err = result.coupon_error.as_dict()
        coupon_error = CouponErrorOut(error=err["error"], detail=err["detail"], reason=err["reason"])
    return CheckoutOut(
        order_id=o.id,
        total=float(o.total),
        applied_discount=float(result.applied_discount),
        estimated_time=o.estimated_time,
        order=OrderOut.from_order(o),
        coupon_error=coupon_error,
    )
