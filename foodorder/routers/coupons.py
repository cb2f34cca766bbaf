# foodorder/routers/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from foodorder.db import get_db
from foodorder.deps import require_auth
from foodorder.schemas.coupons import CouponDetailOut, CouponIn, CouponOut, CouponValidationOut
from foodorder.services import coupons as svc
from foodorder.services.billing import discount_for, money

router = APIRouter(prefix="/coupons", tags=["coupons"])


# ------------------------------------------------------------------
# GET /coupons/validate  -> customer-facing, no token
# ------------------------------------------------------------------
@router.get("/validate", response_model=CouponValidationOut)
def validate_coupon(code: str, amount: float, db: Session = Depends(get_db)):
    """`amount` is the cart's subtotal + gst; the response previews the discount."""
    c = svc.validate(db, code, amount)
    return CouponValidationOut(
        valid=True,
        code=c.code,
        discount_type=c.discount_type.value,
        value=float(c.value),
        discount=float(discount_for(c.discount_type, c.value, money(amount))),
        description=c.description,
    )


# ------------------------------------------------------------------
# admin
# ------------------------------------------------------------------
@router.get("", response_model=List[CouponOut])
def list_coupons(
    code: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    return [CouponOut.from_coupon(c) for c in svc.list_coupons(db, code=code, active_only=active_only)]


@router.post("", response_model=CouponOut, status_code=201)
def create_coupon(body: CouponIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return CouponOut.from_coupon(svc.create_coupon(db, body.model_dump(), actor=sub))


@router.get("/{coupon_id}", response_model=CouponDetailOut)
def get_coupon(coupon_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    return CouponDetailOut.from_coupon(svc.get_coupon(db, coupon_id))


@router.put("/{coupon_id}", response_model=CouponOut)
def update_coupon(
    coupon_id: str,
    body: CouponIn,
    db: Session = Depends(get_db),
    sub: str = Depends(require_auth),
):
    # is_active only changes when the caller sends it
    return CouponOut.from_coupon(svc.update_coupon(db, coupon_id, body.model_dump(exclude_unset=True), actor=sub))


@router.delete("/{coupon_id}", response_model=CouponOut)
def deactivate_coupon(coupon_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    # orders keep a snapshot of the coupon, so rows are switched off, never removed
    return CouponOut.from_coupon(svc.deactivate_coupon(db, coupon_id, actor=sub))
