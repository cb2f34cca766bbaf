from pydantic import BaseModel
from typing import Optional, Union
from datetime import datetime

from foodorder.models.core import Coupon
from foodorder.schemas.common import as_float


class CouponIn(BaseModel):
    code: str
    discount_type: str
    value: Union[float, str]
    description: Optional[str] = None
    expiry_date: Union[datetime, str]
    is_active: bool = True
    usage_limit: Optional[int] = None
    minimum_order_amount: Optional[Union[float, str]] = None

class CouponOut(BaseModel):
    id: str
    code: str
    discount_type: str
    value: float
    description: Optional[str] = None
    expiry_date: datetime
    is_active: bool
    usage_limit: Optional[int] = None
    minimum_order_amount: Optional[float] = None
    used_count: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_coupon(cls, c: Coupon) -> "CouponOut":
        return cls(
            id=c.id, code=c.code, discount_type=c.discount_type.value, value=float(c.value),
            description=c.description, expiry_date=c.expiry_date, is_active=c.is_active,
            usage_limit=c.usage_limit, minimum_order_amount=as_float(c.minimum_order_amount),
            used_count=c.used_count, created_at=c.created_at,
        )

class RedemptionOut(BaseModel):
    user_id: str
    order_id: Optional[str] = None
    redeemed_at: datetime

class CouponDetailOut(CouponOut):
    usage_history: list[RedemptionOut] = []

    @classmethod
    def from_coupon(cls, c: Coupon) -> "CouponDetailOut":
        base = CouponOut.from_coupon(c).model_dump()
        history = [RedemptionOut(user_id=r.user_id, order_id=r.order_id, redeemed_at=r.redeemed_at)
                   for r in c.usage_history]
        return cls(**base, usage_history=history)

class CouponValidationOut(BaseModel):
    valid: bool
    code: str
    discount_type: str
    value: float
    discount: float
    description: Optional[str] = None
