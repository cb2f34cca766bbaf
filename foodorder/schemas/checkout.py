from pydantic import BaseModel, Field
from typing import Optional, Union

from foodorder.schemas.orders import OrderOut, OrderTypeLiteral

class CartLineIn(BaseModel):
    product_ref: str
    name: str
    unit_price: Union[float, str]
    quantity: int = 1
    image_url: Optional[str] = None

class CustomerInfoIn(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None

class CheckoutIn(BaseModel):
    customer: CustomerInfoIn
    order_type: OrderTypeLiteral = "dine-in"
    table_number: Optional[Union[str, int]] = None
    room_number: Optional[Union[str, int]] = None
    delivery_address: Optional[str] = None
    delivery_notes: Optional[str] = None
    items: list[CartLineIn] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    user_id: Optional[str] = None

class CouponErrorOut(BaseModel):
    error: str
    detail: str
    reason: Optional[str] = None

class CheckoutOut(BaseModel):
    order_id: str
    total: float
    applied_discount: float
    estimated_time: float
    order: OrderOut
    coupon_error: Optional[CouponErrorOut] = None
