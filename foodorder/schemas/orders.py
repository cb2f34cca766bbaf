from pydantic import BaseModel
from typing import Optional, Literal, Union
from datetime import datetime

from foodorder.models.core import Order, OrderItem
from foodorder.schemas.common import as_float, enum_value

OrderTypeLiteral = Literal["dine-in", "takeaway", "delivery"]

class StatusIn(BaseModel):
    # any casing; validated against the lifecycle by the service
    status: str

class EstimatedTimeIn(BaseModel):
    estimated_time: Union[int, float]

class PaymentIn(BaseModel):
    method: str
    status: str = "Pending"
    amount: Optional[float] = None
    transaction_id: Optional[str] = None

class PaymentStatusIn(BaseModel):
    status: str

class OrderItemOut(BaseModel):
    product_ref: str
    name: str
    unit_price: float
    quantity: int
    image_url: Optional[str] = None

    @classmethod
    def from_item(cls, i: OrderItem) -> "OrderItemOut":
        return cls(product_ref=i.product_ref, name=i.name, unit_price=float(i.unit_price),
                   quantity=i.quantity, image_url=i.image_url)

class PaymentOut(BaseModel):
    method: str
    status: str
    amount: float
    transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CouponSnapshot(BaseModel):
    code: str
    id: str
    discount_type: str
    discount_value: float

class OrderOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    order_type: str
    resource_kind: Optional[str] = None
    resource_number: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_notes: Optional[str] = None
    items: list[OrderItemOut]
    subtotal: float
    gst: float
    discount_amount: float
    total: float
    coupon: Optional[CouponSnapshot] = None
    status: str
    payment: Optional[PaymentOut] = None
    estimated_time: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, o: Order) -> "OrderOut":
        payment = None
        if o.has_payment:
            payment = PaymentOut(
                method=enum_value(o.payment_method), status=enum_value(o.payment_status),
                amount=as_float(o.payment_amount), transaction_id=o.payment_transaction_id,
                created_at=o.payment_created_at, updated_at=o.payment_updated_at,
            )
        coupon = None
        if o.coupon_code:
            coupon = CouponSnapshot(code=o.coupon_code, id=o.coupon_id,
                                    discount_type=enum_value(o.coupon_discount_type),
                                    discount_value=as_float(o.coupon_discount_value))
        return cls(
            id=o.id, user_id=o.user_id,
            customer_name=o.customer_name, customer_phone=o.customer_phone, customer_email=o.customer_email,
            order_type=enum_value(o.order_type),
            resource_kind=enum_value(o.resource_kind), resource_number=o.resource_number,
            delivery_address=o.delivery_address, delivery_notes=o.delivery_notes,
            items=[OrderItemOut.from_item(i) for i in o.items],
            subtotal=as_float(o.subtotal), gst=as_float(o.gst),
            discount_amount=as_float(o.discount_amount), total=as_float(o.total),
            coupon=coupon, status=enum_value(o.status), payment=payment,
            estimated_time=o.estimated_time,
            created_at=o.created_at, updated_at=o.updated_at,
        )

class OrderListOut(BaseModel):
    count: int
    items: list[OrderOut]
