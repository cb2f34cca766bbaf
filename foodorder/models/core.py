from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Integer, Float, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from foodorder.db import Base
from foodorder.models.common import IdMixin, TSMMixin, utcnow

# ── Enums ───────────────────────────────────────────────────────────────────
class OrderType(PyEnum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"

class OrderStatus(PyEnum):
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class PayMethod(PyEnum):
    UPI = "UPI"
    CASH = "Cash"

class PaymentStatus(PyEnum):
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"
    UPI_COMPLETED = "UPI-completed"

class DiscountType(PyEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class ResourceKind(PyEnum):
    TABLE = "table"
    ROOM = "room"

class ResourceStatus(PyEnum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"

# ── Customers (identity collaborator's view) ────────────────────────────────
class Customer(Base, IdMixin, TSMMixin):
    __tablename__ = "customer"
    name: Mapped[str] = mapped_column(String(160))
    phone: Mapped[str | None] = mapped_column(String(20), unique=True)
    email: Mapped[str | None] = mapped_column(String(160))
    # cached from the last QR scan / login; cleared when the resource is released
    table_number: Mapped[str | None] = mapped_column(String(20), index=True)
    room_number: Mapped[str | None] = mapped_column(String(20), index=True)

    orders: Mapped[list["Order"]] = relationship(back_populates="customer", order_by="Order.created_at")

# ── Orders (payment is embedded, not its own aggregate) ─────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "order"
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("customer.id"), index=True)
    customer_name: Mapped[str] = mapped_column(String(160))
    customer_phone: Mapped[str] = mapped_column(String(20), index=True)
    customer_email: Mapped[str | None] = mapped_column(String(160))
    order_type: Mapped[OrderType] = mapped_column(Enum(OrderType))
    resource_kind: Mapped[ResourceKind | None] = mapped_column(Enum(ResourceKind))
    resource_number: Mapped[str | None] = mapped_column(String(20))
    delivery_address: Mapped[str | None] = mapped_column(Text)
    delivery_notes: Mapped[str | None] = mapped_column(Text)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    gst: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    # coupon terms as they were at redemption time
    coupon_code: Mapped[str | None] = mapped_column(String(64))
    coupon_id: Mapped[str | None] = mapped_column(String(36))
    coupon_discount_type: Mapped[DiscountType | None] = mapped_column(Enum(DiscountType))
    coupon_discount_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), default=OrderStatus.CONFIRMED, index=True)
    estimated_time: Mapped[float] = mapped_column(Float, default=30)

    payment_method: Mapped[PayMethod | None] = mapped_column(Enum(PayMethod))
    payment_status: Mapped[PaymentStatus | None] = mapped_column(Enum(PaymentStatus))
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    payment_transaction_id: Mapped[str | None] = mapped_column(String(120))
    payment_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", lazy="selectin", order_by="OrderItem.position"
    )
    customer: Mapped[Customer | None] = relationship(back_populates="orders")

    __mapper_args__ = {"version_id_col": version}

    @property
    def has_payment(self) -> bool:
        return self.payment_status is not None

    def clear_payment(self) -> None:
        self.payment_method = None
        self.payment_status = None
        self.payment_amount = None
        self.payment_transaction_id = None
        self.payment_created_at = None
        self.payment_updated_at = None

    def totals_consistent(self) -> bool:
        subtotal, gst = Decimal(self.subtotal), Decimal(self.gst)
        discount, total = Decimal(self.discount_amount or 0), Decimal(self.total)
        return discount >= 0 and total >= 0 and total == subtotal + gst - discount

class OrderItem(Base, IdMixin):
    __tablename__ = "order_item"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    product_ref: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(160))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    quantity: Mapped[int] = mapped_column(Integer)
    image_url: Mapped[str | None] = mapped_column(String(400))

    order: Mapped[Order] = relationship(back_populates="items")

# ── Coupons ─────────────────────────────────────────────────────────────────
class Coupon(Base, IdMixin, TSMMixin):
    __tablename__ = "coupon"
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)  # stored upper-case
    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType))
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    description: Mapped[str | None] = mapped_column(Text)
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    usage_limit: Mapped[int | None] = mapped_column(Integer)       # None = unlimited
    minimum_order_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    # only ever changed by the conditional UPDATE in services.coupons.redeem
    used_count: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    usage_history: Mapped[list["CouponRedemption"]] = relationship(
        back_populates="coupon", order_by="CouponRedemption.redeemed_at", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

class CouponRedemption(Base, IdMixin):
    __tablename__ = "coupon_redemption"
    coupon_id: Mapped[str] = mapped_column(String(36), ForeignKey("coupon.id"), index=True)
    user_id: Mapped[str] = mapped_column(String(36))
    order_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order.id"))
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    coupon: Mapped[Coupon] = relationship(back_populates="usage_history")

# ── Tables & rooms ──────────────────────────────────────────────────────────
class Resource(Base, IdMixin, TSMMixin):
    __tablename__ = "resource"
    kind: Mapped[ResourceKind] = mapped_column(Enum(ResourceKind))
    number: Mapped[str] = mapped_column(String(20))
    access_url: Mapped[str | None] = mapped_column(String(400))
    code_blob: Mapped[str | None] = mapped_column(Text)   # opaque, owned by the code generator
    status: Mapped[ResourceStatus] = mapped_column(Enum(ResourceStatus), default=ResourceStatus.AVAILABLE)
    assigned_user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("customer.id"))
    current_order_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("order.id"))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # history outlives the resource, so the link is not a database foreign key
    order_history: Mapped[list["ResourceOrder"]] = relationship(
        back_populates="resource", order_by="ResourceOrder.linked_at", lazy="selectin",
        primaryjoin="Resource.id == foreign(ResourceOrder.resource_id)", passive_deletes="all",
    )

    __table_args__ = (
        UniqueConstraint("kind", "number", name="uq_resource_kind_number"),
    )
    __mapper_args__ = {"version_id_col": version}

class ResourceOrder(Base):
    __tablename__ = "resource_order"
    resource_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"), primary_key=True)
    linked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    resource: Mapped[Resource | None] = relationship(
        back_populates="order_history", primaryjoin="Resource.id == foreign(ResourceOrder.resource_id)"
    )

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36), index=True)
    action: Mapped[str] = mapped_column(String(60))
    reason: Mapped[str | None] = mapped_column(Text)
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
