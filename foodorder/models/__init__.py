# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    OrderType, OrderStatus, PayMethod, PaymentStatus, DiscountType,
    ResourceKind, ResourceStatus,

    # Customers
    Customer,

    # Orders (payment embedded)
    Order, OrderItem,

    # Coupons
    Coupon, CouponRedemption,

    # Tables & rooms
    Resource, ResourceOrder,

    # Audit
    AuditLog,
)

__all__ = [
    # Enums
    "OrderType", "OrderStatus", "PayMethod", "PaymentStatus", "DiscountType",
    "ResourceKind", "ResourceStatus",

    # Customers
    "Customer",

    # Orders
    "Order", "OrderItem",

    # Coupons
    "Coupon", "CouponRedemption",

    # Tables & rooms
    "Resource", "ResourceOrder",

    # Audit
    "AuditLog",
]
