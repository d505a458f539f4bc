"""Checkout Service models package."""

from services.checkout_service.models.core import (
    Order,
    OrderItem,
    Payment,
    PointsLedgerEntry,
    Profile,
)
from services.checkout_service.models.enums import (
    DeliveryType,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PointsTransactionType,
)

__all__ = [
    "DeliveryType",
    "Order",
    "OrderItem",
    "OrderPaymentStatus",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PointsLedgerEntry",
    "PointsTransactionType",
    "Profile",
]
