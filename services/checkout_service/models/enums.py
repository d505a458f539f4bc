"""Enum definitions for checkout service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class DeliveryType(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    STOCKPILE = "stockpile"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    POINTS = "points"
    MIXED = "mixed"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PointsTransactionType(str, enum.Enum):
    EARNED = "earned"
    SPENT = "spent"
    EXPIRED = "expired"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
