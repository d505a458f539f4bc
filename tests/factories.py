"""
Model factories for creating valid test data.

Every factory produces a valid, insertable SQLAlchemy model instance.
Override any field via kwargs.

Usage:
    profile = ProfileFactory.create(points_balance=5000)
    db_session.add(profile)
    await db_session.commit()
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from services.checkout_service.fees import CartItem

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def hours_ago(hours: int) -> datetime:
    return _now() - timedelta(hours=hours)


def cart_item(vendor_id="vendor-a", price="1000", quantity=1, product_id=None) -> CartItem:
    return CartItem(
        product_id=product_id or f"product-{uuid.uuid4().hex[:6]}",
        vendor_id=vendor_id,
        price=Decimal(str(price)),
        quantity=quantity,
    )


# ---------------------------------------------------------------------------
# Checkout Service
# ---------------------------------------------------------------------------


class ProfileFactory:
    @staticmethod
    def create(**overrides):
        from services.checkout_service.models import Profile

        defaults = {
            "id": f"user-{uuid.uuid4().hex[:8]}",
            "email": f"test-{uuid.uuid4().hex[:8]}@test.com",
            "points_balance": 0,
        }
        defaults.update(overrides)
        return Profile(**defaults)


class OrderFactory:
    @staticmethod
    def create(**overrides):
        from services.checkout_service.models import (
            DeliveryType,
            Order,
            OrderPaymentStatus,
            OrderStatus,
            PaymentMethod,
        )

        defaults = {
            "id": _uuid(),
            "user_id": f"user-{uuid.uuid4().hex[:8]}",
            "total_amount": Decimal("5000.00"),
            "delivery_type": DeliveryType.PICKUP,
            "pickup_location_id": "pickup-1",
            "delivery_fee": Decimal("0"),
            "peps_amount": 0,
            "payment_method": PaymentMethod.CASH,
            "points_debited": 0,
            "status": OrderStatus.PENDING,
            "payment_status": OrderPaymentStatus.PENDING,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Order(**defaults)


class PaymentFactory:
    @staticmethod
    def create(**overrides):
        from services.checkout_service.models import Payment, PaymentStatus

        defaults = {
            "id": _uuid(),
            "reference": f"PEPS-{uuid.uuid4().hex[:16].upper()}",
            "amount": Decimal("5000.00"),
            "charged_amount_kobo": 512500,
            "split_config": {"vendors": []},
            "status": PaymentStatus.PENDING,
            "created_at": _now(),
        }
        defaults.update(overrides)
        return Payment(**defaults)
