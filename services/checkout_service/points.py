"""PEPS redemption decisions (pure; no I/O)."""

import math
from dataclasses import dataclass
from decimal import Decimal

from libs.common.currency import to_decimal
from services.checkout_service.models.enums import PaymentMethod


@dataclass(frozen=True)
class PointsApplication:
    amount: int
    payment_method: PaymentMethod


def redeemable_cap(available: int, order_total: Decimal | int | str) -> int:
    """Most points one order can absorb: the balance or the whole total."""
    total = to_decimal(order_total)
    return max(0, min(int(available), math.ceil(total)))


def apply_points(
    requested: int, available: int, order_total: Decimal | int | str
) -> PointsApplication:
    """Clamp a redemption request and classify the payment method.

    The amount never exceeds the requested points, the available balance or
    the order total rounded up to a whole point.
    """
    total = to_decimal(order_total)
    clamped = min(max(0, int(requested)), redeemable_cap(available, total))

    if clamped == 0:
        method = PaymentMethod.CASH
    elif clamped >= total:
        method = PaymentMethod.POINTS
    else:
        method = PaymentMethod.MIXED
    return PointsApplication(amount=clamped, payment_method=method)


def cash_remainder(order_total: Decimal | int | str, points_amount: int) -> Decimal:
    """Amount left for the gateway after points; never negative."""
    return max(Decimal("0"), to_decimal(order_total) - points_amount)
