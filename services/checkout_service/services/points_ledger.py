"""PEPS balance operations: atomic conditional debit and compensating refund."""

import uuid

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.checkout_service.errors import InsufficientPointsError
from services.checkout_service.models import (
    Order,
    PointsLedgerEntry,
    PointsTransactionType,
    Profile,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ORDER_SOURCE = "order"
COMPENSATION_SOURCE = "order_cancelled"


async def get_points_balance(db: AsyncSession, user_id: str) -> int:
    """Materialised PEPS balance; users without a profile have none."""
    result = await db.execute(
        select(Profile.points_balance).where(Profile.id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def debit_points(
    db: AsyncSession,
    *,
    user_id: str,
    amount: int,
    order_id: uuid.UUID,
) -> PointsLedgerEntry:
    """Spend ``amount`` points against an order.

    1. Conditional decrement: only succeeds while balance >= amount
    2. Zero rows matched -> InsufficientPointsError, nothing written
    3. Ledger row and the order's debited counter in the same commit
    """
    if amount <= 0:
        raise ValueError("debit amount must be positive")

    result = await db.execute(
        update(Profile)
        .where(Profile.id == user_id, Profile.points_balance >= amount)
        .values(
            points_balance=Profile.points_balance - amount,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InsufficientPointsError(amount, user_id)

    entry = PointsLedgerEntry(
        user_id=user_id,
        points=-amount,
        transaction_type=PointsTransactionType.SPENT,
        source=ORDER_SOURCE,
        reference_id=str(order_id),
    )
    db.add(entry)
    await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(points_debited=Order.points_debited + amount)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()

    logger.info("Debited %d points from %s for order %s", amount, user_id, order_id)
    return entry


async def claim_order_refund(db: AsyncSession, *, order_id: uuid.UUID) -> int:
    """Credit back the points debited for ``order_id`` without committing.

    Returns the number of points credited (0 when nothing was debited or the
    refund was already claimed).
    """
    result = await db.execute(
        select(Order.user_id, Order.points_debited).where(Order.id == order_id)
    )
    row = result.one_or_none()
    if row is None or row.points_debited <= 0:
        return 0
    user_id, amount = row.user_id, row.points_debited

    # Claim the refund first so a concurrent compensation cannot credit twice
    claimed = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.points_debited == amount)
        .values(points_debited=0)
        .execution_options(synchronize_session="fetch")
    )
    if claimed.rowcount != 1:
        return 0

    await db.execute(
        update(Profile)
        .where(Profile.id == user_id)
        .values(
            points_balance=Profile.points_balance + amount,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    db.add(
        PointsLedgerEntry(
            user_id=user_id,
            points=amount,
            transaction_type=PointsTransactionType.REFUNDED,
            source=COMPENSATION_SOURCE,
            reference_id=str(order_id),
        )
    )
    logger.info("Refunded %d points to %s for order %s", amount, user_id, order_id)
    return amount


async def refund_order_points(db: AsyncSession, *, order_id: uuid.UUID) -> int:
    """Return every point debited for ``order_id``; safe to call repeatedly."""
    refunded = await claim_order_refund(db, order_id=order_id)
    await db.commit()
    return refunded
