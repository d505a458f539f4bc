"""Background reconciliation tasks for the checkout service."""

from __future__ import annotations

from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import minutes_ago
from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.checkout_service.models import (
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from services.checkout_service.services.payment_gateway import PaymentGatewayAdapter
from services.checkout_service.services.settlement import cancel_order
from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)

BATCH_SIZE = 200


async def reconcile_pending_payments(
    gateway: PaymentGatewayAdapter,
    *,
    older_than_minutes: Optional[int] = None,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> int:
    """Re-verify pending payments the customer never came back for.

    Returns the number of payments whose status changed.
    """
    if older_than_minutes is None:
        older_than_minutes = get_settings().PENDING_PAYMENT_RECONCILE_MINUTES
    cutoff = minutes_ago(older_than_minutes)
    changed = 0

    async with session_factory() as db:
        result = await db.execute(
            select(Payment.reference)
            .where(
                Payment.status == PaymentStatus.PENDING,
                Payment.created_at <= cutoff,
            )
            .order_by(Payment.created_at.asc())
            .limit(BATCH_SIZE)
        )
        references = list(result.scalars().all())

        for reference in references:
            try:
                verification = await gateway.verify_payment(db, reference)
            except Exception as exc:
                await db.rollback()
                logger.warning("Pending payment verify failed for %s: %s", reference, exc)
                continue
            if verification.payment_status != PaymentStatus.PENDING:
                changed += 1

    if references:
        logger.info(
            "Reconciled %d pending payments (%d changed)", len(references), changed
        )
    return changed


async def expire_stale_orders(
    *,
    older_than_minutes: Optional[int] = None,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> int:
    """Cancel pending orders that never got a live payment.

    Covers settlements interrupted before compensation could run. Orders
    with a pending or completed payment are left to payment reconciliation.
    Returns the number of orders cancelled.
    """
    if older_than_minutes is None:
        older_than_minutes = get_settings().STALE_ORDER_MINUTES
    cutoff = minutes_ago(older_than_minutes)

    live_payment = exists().where(
        Payment.order_id == Order.id,
        Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.COMPLETED]),
    )
    cancelled = 0

    async with session_factory() as db:
        result = await db.execute(
            select(Order.id)
            .where(
                Order.status == OrderStatus.PENDING,
                Order.payment_status == OrderPaymentStatus.PENDING,
                Order.created_at <= cutoff,
                ~live_payment,
            )
            .order_by(Order.created_at.asc())
            .limit(BATCH_SIZE)
        )
        order_ids = list(result.scalars().all())

        for order_id in order_ids:
            try:
                await cancel_order(db, order_id)
            except Exception as exc:
                await db.rollback()
                logger.warning("Failed to expire stale order %s: %s", order_id, exc)
                continue
            cancelled += 1

    if cancelled:
        logger.info("Expired %d stale pending orders", cancelled)
    return cancelled
