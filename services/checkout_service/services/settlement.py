"""Settlement: turn a checkout into an order plus a payment obligation.

Steps run strictly in sequence, each one assuming the previous row exists:

1. Validate the user and the settlement input (no I/O)
2. Read the PEPS balance and decide the points/cash mix
3. Create the order (pending/pending)
4. Create the order lines
5. Debit points (conditional update)
6. Confirm immediately, or open a hosted payment for the cash remainder

Once the order row exists, any failure runs compensations (refund debited
points, cancel the order) and the original error is re-raised unchanged.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.common.resilience import ResilientExecutor, RetryPolicy
from services.checkout_service.checkout_state import CheckoutState, SettlementInput
from services.checkout_service.errors import BusinessRuleError
from services.checkout_service.fees import CartItem, allocate_splits, split_by_vendor
from services.checkout_service.models import (
    DeliveryType,
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
)
from services.checkout_service.points import (
    PointsApplication,
    apply_points,
    cash_remainder,
)
from services.checkout_service.services.payment_gateway import PaymentGatewayAdapter
from services.checkout_service.services.points_ledger import (
    claim_order_refund,
    debit_points,
    get_points_balance,
)
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Writes are not retried: a timed-out insert may still have landed
STORE_POLICY = RetryPolicy(timeout=10.0, max_retries=0)


@dataclass
class SettlementResult:
    state: CheckoutState
    order_id: uuid.UUID
    subtotal: Decimal
    delivery_fee: Decimal
    final_total: Decimal
    points_applied: int
    payment_method: PaymentMethod
    cash_remainder: Decimal
    authorization_url: Optional[str] = None
    reference: Optional[str] = None


def validate_settlement(user: Optional[AuthUser], settlement: SettlementInput) -> None:
    """Business-rule checks that must pass before any remote call."""
    if user is None or not user.user_id:
        raise BusinessRuleError("You must be signed in to check out")
    if not settlement.items:
        raise BusinessRuleError("Your cart is empty")
    if settlement.points_requested < 0:
        raise BusinessRuleError("Points to redeem cannot be negative")

    if settlement.delivery_type == DeliveryType.DELIVERY:
        if settlement.accepted_delivery_fee is None:
            raise BusinessRuleError("Please accept the delivery fee to continue")
        if not settlement.delivery_address_id:
            raise BusinessRuleError("Please select a delivery address")
    elif settlement.delivery_type == DeliveryType.PICKUP:
        if not settlement.pickup_location_id:
            raise BusinessRuleError("Please select a pickup location")


class SettlementOrchestrator:
    def __init__(
        self,
        executor: ResilientExecutor,
        gateway: PaymentGatewayAdapter,
        *,
        store_policy: RetryPolicy = STORE_POLICY,
    ):
        self.executor = executor
        self.gateway = gateway
        self.store_policy = store_policy

    async def _store(self, operation: Callable[[], Awaitable], name: str):
        return await self.executor.execute(operation, self.store_policy, name=name)

    async def submit(
        self,
        db: AsyncSession,
        user: Optional[AuthUser],
        settlement: SettlementInput,
    ) -> SettlementResult:
        validate_settlement(user, settlement)

        available = await self._store(
            lambda: get_points_balance(db, user.user_id), "points balance lookup"
        )
        final_total = settlement.final_total
        application = apply_points(settlement.points_requested, available, final_total)
        remainder = cash_remainder(final_total, application.amount)
        if remainder > 0 and not user.email:
            raise BusinessRuleError("An email address is required for card payment")

        order = await self._store(
            lambda: self._create_order(db, user.user_id, settlement, application),
            "order creation",
        )
        # A failed debit rolls the session back and expires ``order``
        order_id = order.id
        result = SettlementResult(
            state=CheckoutState.SUBMITTING,
            order_id=order_id,
            subtotal=settlement.subtotal,
            delivery_fee=settlement.delivery_fee,
            final_total=final_total,
            points_applied=application.amount,
            payment_method=application.payment_method,
            cash_remainder=remainder,
        )

        try:
            await self._store(
                lambda: self._create_lines(db, order_id, settlement.items),
                "order lines creation",
            )
            if application.amount > 0:
                await self._store(
                    lambda: debit_points(
                        db,
                        user_id=user.user_id,
                        amount=application.amount,
                        order_id=order_id,
                    ),
                    "points debit",
                )

            if remainder <= 0:
                await self._store(
                    lambda: self._confirm_order(db, order_id), "order confirmation"
                )
                result.state = CheckoutState.CONFIRMED
                logger.info("Order %s paid in full with points", order_id)
                return result

            splits = allocate_splits(split_by_vendor(settlement.items), remainder)
            payment = await self.gateway.initialize_payment(
                db,
                order_id=order_id,
                email=user.email,
                gross_amount=remainder,
                vendor_splits=splits,
            )
        except Exception as exc:
            await self._compensate(db, order_id, exc)
            raise

        result.state = CheckoutState.AWAITING_GATEWAY
        result.authorization_url = payment.authorization_url
        result.reference = payment.reference
        logger.info(
            "Order %s awaiting gateway payment %s for %s",
            order_id,
            payment.reference,
            remainder,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    async def _create_order(
        db: AsyncSession,
        user_id: str,
        settlement: SettlementInput,
        application: PointsApplication,
    ) -> Order:
        order = Order(
            user_id=user_id,
            total_amount=settlement.final_total,
            delivery_type=settlement.delivery_type,
            delivery_address_id=settlement.delivery_address_id,
            pickup_location_id=settlement.pickup_location_id,
            delivery_fee=settlement.delivery_fee,
            peps_amount=application.amount,
            payment_method=application.payment_method,
            status=OrderStatus.PENDING,
            payment_status=OrderPaymentStatus.PENDING,
        )
        db.add(order)
        await db.commit()
        return order

    @staticmethod
    async def _create_lines(
        db: AsyncSession, order_id: uuid.UUID, items: tuple[CartItem, ...]
    ) -> None:
        db.add_all(
            [
                OrderItem(
                    order_id=order_id,
                    product_id=item.product_id,
                    vendor_id=item.vendor_id,
                    quantity=item.quantity,
                    unit_price=item.price,
                    subtotal=item.subtotal,
                )
                for item in items
            ]
        )
        await db.commit()

    @staticmethod
    async def _confirm_order(db: AsyncSession, order_id: uuid.UUID) -> None:
        await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.CONFIRMED, payment_status=OrderPaymentStatus.PAID)
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()

    async def _compensate(
        self, db: AsyncSession, order_id: uuid.UUID, error: BaseException
    ) -> None:
        logger.warning(
            "Settlement failed for order %s (%s), compensating", order_id, error
        )
        try:
            await db.rollback()
            await cancel_order(db, order_id)
        except Exception:
            logger.exception(
                "Compensation failed for order %s; left for the stale order sweep",
                order_id,
            )


async def cancel_order(db: AsyncSession, order_id: uuid.UUID) -> int:
    """Cancel a still-pending order and refund any debited points.

    Orders that already left ``pending`` are untouched and keep their points.
    Returns the number of points refunded.
    """
    cancelled = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
        .values(status=OrderStatus.CANCELLED, payment_status=OrderPaymentStatus.FAILED)
        .execution_options(synchronize_session="fetch")
    )
    if cancelled.rowcount != 1:
        await db.commit()
        logger.info("Order %s is no longer pending, not cancelling", order_id)
        return 0

    refunded = await claim_order_refund(db, order_id=order_id)
    await db.commit()
    logger.info("Order %s cancelled (%d points refunded)", order_id, refunded)
    return refunded
