"""Hosted-payment initialization and status reconciliation.

Verification only moves state forward: a completed payment never returns to
failed, a confirmed order never returns to pending, and points are never
touched here.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from libs.common.currency import kobo_to_naira
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.resilience import ResilientExecutor, RetryPolicy
from services.checkout_service.errors import PaymentNotFoundError
from services.checkout_service.fees import VendorSplit, build_gateway_split
from services.checkout_service.models import (
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from services.checkout_service.paystack_client import (
    PaystackClient,
    VerifiedTransaction,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

INITIALIZE_POLICY = RetryPolicy(timeout=20.0, max_retries=3, health_gated=True)
VERIFY_POLICY = RetryPolicy(timeout=15.0, max_retries=2, health_gated=True)

GATEWAY_SUCCESS = "success"


@dataclass
class PaymentInitialization:
    authorization_url: str
    reference: str
    split_config: dict
    charged_amount_kobo: int


@dataclass
class PaymentVerification:
    status: str
    amount: Decimal
    reference: str
    payment_status: PaymentStatus
    order_id: uuid.UUID


def generate_reference() -> str:
    return f"PEPS-{uuid.uuid4().hex[:16].upper()}"


class PaymentGatewayAdapter:
    def __init__(
        self,
        client: PaystackClient,
        executor: ResilientExecutor,
        *,
        callback_url: Optional[str] = None,
        initialize_policy: RetryPolicy = INITIALIZE_POLICY,
        verify_policy: RetryPolicy = VERIFY_POLICY,
    ):
        self.client = client
        self.executor = executor
        self.callback_url = callback_url
        self.initialize_policy = initialize_policy
        self.verify_policy = verify_policy

    async def initialize_payment(
        self,
        db: AsyncSession,
        *,
        order_id: uuid.UUID,
        email: str,
        gross_amount: Decimal,
        vendor_splits: list[VendorSplit],
    ) -> PaymentInitialization:
        """Open a hosted payment session and record a pending payment.

        ``gross_amount`` is the pre-markup cash leg; the gateway is charged
        ``gross_amount * 1.025``.
        """
        gateway_split = build_gateway_split(gross_amount, vendor_splits)
        reference = generate_reference()

        txn = await self.executor.execute(
            lambda: self.client.initialize_transaction(
                email=email,
                amount_kobo=gateway_split.charged_amount_kobo,
                split=gateway_split.split,
                reference=reference,
                callback_url=self.callback_url,
                metadata={"order_id": str(order_id)},
            ),
            self.initialize_policy,
            name="payment initialization",
        )

        payment = Payment(
            order_id=order_id,
            reference=txn.reference,
            amount=gross_amount,
            charged_amount_kobo=gateway_split.charged_amount_kobo,
            split_config=gateway_split.as_config(),
            status=PaymentStatus.PENDING,
        )
        db.add(payment)
        await db.commit()

        logger.info(
            "Initialized payment %s for order %s (%d kobo)",
            txn.reference,
            order_id,
            gateway_split.charged_amount_kobo,
        )
        return PaymentInitialization(
            authorization_url=txn.authorization_url,
            reference=txn.reference,
            split_config=payment.split_config,
            charged_amount_kobo=payment.charged_amount_kobo,
        )

    async def verify_payment(
        self, db: AsyncSession, reference: str
    ) -> PaymentVerification:
        """Ask the gateway for ``reference`` and reconcile local records."""
        await self._get_payment(db, reference)

        txn = await self.executor.execute(
            lambda: self.client.verify_transaction(reference),
            self.verify_policy,
            name="payment verification",
        )
        # Lock only after the remote call returns
        payment = await self._get_payment(db, reference, lock=True)
        return await self.apply_verification(db, payment, txn)

    async def _get_payment(
        self, db: AsyncSession, reference: str, *, lock: bool = False
    ) -> Payment:
        query = select(Payment).where(Payment.reference == reference)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        payment = result.scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(reference)
        return payment

    async def apply_verification(
        self, db: AsyncSession, payment: Payment, txn: VerifiedTransaction
    ) -> PaymentVerification:
        result = await db.execute(
            select(Order)
            .where(Order.id == payment.order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        payment.gateway_status = txn.status

        if txn.status == GATEWAY_SUCCESS and txn.amount != payment.charged_amount_kobo:
            logger.error(
                "Amount mismatch for %s: expected %d kobo, gateway reported %d",
                payment.reference,
                payment.charged_amount_kobo,
                txn.amount,
            )
            if payment.status != PaymentStatus.COMPLETED:
                payment.status = PaymentStatus.FAILED
                payment.payment_metadata = {
                    **(payment.payment_metadata or {}),
                    "verification_error": "amount_mismatch",
                    "gateway_amount_kobo": txn.amount,
                }
        elif txn.status == GATEWAY_SUCCESS:
            if payment.status != PaymentStatus.COMPLETED:
                payment.status = PaymentStatus.COMPLETED
                payment.verified_at = txn.paid_at or utc_now()
                logger.info("Payment %s completed", payment.reference)
            if order is not None:
                self._confirm_order(order, payment.reference)
        elif payment.status != PaymentStatus.COMPLETED:
            payment.status = PaymentStatus.FAILED
            logger.warning(
                "Payment %s not successful (gateway status: %s)",
                payment.reference,
                txn.status or "unknown",
            )

        await db.commit()

        return PaymentVerification(
            status=txn.status,
            amount=kobo_to_naira(txn.amount),
            reference=payment.reference,
            payment_status=payment.status,
            order_id=payment.order_id,
        )

    @staticmethod
    def _confirm_order(order: Order, reference: str) -> None:
        if order.status == OrderStatus.CONFIRMED:
            return
        if order.status == OrderStatus.CANCELLED:
            # Money arrived for an order that was already compensated
            logger.error(
                "Payment %s succeeded for cancelled order %s; manual refund required",
                reference,
                order.id,
            )
            return
        order.status = OrderStatus.CONFIRMED
        order.payment_status = OrderPaymentStatus.PAID
        logger.info("Order %s confirmed by payment %s", order.id, reference)
