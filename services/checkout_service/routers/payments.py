"""Payment verification and Paystack webhook."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.checkout_service.dependencies import get_payment_gateway
from services.checkout_service.errors import PaymentNotFoundError
from services.checkout_service.models import Order, Payment
from services.checkout_service.paystack_client import verify_paystack_signature
from services.checkout_service.schemas import PaymentVerificationResponse
from services.checkout_service.services.payment_gateway import PaymentGatewayAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/payments", tags=["payments"])
logger = get_logger(__name__)

RECONCILED_EVENTS = {"charge.success", "charge.failed"}


@router.get("/verify/{reference}", response_model=PaymentVerificationResponse)
async def verify_payment(
    reference: str,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGatewayAdapter = Depends(get_payment_gateway),
):
    """Reconcile a payment after the customer returns from the hosted page."""
    result = await db.execute(
        select(Order.user_id)
        .join(Payment, Payment.order_id == Order.id)
        .where(Payment.reference == reference)
    )
    owner = result.scalar_one_or_none()
    if owner is None or owner != current_user.user_id:
        raise PaymentNotFoundError(reference)

    verification = await gateway.verify_payment(db, reference)
    return PaymentVerificationResponse.model_validate(verification)


@router.post("/webhooks/paystack")
async def paystack_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    gateway: PaymentGatewayAdapter = Depends(get_payment_gateway),
):
    """
    Paystack webhook endpoint (no auth; verified by x-paystack-signature).

    The payload only tells us which reference changed; status is always
    re-read from Paystack before anything is updated.
    """
    raw = await request.body()
    signature = request.headers.get("x-paystack-signature")
    if not signature or not verify_paystack_signature(
        raw, signature, get_settings().PAYSTACK_SECRET_KEY
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )
    data = (payload.get("data") or {}) if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )

    event = payload.get("event")
    reference = data.get("reference")
    if event not in RECONCILED_EVENTS or not reference:
        return {"received": True}

    try:
        verification = await gateway.verify_payment(db, reference)
    except PaymentNotFoundError:
        logger.warning(
            "Webhook received for unknown payment reference: %s",
            reference,
            extra={"extra_fields": {"reference": reference, "event": event}},
        )
        return {"received": True}

    logger.info(
        "Webhook %s reconciled %s -> %s",
        event,
        reference,
        verification.payment_status.value,
    )
    return {"received": True}
