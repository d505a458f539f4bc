"""Checkout endpoints: points preview, delivery quote, order submission."""

from fastapi import APIRouter, Depends, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.common.rate_limit import checkout_limit
from libs.db.session import get_async_db
from services.checkout_service.checkout_state import CheckoutSession, CheckoutState
from services.checkout_service.delivery import Coordinates, DeliveryFeeQuoter
from services.checkout_service.dependencies import get_delivery_quoter, get_orchestrator
from services.checkout_service.models import DeliveryType
from services.checkout_service.points import apply_points, cash_remainder, redeemable_cap
from services.checkout_service.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    DeliveryQuoteRequest,
    DeliveryQuoteResponse,
    PointsPreviewRequest,
    PointsPreviewResponse,
)
from services.checkout_service.services.points_ledger import get_points_balance
from services.checkout_service.services.settlement import SettlementOrchestrator
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/points/preview", response_model=PointsPreviewResponse)
async def preview_points(
    payload: PointsPreviewRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Show how a points request would apply to an order total."""
    available = await get_points_balance(db, current_user.user_id)
    application = apply_points(payload.points_requested, available, payload.order_total)
    return PointsPreviewResponse(
        available_points=available,
        max_redeemable=redeemable_cap(available, payload.order_total),
        points_applied=application.amount,
        payment_method=application.payment_method,
        cash_remainder=cash_remainder(payload.order_total, application.amount),
    )


@router.post("/delivery-quote", response_model=DeliveryQuoteResponse)
async def quote_delivery(
    payload: DeliveryQuoteRequest,
    current_user: AuthUser = Depends(get_current_user),
    quoter: DeliveryFeeQuoter = Depends(get_delivery_quoter),
):
    """Quote a delivery fee; the returned token is submitted with checkout."""
    quote = await quoter.quote(
        user_id=current_user.user_id,
        vendor_location_id=payload.vendor_location.id,
        vendor=Coordinates(payload.vendor_location.latitude, payload.vendor_location.longitude),
        delivery_address_id=payload.delivery_address.id,
        destination=Coordinates(
            payload.delivery_address.latitude, payload.delivery_address.longitude
        ),
    )
    return DeliveryQuoteResponse(
        fee=quote.fee, quote_token=quote.quote_token, expires_at=quote.expires_at
    )


def build_checkout_session(
    payload: CheckoutRequest, user: AuthUser, quoter: DeliveryFeeQuoter
) -> CheckoutSession:
    """Replay the client's selections through the checkout state machine."""
    session = CheckoutSession()
    session.select_delivery_type(payload.delivery_type)

    if payload.delivery_type == DeliveryType.PICKUP and payload.pickup_location_id:
        session.select_pickup_location(payload.pickup_location_id)

    if payload.delivery_type == DeliveryType.DELIVERY:
        if payload.vendor_location_id:
            session.select_vendor_location(payload.vendor_location_id)
        if payload.delivery_address_id:
            session.select_delivery_address(payload.delivery_address_id)
        if payload.delivery_quote_token and session.needs_quote:
            fee = quoter.verify_quote(
                payload.delivery_quote_token,
                user_id=user.user_id,
                vendor_location_id=payload.vendor_location_id,
                delivery_address_id=payload.delivery_address_id,
            )
            session.receive_quote(fee)
            if payload.accept_delivery_fee:
                session.accept_delivery_fee()
    return session


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
@checkout_limit
async def submit_checkout(
    request: Request,
    payload: CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    quoter: DeliveryFeeQuoter = Depends(get_delivery_quoter),
    orchestrator: SettlementOrchestrator = Depends(get_orchestrator),
):
    """
    Place an order.

    Returns ``confirmed`` when points cover the total, otherwise
    ``awaiting_gateway`` with the hosted payment URL.
    """
    session = build_checkout_session(payload, current_user, quoter)
    settlement = session.begin_submit(
        [item.to_cart_item() for item in payload.items], payload.points_requested
    )

    try:
        result = await orchestrator.submit(db, current_user, settlement)
    except Exception as exc:
        session.mark_failed(getattr(exc, "message", str(exc)))
        raise

    if result.state == CheckoutState.CONFIRMED:
        session.mark_confirmed()
    else:
        session.mark_awaiting_gateway()
    return CheckoutResponse.model_validate(result)
