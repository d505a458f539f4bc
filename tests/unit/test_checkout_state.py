"""Unit tests for the checkout state machine."""

from decimal import Decimal

import pytest
from services.checkout_service.checkout_state import CheckoutSession, CheckoutState
from services.checkout_service.errors import BusinessRuleError
from services.checkout_service.models import DeliveryType
from tests.factories import cart_item


def _delivery_session(fee="800") -> CheckoutSession:
    session = CheckoutSession()
    session.select_delivery_type(DeliveryType.DELIVERY)
    session.select_vendor_location("vendor-loc-1")
    session.select_delivery_address("addr-1")
    session.receive_quote(Decimal(fee))
    return session


# ---------------------------------------------------------------------------
# Pickup
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_new_session_is_idle():
    session = CheckoutSession()

    assert session.state == CheckoutState.IDLE
    assert session.delivery_type == DeliveryType.PICKUP
    assert session.delivery_fee == Decimal("0")


@pytest.mark.unit
def test_pickup_ready_after_location():
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")

    assert session.state == CheckoutState.READY


@pytest.mark.unit
def test_submit_before_ready_is_rejected():
    session = CheckoutSession()

    with pytest.raises(BusinessRuleError, match="pickup location"):
        session.begin_submit([cart_item()])
    assert session.state == CheckoutState.IDLE


@pytest.mark.unit
def test_begin_submit_freezes_pickup_input():
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")

    settlement = session.begin_submit(
        [cart_item("a", "1500", 2), cart_item("b", "2000", 1)], points_requested=500
    )

    assert session.state == CheckoutState.SUBMITTING
    assert settlement.subtotal == Decimal("5000")
    assert settlement.delivery_fee == Decimal("0")
    assert settlement.final_total == Decimal("5000")
    assert settlement.points_requested == 500
    assert settlement.pickup_location_id == "pickup-1"
    assert settlement.delivery_address_id is None


@pytest.mark.unit
def test_empty_cart_is_rejected():
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")

    with pytest.raises(BusinessRuleError, match="cart is empty"):
        session.begin_submit([])


@pytest.mark.unit
def test_invalid_quantity_is_rejected():
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")

    with pytest.raises(BusinessRuleError, match="Invalid quantity"):
        session.begin_submit([cart_item(quantity=0)])


# ---------------------------------------------------------------------------
# Delivery fee gate
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_delivery_waits_for_quote_and_acceptance():
    session = CheckoutSession()
    session.select_delivery_type(DeliveryType.DELIVERY)
    session.select_vendor_location("vendor-loc-1")
    session.select_delivery_address("addr-1")

    assert session.state == CheckoutState.DELIVERY_PENDING
    assert session.needs_quote is True

    session.receive_quote(Decimal("800"))
    assert session.state == CheckoutState.DELIVERY_PENDING
    assert session.delivery_fee == Decimal("0")
    with pytest.raises(BusinessRuleError, match="accept the delivery fee"):
        session.begin_submit([cart_item()])

    session.accept_delivery_fee()
    assert session.state == CheckoutState.READY
    assert session.delivery_fee == Decimal("800")


@pytest.mark.unit
def test_delivery_settlement_includes_accepted_fee():
    session = _delivery_session()
    session.accept_delivery_fee()

    settlement = session.begin_submit([cart_item("a", "5000", 1)], points_requested=2000)

    assert settlement.delivery_type == DeliveryType.DELIVERY
    assert settlement.accepted_delivery_fee == Decimal("800")
    assert settlement.final_total == Decimal("5800")
    assert settlement.delivery_address_id == "addr-1"
    assert settlement.pickup_location_id is None


@pytest.mark.unit
def test_decline_falls_back_to_pickup():
    session = _delivery_session()

    session.decline_delivery_fee()

    assert session.delivery_type == DeliveryType.PICKUP
    assert session.delivery_fee == Decimal("0")
    assert session.quoted_fee is None
    assert session.state == CheckoutState.IDLE
    with pytest.raises(BusinessRuleError, match="pickup location"):
        session.begin_submit([cart_item()])

    session.select_pickup_location("pickup-2")
    assert session.state == CheckoutState.READY


@pytest.mark.unit
def test_changing_address_discards_quote():
    session = _delivery_session()
    session.accept_delivery_fee()

    session.select_delivery_address("addr-2")

    assert session.quoted_fee is None
    assert session.fee_accepted is False
    assert session.state == CheckoutState.DELIVERY_PENDING


@pytest.mark.unit
def test_quote_without_pending_delivery_is_rejected():
    session = CheckoutSession()

    with pytest.raises(BusinessRuleError):
        session.receive_quote(Decimal("500"))


@pytest.mark.unit
def test_negative_quote_is_rejected():
    session = CheckoutSession()
    session.select_delivery_type(DeliveryType.DELIVERY)
    session.select_vendor_location("vendor-loc-1")
    session.select_delivery_address("addr-1")

    with pytest.raises(BusinessRuleError, match="negative"):
        session.receive_quote(Decimal("-1"))


# ---------------------------------------------------------------------------
# Terminal states
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "finish, expected",
    [
        (lambda s: s.mark_confirmed(), CheckoutState.CONFIRMED),
        (lambda s: s.mark_awaiting_gateway(), CheckoutState.AWAITING_GATEWAY),
        (lambda s: s.mark_failed("boom"), CheckoutState.FAILED),
    ],
)
def test_submission_outcomes_are_terminal(finish, expected):
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")
    session.begin_submit([cart_item()])

    finish(session)

    assert session.state == expected
    with pytest.raises(BusinessRuleError):
        session.select_pickup_location("pickup-2")


@pytest.mark.unit
def test_outcome_requires_submission():
    session = CheckoutSession()
    session.select_pickup_location("pickup-1")

    with pytest.raises(BusinessRuleError):
        session.mark_confirmed()
