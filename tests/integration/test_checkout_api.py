"""Integration tests for the checkout HTTP surface."""

import uuid
from decimal import Decimal

import pytest
from services.checkout_service.models import (
    Order,
    OrderPaymentStatus,
    OrderStatus,
    Payment,
    Profile,
)
from sqlalchemy import select
from tests.conftest import TEST_USER_EMAIL, TEST_USER_ID, make_token

VENDOR_LOCATION = {"id": "vendor-loc-1", "latitude": 6.5244, "longitude": 3.3792}
DELIVERY_ADDRESS = {"id": "addr-1", "latitude": 6.4654, "longitude": 3.4064}


async def _give_points(db, balance):
    db.add(Profile(id=TEST_USER_ID, email=TEST_USER_EMAIL, points_balance=balance))
    await db.commit()


def _items(*lines):
    return [
        {"product_id": f"p{i}", "vendor_id": vendor, "price": price, "quantity": qty}
        for i, (vendor, price, qty) in enumerate(lines)
    ]


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "checkout"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_dependency_health(client):
    response = await client.get("/health/dependencies")

    assert response.status_code == 200
    data = response.json()
    assert data["healthy"] is True
    assert data["services"] == {"auth": True, "data": True}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


# ---------------------------------------------------------------------------
# Points preview
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_points_preview(client, db_session, auth_headers):
    await _give_points(db_session, 2000)

    response = await client.post(
        "/checkout/points/preview",
        json={"order_total": "5800", "points_requested": 3000},
        headers=auth_headers,
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["available_points"] == 2000
    assert data["max_redeemable"] == 2000
    assert data["points_applied"] == 2000
    assert data["payment_method"] == "mixed"
    assert Decimal(data["cash_remainder"]) == Decimal("3800")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_preview_requires_auth(client):
    response = await client.post(
        "/checkout/points/preview", json={"order_total": "100", "points_requested": 0}
    )

    assert response.status_code == 401


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_paid_with_points(client, db_session, auth_headers, fake_paystack):
    await _give_points(db_session, 10000)

    response = await client.post(
        "/checkout",
        json={
            "items": _items(("vendor-a", "10000", 1)),
            "pickup_location_id": "pickup-1",
            "points_requested": 10000,
        },
        headers=auth_headers,
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["state"] == "confirmed"
    assert data["payment_method"] == "points"
    assert data["authorization_url"] is None
    assert fake_paystack.initialized == []

    order = await db_session.get(
        Order, uuid.UUID(data["order_id"]), populate_existing=True
    )
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == OrderPaymentStatus.PAID


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivery_checkout_with_quote(client, db_session, auth_headers, fake_paystack):
    await _give_points(db_session, 2000)

    quote = await client.post(
        "/checkout/delivery-quote",
        json={"vendor_location": VENDOR_LOCATION, "delivery_address": DELIVERY_ADDRESS},
        headers=auth_headers,
    )
    assert quote.status_code == 200, quote.text
    assert Decimal(quote.json()["fee"]) == Decimal("800")

    response = await client.post(
        "/checkout",
        json={
            "items": _items(("vendor-a", "5000", 1)),
            "delivery_type": "delivery",
            "vendor_location_id": "vendor-loc-1",
            "delivery_address_id": "addr-1",
            "delivery_quote_token": quote.json()["quote_token"],
            "accept_delivery_fee": True,
            "points_requested": 2000,
        },
        headers=auth_headers,
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["state"] == "awaiting_gateway"
    assert data["payment_method"] == "mixed"
    assert Decimal(data["final_total"]) == Decimal("5800")
    assert Decimal(data["cash_remainder"]) == Decimal("3800")
    assert data["authorization_url"].endswith(data["reference"])
    assert fake_paystack.initialized[0]["amount"] == 389500


@pytest.mark.asyncio
@pytest.mark.integration
async def test_delivery_without_acceptance_is_rejected(client, auth_headers, fake_supabase):
    quote = await client.post(
        "/checkout/delivery-quote",
        json={"vendor_location": VENDOR_LOCATION, "delivery_address": DELIVERY_ADDRESS},
        headers=auth_headers,
    )

    response = await client.post(
        "/checkout",
        json={
            "items": _items(("vendor-a", "5000", 1)),
            "delivery_type": "delivery",
            "vendor_location_id": "vendor-loc-1",
            "delivery_address_id": "addr-1",
            "delivery_quote_token": quote.json()["quote_token"],
            "accept_delivery_fee": False,
        },
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "BUSINESS_RULE_VIOLATION"
    assert "accept the delivery fee" in response.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_quote_for_another_address_is_rejected(client, auth_headers):
    quote = await client.post(
        "/checkout/delivery-quote",
        json={"vendor_location": VENDOR_LOCATION, "delivery_address": DELIVERY_ADDRESS},
        headers=auth_headers,
    )

    response = await client.post(
        "/checkout",
        json={
            "items": _items(("vendor-a", "5000", 1)),
            "delivery_type": "delivery",
            "vendor_location_id": "vendor-loc-1",
            "delivery_address_id": "addr-2",
            "delivery_quote_token": quote.json()["quote_token"],
            "accept_delivery_fee": True,
        },
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DELIVERY_QUOTE"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_pickup_location_is_rejected(client, db_session, auth_headers):
    response = await client.post(
        "/checkout",
        json={"items": _items(("vendor-a", "1000", 1))},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Please select a pickup location"
    assert (await db_session.execute(select(Order))).first() is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_offline_checkout_returns_503(client, db_session, auth_headers, network):
    network.set_offline()

    response = await client.post(
        "/checkout",
        json={"items": _items(("vendor-a", "1000", 1)), "pickup_location_id": "pickup-1"},
        headers=auth_headers,
    )

    assert response.status_code == 503
    assert response.json()["code"] == "NO_CONNECTION"
    assert (await db_session.execute(select(Order))).first() is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_refusal_returns_502(client, db_session, auth_headers, fake_paystack):
    fake_paystack.fail_initialize_with = "Invalid key"

    response = await client.post(
        "/checkout",
        json={"items": _items(("vendor-a", "1000", 1)), "pickup_location_id": "pickup-1"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["code"] == "PAYMENT_GATEWAY_ERROR"
    order = (
        await db_session.execute(select(Order).execution_options(populate_existing=True))
    ).scalar_one()
    assert order.status == OrderStatus.CANCELLED


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_after_redirect(client, db_session, auth_headers):
    checkout = await client.post(
        "/checkout",
        json={"items": _items(("vendor-a", "1000", 2)), "pickup_location_id": "pickup-1"},
        headers=auth_headers,
    )
    reference = checkout.json()["reference"]

    response = await client.get(f"/payments/verify/{reference}", headers=auth_headers)

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "success"
    assert data["payment_status"] == "completed"
    assert Decimal(data["amount"]) == Decimal("2050.00")

    payment = (
        await db_session.execute(
            select(Payment)
            .where(Payment.reference == reference)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert payment.verified_at is not None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verify_hides_other_users_payments(client, auth_headers):
    checkout = await client.post(
        "/checkout",
        json={"items": _items(("vendor-a", "1000", 1)), "pickup_location_id": "pickup-1"},
        headers=auth_headers,
    )
    reference = checkout.json()["reference"]

    other = {"Authorization": f"Bearer {make_token('user-2', 'other@example.com')}"}
    response = await client.get(f"/payments/verify/{reference}", headers=other)

    assert response.status_code == 404
    assert response.json()["code"] == "PAYMENT_NOT_FOUND"


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sign_in(client):
    response = await client.post(
        "/auth/sign-in", json={"email": "buyer@example.com", "password": "secret"}
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "signed_in"
    assert data["access_token"] == "access-token"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sign_in_falls_back_to_magic_link(client, fake_supabase):
    fake_supabase.token_behaviour = "network"

    response = await client.post(
        "/auth/sign-in", json={"email": "buyer@example.com", "password": "secret"}
    )

    assert response.status_code == 202
    assert response.json()["status"] == "magic_link_sent"
    assert fake_supabase.otp_calls == ["buyer@example.com"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sign_in_bad_credentials(client, fake_supabase):
    fake_supabase.token_behaviour = "bad_credentials"

    response = await client.post(
        "/auth/sign-in", json={"email": "buyer@example.com", "password": "nope"}
    )

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_FAILED"
