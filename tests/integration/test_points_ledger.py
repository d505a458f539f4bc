"""Integration tests for the atomic points debit and its compensation."""

import pytest
from services.checkout_service.errors import InsufficientPointsError
from services.checkout_service.models import (
    Order,
    PointsLedgerEntry,
    PointsTransactionType,
    Profile,
)
from services.checkout_service.services.points_ledger import (
    debit_points,
    get_points_balance,
    refund_order_points,
)
from sqlalchemy import select
from tests.factories import OrderFactory, ProfileFactory


async def _seed(db, balance):
    profile = ProfileFactory.create(points_balance=balance)
    order = OrderFactory.create(user_id=profile.id)
    db.add_all([profile, order])
    await db.commit()
    # Keep plain ids: a failed debit rolls back and expires instances
    return profile.id, order.id


async def _ledger(db, user_id):
    result = await db.execute(
        select(PointsLedgerEntry)
        .where(PointsLedgerEntry.user_id == user_id)
        .order_by(PointsLedgerEntry.points.asc())
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
@pytest.mark.integration
async def test_balance_for_unknown_user_is_zero(db_session):
    assert await get_points_balance(db_session, "nobody") == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_debit_decrements_balance_and_writes_ledger(db_session):
    user_id, order_id = await _seed(db_session, 5000)

    entry = await debit_points(
        db_session, user_id=user_id, amount=2000, order_id=order_id
    )

    assert entry.points == -2000
    assert entry.transaction_type == PointsTransactionType.SPENT
    assert entry.source == "order"
    assert entry.reference_id == str(order_id)
    assert await get_points_balance(db_session, user_id) == 3000

    order = await db_session.get(Order, order_id, populate_existing=True)
    assert order.points_debited == 2000


@pytest.mark.asyncio
@pytest.mark.integration
async def test_debit_exceeding_balance_writes_nothing(db_session):
    user_id, order_id = await _seed(db_session, 1000)

    with pytest.raises(InsufficientPointsError) as exc_info:
        await debit_points(
            db_session, user_id=user_id, amount=1500, order_id=order_id
        )

    assert exc_info.value.status_code == 409
    assert await get_points_balance(db_session, user_id) == 1000
    assert await _ledger(db_session, user_id) == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_debit_without_profile_is_insufficient(db_session):
    order = OrderFactory.create()
    db_session.add(order)
    await db_session.commit()

    with pytest.raises(InsufficientPointsError):
        await debit_points(db_session, user_id=order.user_id, amount=1, order_id=order.id)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_second_debit_cannot_overdraw(db_session):
    user_id, order_id = await _seed(db_session, 3000)

    await debit_points(db_session, user_id=user_id, amount=2000, order_id=order_id)
    with pytest.raises(InsufficientPointsError):
        await debit_points(db_session, user_id=user_id, amount=2000, order_id=order_id)

    assert await get_points_balance(db_session, user_id) == 1000


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_restores_balance_once(db_session):
    user_id, order_id = await _seed(db_session, 5000)
    await debit_points(db_session, user_id=user_id, amount=2000, order_id=order_id)

    assert await refund_order_points(db_session, order_id=order_id) == 2000
    assert await refund_order_points(db_session, order_id=order_id) == 0

    assert await get_points_balance(db_session, user_id) == 5000
    entries = await _ledger(db_session, user_id)
    assert [(e.points, e.transaction_type) for e in entries] == [
        (-2000, PointsTransactionType.SPENT),
        (2000, PointsTransactionType.REFUNDED),
    ]
    assert entries[1].source == "order_cancelled"

    refreshed = await db_session.get(Order, order_id, populate_existing=True)
    assert refreshed.points_debited == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_without_debit_is_noop(db_session):
    user_id, order_id = await _seed(db_session, 5000)

    assert await refund_order_points(db_session, order_id=order_id) == 0

    refreshed = await db_session.get(Profile, user_id, populate_existing=True)
    assert refreshed.points_balance == 5000
