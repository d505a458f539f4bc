from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.models import AuthUser
from libs.auth.supabase import SupabaseAuthClient
from libs.common.config import get_settings
from libs.common.health import HealthProber
from libs.common.network import NetworkMonitor
from libs.common.resilience import ResilientExecutor
from libs.db.base import Base
from services.checkout_service import models as _checkout_models  # noqa: F401
from services.checkout_service.delivery import DeliveryFeeQuoter
from services.checkout_service.dependencies import CheckoutServices
from services.checkout_service.paystack_client import PaystackClient
from services.checkout_service.services.payment_gateway import PaymentGatewayAdapter
from services.checkout_service.services.settlement import SettlementOrchestrator
from tests.fakes import FakePaystack, FakeSupabase, RecordingSleep

settings = get_settings()

TEST_USER_ID = "user-1"
TEST_USER_EMAIL = "buyer@example.com"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Request layer
# ---------------------------------------------------------------------------


@pytest.fixture
def sleep_recorder() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def network() -> NetworkMonitor:
    return NetworkMonitor()


@pytest.fixture
def executor(network, sleep_recorder) -> ResilientExecutor:
    return ResilientExecutor(network, sleep=sleep_recorder)


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_paystack() -> FakePaystack:
    return FakePaystack()


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def gateway(fake_paystack, executor) -> PaymentGatewayAdapter:
    client = PaystackClient(
        "sk_test_key", base_url="https://paystack.test", transport=fake_paystack.transport
    )
    return PaymentGatewayAdapter(client, executor)


@pytest.fixture
def orchestrator(executor, gateway) -> SettlementOrchestrator:
    return SettlementOrchestrator(executor, gateway)


@pytest.fixture
def auth_client(fake_supabase) -> SupabaseAuthClient:
    return SupabaseAuthClient(
        "http://supabase.test", "anon-key", transport=fake_supabase.transport
    )


@pytest.fixture
def quoter(executor, fake_supabase) -> DeliveryFeeQuoter:
    return DeliveryFeeQuoter(
        executor,
        base_url="http://supabase.test",
        api_key="anon-key",
        transport=fake_supabase.transport,
    )


@pytest.fixture
def test_user() -> AuthUser:
    return AuthUser(user_id=TEST_USER_ID, email=TEST_USER_EMAIL)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def make_token(user_id: str = TEST_USER_ID, email: str = TEST_USER_EMAIL) -> str:
    """Sign a Supabase-style access token with the test secret."""
    return jwt.encode(
        {"sub": user_id, "email": email, "role": "authenticated", "aud": "authenticated"},
        settings.SUPABASE_JWT_SECRET,
        algorithm="HS256",
    )


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def checkout_services(
    network, executor, auth_client, gateway, quoter, orchestrator
) -> CheckoutServices:
    async def _ok() -> None:
        return None

    health = HealthProber({"auth": _ok, "data": _ok}, network=network)
    return CheckoutServices(
        network=network,
        health=health,
        executor=executor,
        auth_client=auth_client,
        gateway=gateway,
        quoter=quoter,
        orchestrator=orchestrator,
    )


@pytest_asyncio.fixture
async def client(db_session, checkout_services) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient bound to a checkout app whose DB dependency is the
    test session.
    """
    from libs.db.session import get_async_db
    from services.checkout_service.app.main import create_app

    app = create_app(checkout_services)
    app.dependency_overrides[get_async_db] = lambda: db_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
