"""Sign-in with retries, metrics and a magic-link fallback.

``robust_sign_in`` waits briefly for connectivity, runs the password sign-in
through the resilient executor (health gated) and, when every attempt times
out or hits a network error, degrades to sending a passwordless sign-in link.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Optional

from libs.auth.supabase import AuthSession, SupabaseAuthClient
from libs.common.errors import ConnectivityError, RetriesExhaustedError
from libs.common.logging import get_logger
from libs.common.resilience import ResilientExecutor, RetryPolicy

logger = get_logger(__name__)

MAGIC_LINK_MESSAGE = "Email sign-in link sent. Please check your inbox."
CONNECTION_WAIT_SECONDS = 5.0

SIGN_IN_POLICY = RetryPolicy(
    timeout=15.0, max_retries=2, retry_delays=(2.0, 5.0), health_gated=True
)
MAGIC_LINK_POLICY = RetryPolicy(timeout=10.0, max_retries=0)


@dataclass
class AuthMetrics:
    event: str
    duration_ms: float
    method: str
    error: Optional[str] = None


@dataclass
class SignInOutcome:
    session: Optional[AuthSession]
    magic_link_sent: bool
    message: str


def log_auth_metrics(metrics: AuthMetrics) -> None:
    logger.info("Auth metrics", extra={"extra_fields": asdict(metrics)})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


async def robust_sign_in(
    auth_client: SupabaseAuthClient,
    executor: ResilientExecutor,
    email: str,
    password: str,
    *,
    policy: RetryPolicy = SIGN_IN_POLICY,
) -> SignInOutcome:
    if not await executor.network.wait_for_connection(CONNECTION_WAIT_SECONDS):
        raise ConnectivityError()

    async def _attempt() -> AuthSession:
        started = time.perf_counter()
        try:
            session = await auth_client.sign_in_with_password(email, password)
        except asyncio.CancelledError:
            # Cancelled by the per-attempt timeout
            log_auth_metrics(
                AuthMetrics("login_timeout", _elapsed_ms(started), "password", "timeout")
            )
            raise
        except Exception as exc:
            log_auth_metrics(
                AuthMetrics("login_failure", _elapsed_ms(started), "password", str(exc))
            )
            raise
        log_auth_metrics(AuthMetrics("login_success", _elapsed_ms(started), "password"))
        return session

    try:
        session = await executor.execute(_attempt, policy, name="sign-in")
    except RetriesExhaustedError as exhausted:
        logger.warning(
            "Sign-in retries exhausted for %s, falling back to magic link", email
        )
        started = time.perf_counter()
        try:
            await executor.execute(
                lambda: auth_client.send_magic_link(email),
                MAGIC_LINK_POLICY,
                name="magic-link",
            )
        except Exception as fallback_exc:
            log_auth_metrics(
                AuthMetrics(
                    "magic_link_failure",
                    _elapsed_ms(started),
                    "magic_link",
                    str(fallback_exc),
                )
            )
            raise exhausted from fallback_exc
        log_auth_metrics(AuthMetrics("magic_link_sent", _elapsed_ms(started), "magic_link"))
        return SignInOutcome(session=None, magic_link_sent=True, message=MAGIC_LINK_MESSAGE)

    return SignInOutcome(session=session, magic_link_sent=False, message="Signed in")
