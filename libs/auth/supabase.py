"""
Supabase Auth (GoTrue) HTTP client.

Provides async methods for:
- Password sign-in
- Passwordless magic-link delivery
- Auth endpoint health probing
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from libs.common.config import get_settings
from libs.common.errors import ServiceError
from libs.common.logging import get_logger
from libs.common.resilience import UpstreamServerError

logger = get_logger(__name__)


@dataclass
class AuthSession:
    """Tokens returned by a successful sign-in."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: Optional[int]
    user_id: Optional[str]


class SupabaseAuthError(ServiceError):
    """Supabase rejected the request (bad credentials, unknown user, ...)."""

    status_code = 401
    code = "AUTH_FAILED"

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class SupabaseAuthClient:
    """Async client for the Supabase auth endpoints used at sign-in."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.anon_key = anon_key or settings.SUPABASE_ANON_KEY
        self._transport = transport
        self._timeout = timeout
        self._headers = {
            "apikey": self.anon_key,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict = None,
        json_data: dict = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method, path, headers=self._headers, params=params, json=json_data
            )

        if response.status_code >= 500:
            raise UpstreamServerError(response.status_code, str(response.url))
        return response

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        try:
            data = response.json()
        except ValueError:
            return fallback
        return (
            data.get("error_description")
            or data.get("msg")
            or data.get("message")
            or fallback
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """
        Exchange email + password for a session.

        Raises:
            SupabaseAuthError: credentials rejected (terminal, never retried)
            UpstreamServerError: Supabase answered 5xx (retryable)
        """
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json_data={"email": email, "password": password},
        )
        if not response.is_success:
            raise SupabaseAuthError(
                self._error_message(response, "Invalid login credentials"),
                upstream_status=response.status_code,
            )

        data = response.json()
        return AuthSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            user_id=(data.get("user") or {}).get("id"),
        )

    async def send_magic_link(self, email: str) -> None:
        """Send a passwordless sign-in link to an existing user."""
        response = await self._request(
            "POST",
            "/auth/v1/otp",
            json_data={"email": email, "create_user": False},
        )
        if not response.is_success:
            raise SupabaseAuthError(
                self._error_message(response, "Could not send sign-in link"),
                upstream_status=response.status_code,
            )
        logger.info("Magic link sent to %s", email)

    async def health(self) -> None:
        """Raise unless the auth endpoint answers 2xx."""
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.get("/auth/v1/health", headers=self._headers)
        response.raise_for_status()
