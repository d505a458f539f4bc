"""
Paystack API client for hosted checkout.

Provides async methods for:
- Initializing a transaction with a multi-vendor split
- Verifying a transaction by reference
- Checking webhook signatures
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.errors import ServiceError
from libs.common.logging import get_logger
from libs.common.resilience import UpstreamServerError

logger = get_logger(__name__)


@dataclass
class InitializedTransaction:
    """Result of initializing a hosted payment page."""

    authorization_url: str
    access_code: Optional[str]
    reference: str


@dataclass
class VerifiedTransaction:
    """Gateway view of a transaction."""

    reference: str
    status: str  # success, failed, abandoned, ongoing, pending, reversed
    amount: int  # in kobo
    currency: str
    paid_at: Optional[datetime] = None
    gateway_response: Optional[str] = None


class PaystackError(ServiceError):
    """Paystack answered but refused the request."""

    status_code = 502
    code = "PAYMENT_GATEWAY_ERROR"

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.upstream_status = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def verify_paystack_signature(raw_body: bytes, signature: str, secret_key: str) -> bool:
    """Compare the x-paystack-signature header to HMAC-SHA512 of the body."""
    expected = hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class PaystackClient:
    """Async client for the Paystack Transaction API."""

    def __init__(
        self,
        secret_key: str = None,
        *,
        base_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        if not self.secret_key:
            raise ValueError("PAYSTACK_SECRET_KEY is required")
        self.base_url = (base_url or settings.PAYSTACK_API_BASE_URL).rstrip("/")
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict = None,
        json_data: dict = None,
    ) -> dict:
        """Make an async request to Paystack API.

        Timeouts are enforced by the caller's retry policy, so the client
        itself only sets a generous transport ceiling.
        """
        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(timeout=60.0, transport=self._transport) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=self._headers,
                params=params,
                json=json_data,
            )

        if response.status_code >= 500:
            logger.error("Paystack server error: %s on %s", response.status_code, endpoint)
            raise UpstreamServerError(response.status_code, url)

        try:
            data = response.json()
        except ValueError:
            raise PaystackError(
                message="Invalid response from payment gateway",
                status_code=response.status_code,
            )

        if not response.is_success:
            logger.error("Paystack API error: %s - %s", response.status_code, data)
            raise PaystackError(
                message=data.get("message", "Unknown Paystack error"),
                status_code=response.status_code,
                response_data=data,
            )

        if not data.get("status"):
            raise PaystackError(
                message=data.get("message", "Paystack request failed"),
                response_data=data,
            )

        return data

    # =========================================================================
    # Transaction Methods
    # =========================================================================

    async def initialize_transaction(
        self,
        email: str,
        amount_kobo: int,
        split: dict,
        reference: str = None,
        callback_url: str = None,
        metadata: dict = None,
    ) -> InitializedTransaction:
        """
        Initialize a hosted payment session.

        Args:
            email: Customer email
            amount_kobo: Charge amount in kobo (already includes the markup)
            split: Dynamic split, e.g. {"type": "percentage", "subaccounts": [...]}
            reference: Optional merchant reference; Paystack generates one if omitted
            callback_url: Where Paystack redirects after payment
            metadata: Extra data echoed back on verify and webhooks

        Returns:
            InitializedTransaction with authorization_url and reference
        """
        payload = {
            "email": email,
            "amount": amount_kobo,
            "currency": "NGN",
            "split": split,
        }
        if reference:
            payload["reference"] = reference
        if callback_url:
            payload["callback_url"] = callback_url
        if metadata:
            payload["metadata"] = metadata

        data = await self._request("POST", "/transaction/initialize", json_data=payload)

        result = data.get("data", {})
        return InitializedTransaction(
            authorization_url=result.get("authorization_url", ""),
            access_code=result.get("access_code"),
            reference=result.get("reference", reference or ""),
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        """
        Look up a transaction's current status.

        Args:
            reference: Transaction reference from initialize_transaction()

        Returns:
            VerifiedTransaction with status and amount in kobo

        Raises:
            PaystackError: If the reference is unknown to Paystack
        """
        data = await self._request("GET", f"/transaction/verify/{reference}")

        result = data.get("data", {})
        return VerifiedTransaction(
            reference=result.get("reference", reference),
            status=str(result.get("status") or "").lower(),
            amount=int(result.get("amount") or 0),
            currency=result.get("currency", "NGN"),
            paid_at=_parse_paid_at(result.get("paid_at")),
            gateway_response=result.get("gateway_response"),
        )
