"""Delivery-fee quoting.

Fees come from the ``calculate_delivery_fee`` database function exposed by
Supabase's REST RPC endpoint. Each quote is returned with a short-lived
signed token so the fee later accepted at checkout is the fee we quoted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
from jose import JWTError, jwt

from libs.common.config import get_settings
from libs.common.currency import quantize_naira, to_decimal
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.resilience import ResilientExecutor, RetryPolicy
from services.checkout_service.errors import (
    DeliveryFeeUnavailableError,
    InvalidDeliveryQuoteError,
)

logger = get_logger(__name__)

QUOTE_POLICY = RetryPolicy(timeout=10.0, max_retries=2)
QUOTE_TOKEN_TYPE = "delivery_quote"
_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DeliveryQuote:
    fee: Decimal
    quote_token: str
    expires_at: datetime


class DeliveryFeeQuoter:
    def __init__(
        self,
        executor: ResilientExecutor,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        signing_secret: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        policy: RetryPolicy = QUOTE_POLICY,
    ):
        settings = get_settings()
        self.executor = executor
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key or settings.SUPABASE_ANON_KEY
        self.signing_secret = signing_secret or settings.QUOTE_SIGNING_SECRET
        self.ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None else settings.DELIVERY_QUOTE_TTL_MINUTES
        )
        self.policy = policy
        self._transport = transport

    async def calculate_fee(self, vendor: Coordinates, destination: Coordinates) -> Decimal:
        """Call the fee function for a vendor location and a destination."""
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await self.executor.fetch(
                client,
                "POST",
                f"{self.base_url}/rest/v1/rpc/calculate_delivery_fee",
                self.policy,
                name="delivery fee quote",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "vendor_lat": vendor.latitude,
                    "vendor_lng": vendor.longitude,
                    "delivery_lat": destination.latitude,
                    "delivery_lng": destination.longitude,
                },
            )

        if not response.is_success:
            logger.error(
                "Delivery fee function failed: %s %s",
                response.status_code,
                response.text,
            )
            raise DeliveryFeeUnavailableError("Could not calculate the delivery fee")

        try:
            fee = to_decimal(response.json())
        except (ValueError, InvalidOperation, TypeError):
            raise DeliveryFeeUnavailableError("Delivery fee function returned no fee")
        if fee < 0:
            raise DeliveryFeeUnavailableError("Delivery fee function returned a negative fee")
        return quantize_naira(fee)

    async def quote(
        self,
        *,
        user_id: str,
        vendor_location_id: str,
        vendor: Coordinates,
        delivery_address_id: str,
        destination: Coordinates,
    ) -> DeliveryQuote:
        fee = await self.calculate_fee(vendor, destination)
        expires_at = utc_now() + self.ttl
        token = jwt.encode(
            {
                "typ": QUOTE_TOKEN_TYPE,
                "sub": user_id,
                "fee": str(fee),
                "vendor_location_id": vendor_location_id,
                "delivery_address_id": delivery_address_id,
                "exp": expires_at,
            },
            self.signing_secret,
            algorithm=_ALGORITHM,
        )
        return DeliveryQuote(fee=fee, quote_token=token, expires_at=expires_at)

    def verify_quote(
        self,
        token: str,
        *,
        user_id: str,
        vendor_location_id: str,
        delivery_address_id: str,
    ) -> Decimal:
        """Return the quoted fee if ``token`` matches this checkout."""
        try:
            claims = jwt.decode(token, self.signing_secret, algorithms=[_ALGORITHM])
        except JWTError:
            raise InvalidDeliveryQuoteError(
                "Delivery quote has expired or is invalid, please request a new one"
            )

        if (
            claims.get("typ") != QUOTE_TOKEN_TYPE
            or claims.get("sub") != user_id
            or claims.get("vendor_location_id") != vendor_location_id
            or claims.get("delivery_address_id") != delivery_address_id
        ):
            raise InvalidDeliveryQuoteError("Delivery quote does not match this checkout")
        return to_decimal(claims["fee"])
