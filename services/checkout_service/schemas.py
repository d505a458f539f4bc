"""Checkout request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.checkout_service.checkout_state import CheckoutState
from services.checkout_service.fees import CartItem
from services.checkout_service.models.enums import (
    DeliveryType,
    PaymentMethod,
    PaymentStatus,
)


class CartItemIn(BaseModel):
    product_id: str
    vendor_id: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., gt=0)

    def to_cart_item(self) -> CartItem:
        return CartItem(
            product_id=self.product_id,
            vendor_id=self.vendor_id,
            price=self.price,
            quantity=self.quantity,
        )


class LocationIn(BaseModel):
    id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------


class PointsPreviewRequest(BaseModel):
    order_total: Decimal = Field(..., ge=0)
    points_requested: int = Field(0, ge=0)


class PointsPreviewResponse(BaseModel):
    available_points: int
    max_redeemable: int
    points_applied: int
    payment_method: PaymentMethod
    cash_remainder: Decimal


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class DeliveryQuoteRequest(BaseModel):
    vendor_location: LocationIn
    delivery_address: LocationIn


class DeliveryQuoteResponse(BaseModel):
    fee: Decimal
    quote_token: str
    expires_at: datetime


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)
    delivery_type: DeliveryType = DeliveryType.PICKUP
    pickup_location_id: Optional[str] = None
    vendor_location_id: Optional[str] = None
    delivery_address_id: Optional[str] = None
    delivery_quote_token: Optional[str] = None
    accept_delivery_fee: bool = False
    points_requested: int = Field(0, ge=0)


class CheckoutResponse(BaseModel):
    state: CheckoutState
    order_id: uuid.UUID
    subtotal: Decimal
    delivery_fee: Decimal
    final_total: Decimal
    points_applied: int
    payment_method: PaymentMethod
    cash_remainder: Decimal
    authorization_url: Optional[str] = None
    reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class PaymentVerificationResponse(BaseModel):
    status: str
    amount: Decimal
    reference: str
    payment_status: PaymentStatus
    order_id: uuid.UUID

    model_config = ConfigDict(from_attributes=True)
