"""Per-attempt checkout state machine.

    Idle -> DeliveryPending -> Ready -> Submitting
         -> Confirmed | AwaitingGateway | Failed

A ``CheckoutSession`` collects delivery choices and the delivery-fee
accept/decline decision, then freezes them into a ``SettlementInput`` that
the settlement orchestrator consumes.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from libs.common.currency import to_decimal
from services.checkout_service.errors import BusinessRuleError
from services.checkout_service.fees import CartItem
from services.checkout_service.models.enums import DeliveryType


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    DELIVERY_PENDING = "delivery_pending"
    READY = "ready"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    AWAITING_GATEWAY = "awaiting_gateway"
    FAILED = "failed"


TERMINAL_STATES = {
    CheckoutState.CONFIRMED,
    CheckoutState.AWAITING_GATEWAY,
    CheckoutState.FAILED,
}


@dataclass(frozen=True)
class SettlementInput:
    """Everything settlement needs, decoupled from how it was collected."""

    items: tuple[CartItem, ...]
    delivery_type: DeliveryType
    points_requested: int = 0
    accepted_delivery_fee: Optional[Decimal] = None
    delivery_address_id: Optional[str] = None
    pickup_location_id: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))

    @property
    def delivery_fee(self) -> Decimal:
        if self.delivery_type != DeliveryType.DELIVERY:
            return Decimal("0")
        return to_decimal(self.accepted_delivery_fee or 0)

    @property
    def final_total(self) -> Decimal:
        return self.subtotal + self.delivery_fee


class CheckoutSession:
    def __init__(self):
        self.state = CheckoutState.IDLE
        self.delivery_type = DeliveryType.PICKUP
        self.pickup_location_id: Optional[str] = None
        self.vendor_location_id: Optional[str] = None
        self.delivery_address_id: Optional[str] = None
        self.quoted_fee: Optional[Decimal] = None
        self.fee_accepted = False
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Selections
    # ------------------------------------------------------------------

    def _ensure_editable(self) -> None:
        if self.state == CheckoutState.SUBMITTING or self.state in TERMINAL_STATES:
            raise BusinessRuleError(
                f"Checkout can no longer be changed (state: {self.state.value})"
            )

    def _reset_quote(self) -> None:
        self.quoted_fee = None
        self.fee_accepted = False

    def select_delivery_type(self, delivery_type: DeliveryType) -> None:
        self._ensure_editable()
        if delivery_type != self.delivery_type:
            self._reset_quote()
        self.delivery_type = delivery_type
        self._refresh_state()

    def select_pickup_location(self, location_id: str) -> None:
        self._ensure_editable()
        self.pickup_location_id = location_id
        self._refresh_state()

    def select_vendor_location(self, location_id: str) -> None:
        self._ensure_editable()
        if location_id != self.vendor_location_id:
            self._reset_quote()
        self.vendor_location_id = location_id
        self._refresh_state()

    def select_delivery_address(self, address_id: str) -> None:
        self._ensure_editable()
        if address_id != self.delivery_address_id:
            self._reset_quote()
        self.delivery_address_id = address_id
        self._refresh_state()

    @property
    def needs_quote(self) -> bool:
        return self.state == CheckoutState.DELIVERY_PENDING and self.quoted_fee is None

    # ------------------------------------------------------------------
    # Delivery fee gate
    # ------------------------------------------------------------------

    def receive_quote(self, fee: Decimal | int | str) -> None:
        if self.state != CheckoutState.DELIVERY_PENDING:
            raise BusinessRuleError("No delivery quote was requested")
        fee = to_decimal(fee)
        if fee < 0:
            raise BusinessRuleError("Delivery fee cannot be negative")
        self.quoted_fee = fee
        self.fee_accepted = False

    def accept_delivery_fee(self) -> None:
        if self.quoted_fee is None:
            raise BusinessRuleError("There is no delivery fee to accept")
        self.fee_accepted = True
        self._refresh_state()

    def decline_delivery_fee(self) -> None:
        """Fall back to pickup; a pickup location must be chosen again."""
        self._ensure_editable()
        self.delivery_type = DeliveryType.PICKUP
        self.pickup_location_id = None
        self._reset_quote()
        self._refresh_state()

    @property
    def delivery_fee(self) -> Decimal:
        if self.delivery_type == DeliveryType.DELIVERY and self.fee_accepted:
            return self.quoted_fee or Decimal("0")
        return Decimal("0")

    # ------------------------------------------------------------------
    # Readiness and submission
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        if self.delivery_type == DeliveryType.PICKUP:
            return self.pickup_location_id is not None
        if self.delivery_type == DeliveryType.DELIVERY:
            return (
                self.delivery_address_id is not None
                and self.vendor_location_id is not None
                and self.quoted_fee is not None
                and self.fee_accepted
            )
        return True

    def _refresh_state(self) -> None:
        if self.is_ready:
            self.state = CheckoutState.READY
        elif (
            self.delivery_type == DeliveryType.DELIVERY
            and self.vendor_location_id is not None
            and self.delivery_address_id is not None
        ):
            self.state = CheckoutState.DELIVERY_PENDING
        else:
            self.state = CheckoutState.IDLE

    def _readiness_error(self) -> str:
        if self.delivery_type == DeliveryType.PICKUP:
            return "Please select a pickup location"
        if self.delivery_address_id is None or self.vendor_location_id is None:
            return "Please select a delivery address and vendor location"
        if self.quoted_fee is None:
            return "Delivery fee has not been calculated yet"
        return "Please accept the delivery fee to continue"

    def begin_submit(
        self, items: Iterable[CartItem], points_requested: int = 0
    ) -> SettlementInput:
        """Move Ready -> Submitting and freeze the settlement input."""
        if self.state != CheckoutState.READY:
            raise BusinessRuleError(self._readiness_error())

        items = tuple(items)
        if not items:
            raise BusinessRuleError("Your cart is empty")
        for item in items:
            if item.quantity <= 0:
                raise BusinessRuleError(f"Invalid quantity for product {item.product_id}")
            if to_decimal(item.price) < 0:
                raise BusinessRuleError(f"Invalid price for product {item.product_id}")

        self.state = CheckoutState.SUBMITTING
        is_delivery = self.delivery_type == DeliveryType.DELIVERY
        return SettlementInput(
            items=items,
            delivery_type=self.delivery_type,
            points_requested=max(0, int(points_requested)),
            accepted_delivery_fee=self.delivery_fee if is_delivery else None,
            delivery_address_id=self.delivery_address_id if is_delivery else None,
            pickup_location_id=(
                self.pickup_location_id
                if self.delivery_type == DeliveryType.PICKUP
                else None
            ),
        )

    def mark_confirmed(self) -> None:
        self._finish(CheckoutState.CONFIRMED)

    def mark_awaiting_gateway(self) -> None:
        self._finish(CheckoutState.AWAITING_GATEWAY)

    def mark_failed(self, message: str) -> None:
        self.error = message
        self._finish(CheckoutState.FAILED)

    def _finish(self, state: CheckoutState) -> None:
        if self.state != CheckoutState.SUBMITTING:
            raise BusinessRuleError("Checkout is not being submitted")
        self.state = state
