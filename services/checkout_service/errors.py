"""Business failures raised by checkout and settlement."""

from libs.common.errors import ServiceError


class CheckoutError(ServiceError):
    """Base class for checkout business-rule failures."""

    code = "CHECKOUT_ERROR"


class BusinessRuleError(CheckoutError):
    """Checkout preconditions not met; detected before any remote call."""

    code = "BUSINESS_RULE_VIOLATION"


class InsufficientPointsError(CheckoutError):
    """The conditional points debit found a balance below the amount."""

    status_code = 409
    code = "INSUFFICIENT_POINTS"

    def __init__(self, requested: int, user_id: str):
        self.requested = requested
        self.user_id = user_id
        super().__init__(
            f"Not enough PEPS points to redeem {requested}. "
            "Your balance may have changed, please review and try again."
        )


class PaymentNotFoundError(CheckoutError):
    status_code = 404
    code = "PAYMENT_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No payment found for reference {reference}")


class InvalidDeliveryQuoteError(CheckoutError):
    code = "INVALID_DELIVERY_QUOTE"


class DeliveryFeeUnavailableError(CheckoutError):
    """The delivery-fee function answered with an error."""

    status_code = 502
    code = "DELIVERY_FEE_UNAVAILABLE"
