"""Fee and split calculation for multi-vendor orders.

Two bases are in play and must not be mixed:

* per-vendor fee math runs on the vendor's own subtotal, and
* the gateway's percentage split runs on the charged total, which carries
  the customer-side platform markup (``gross * 1.025``).
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Mapping, Optional

from libs.common.currency import naira_to_kobo, quantize_naira, to_decimal

PLATFORM_FEE_RATE = Decimal("0.025")  # charged to the customer
VENDOR_FEE_RATE = Decimal("0.05")  # withheld from the vendor
GATEWAY_MARKUP = Decimal("1") + PLATFORM_FEE_RATE
SHARE_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class FeeBreakdown:
    platform_fee: Decimal
    vendor_fee: Decimal
    total_platform_fee: Decimal
    vendor_amount: Decimal


@dataclass(frozen=True)
class CartItem:
    product_id: str
    vendor_id: str
    price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return to_decimal(self.price) * self.quantity


@dataclass(frozen=True)
class VendorSplit:
    vendor_id: str
    amount: Decimal


@dataclass(frozen=True)
class GatewaySplit:
    """Gateway-facing charge and split derived from a gross amount."""

    gross_amount: Decimal
    charged_amount: Decimal
    charged_amount_kobo: int
    split: dict
    vendors: list[dict]

    def as_config(self) -> dict:
        """Shape persisted on the payment record."""
        return {
            "gross_amount": str(self.gross_amount),
            "charged_amount_kobo": self.charged_amount_kobo,
            "vendors": self.vendors,
            "gateway_split": self.split,
        }


def compute_fees(amount: Decimal | int | str) -> FeeBreakdown:
    """Fee breakdown for one vendor grouping. Exact, no rounding."""
    amount = to_decimal(amount)
    if amount < 0:
        raise ValueError("amount must be non-negative")

    platform_fee = amount * PLATFORM_FEE_RATE
    vendor_fee = amount * VENDOR_FEE_RATE
    return FeeBreakdown(
        platform_fee=platform_fee,
        vendor_fee=vendor_fee,
        total_platform_fee=platform_fee + vendor_fee,
        vendor_amount=amount - vendor_fee,
    )


def split_by_vendor(items: Iterable[CartItem]) -> list[VendorSplit]:
    """Sum ``price * quantity`` per vendor, in first-seen vendor order."""
    totals: dict[str, Decimal] = {}
    for item in items:
        totals[item.vendor_id] = totals.get(item.vendor_id, Decimal("0")) + item.subtotal
    return [VendorSplit(vendor_id=v, amount=amount) for v, amount in totals.items()]


def allocate_splits(splits: list[VendorSplit], gross: Decimal) -> list[VendorSplit]:
    """Scale vendor amounts pro rata so they sum exactly to ``gross``.

    Used when points or a delivery fee make the cash leg differ from the item
    subtotal. The last vendor absorbs the kobo rounding remainder.
    """
    gross = quantize_naira(gross)
    total = sum((s.amount for s in splits), Decimal("0"))
    if not splits or total == gross:
        return list(splits)
    if total <= 0:
        raise ValueError("cannot allocate against an empty vendor total")

    allocated: list[VendorSplit] = []
    running = Decimal("0")
    for split in splits[:-1]:
        share = quantize_naira(split.amount * gross / total)
        allocated.append(VendorSplit(vendor_id=split.vendor_id, amount=share))
        running += share
    last = splits[-1]
    allocated.append(VendorSplit(vendor_id=last.vendor_id, amount=gross - running))
    return allocated


def build_gateway_split(
    gross: Decimal | int | str,
    splits: list[VendorSplit],
    subaccounts: Optional[Mapping[str, str]] = None,
) -> GatewaySplit:
    """Build the percentage split sent to the gateway.

    Each vendor's share is its post-fee amount as a percentage of the
    marked-up charge, so the shares sum to less than 100 and the platform's
    main account keeps both fees.
    """
    gross = to_decimal(gross)
    charged = gross * GATEWAY_MARKUP
    charged_kobo = naira_to_kobo(charged)
    subaccounts = subaccounts or {}

    vendors: list[dict] = []
    subaccount_shares: list[dict] = []
    for split in splits:
        fees = compute_fees(split.amount)
        vendor_kobo = naira_to_kobo(fees.vendor_amount)
        vendors.append(
            {
                "vendor_id": split.vendor_id,
                "amount": vendor_kobo,
                "platform_fee": naira_to_kobo(fees.total_platform_fee),
            }
        )
        share = (
            (fees.vendor_amount * 100) / (charged * 100) * 100
            if charged > 0
            else Decimal("0")
        )
        subaccount_shares.append(
            {
                "subaccount": subaccounts.get(split.vendor_id, split.vendor_id),
                "share": float(share.quantize(SHARE_PLACES, rounding=ROUND_DOWN)),
            }
        )

    return GatewaySplit(
        gross_amount=gross,
        charged_amount=charged,
        charged_amount_kobo=charged_kobo,
        split={
            "type": "percentage",
            "bearer_type": "account",
            "subaccounts": subaccount_shares,
        },
        vendors=vendors,
    )
