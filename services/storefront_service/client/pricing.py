"""Checkout pricing: subtotal, delivery premium, logistics fee, discount, total."""

import enum
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Sequence

from libs.common.config import Settings, get_settings
from libs.common.currency import quantize_money
from libs.common.logging import get_logger
from services.storefront_service.client.discounts import (
    DiscountCheck,
    DiscountService,
    discount_amount,
)
from services.storefront_service.client.errors import REMOTE_ERRORS, Failure
from services.storefront_service.client.rate_quote import RateQuoteClient, RateQuoteError
from services.storefront_service.client.selection import SelectionModel
from services.storefront_service.client.zones import ZoneHierarchyReader
from services.storefront_service.schemas import (
    DeliveryMethod,
    DiscountCode,
    ShippingAddress,
)

logger = get_logger(__name__)

ZERO = Decimal("0")


def default_delivery_methods(settings: Optional[Settings] = None) -> tuple[DeliveryMethod, ...]:
    settings = settings or get_settings()
    return (
        DeliveryMethod(id="normal", label="Normal delivery", premium=ZERO),
        DeliveryMethod(
            id="express", label="Express delivery", premium=settings.DELIVERY_EXPRESS_PREMIUM
        ),
        DeliveryMethod(
            id="same-day", label="Same-day delivery", premium=settings.DELIVERY_SAME_DAY_PREMIUM
        ),
    )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    delivery_premium: Decimal
    logistics_fee: Decimal
    discount: Decimal
    grand_total: Decimal

    @property
    def shipping(self) -> Decimal:
        return self.delivery_premium + self.logistics_fee


def compute_totals(
    subtotal: Decimal,
    delivery_premium: Decimal,
    dynamic_fee: Decimal,
    discount: Optional[DiscountCode] = None,
) -> PriceBreakdown:
    """Pure total computation; the discount never exceeds the subtotal."""
    off = discount_amount(subtotal, discount)
    grand_total = max(ZERO, subtotal + dynamic_fee + delivery_premium - off)
    return PriceBreakdown(
        subtotal=quantize_money(subtotal),
        delivery_premium=quantize_money(delivery_premium),
        logistics_fee=quantize_money(dynamic_fee),
        discount=off,
        grand_total=quantize_money(grand_total),
    )


class QuoteStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ShippingQuote:
    status: QuoteStatus = QuoteStatus.IDLE
    # Last successfully quoted fee; survives LOADING and FAILED.
    fee: Decimal = ZERO
    sequence: int = 0
    failure: Optional[Failure] = None


class PricingEngine:
    """Checkout-scoped pricing state.

    Reads the selection on every ``totals`` access, so totals always reflect
    the current inputs. Shipping quotes are sequenced: only the response to
    the most recently issued request is applied.
    """

    def __init__(
        self,
        selection: SelectionModel,
        zones: ZoneHierarchyReader,
        rate_quotes: RateQuoteClient,
        discounts: DiscountService,
        *,
        delivery_methods: Optional[Sequence[DeliveryMethod]] = None,
        settings: Optional[Settings] = None,
    ):
        self._selection = selection
        self._zones = zones
        self._rate_quotes = rate_quotes
        self._discounts = discounts
        self.delivery_methods = tuple(delivery_methods or default_delivery_methods(settings))
        self.delivery_method = self.delivery_methods[0]
        self.address: Optional[ShippingAddress] = None
        self.discount: Optional[DiscountCode] = None
        self.shipping = ShippingQuote()
        self._sequence = 0

    @property
    def totals(self) -> PriceBreakdown:
        return compute_totals(
            self._selection.selected_subtotal,
            self.delivery_method.premium,
            self.shipping.fee,
            self.discount,
        )

    async def select_delivery_method(self, method_id: str) -> ShippingQuote:
        method = next((m for m in self.delivery_methods if m.id == method_id), None)
        if method is None:
            raise ValueError(f"Unknown delivery method: {method_id}")
        self.delivery_method = method
        if self.address is None:
            return self.shipping
        return await self.refresh_shipping()

    async def set_address(self, address: Optional[ShippingAddress]) -> ShippingQuote:
        self.address = address
        return await self.refresh_shipping()

    async def refresh_shipping(self) -> ShippingQuote:
        """Re-quote the logistics fee for the current address and selection."""
        self._sequence += 1
        sequence = self._sequence

        if self.address is None:
            self.shipping = ShippingQuote(sequence=sequence)
            return self.shipping

        self.shipping = replace(
            self.shipping, status=QuoteStatus.LOADING, sequence=sequence, failure=None
        )
        address = self.address
        try:
            path = await self._zones.resolve(
                address.zone_id, address.sub_zone_id, address.area_id
            )
            if path is None:
                outcome = replace(
                    self.shipping,
                    status=QuoteStatus.FAILED,
                    failure=Failure.validation(
                        "Select a zone, sub-zone and area for this address", "zone_id"
                    ),
                )
            else:
                fee = await self._rate_quotes.quote(
                    path,
                    self._selection.selected_subtotal,
                    self._selection.selected_weight,
                )
                outcome = ShippingQuote(QuoteStatus.READY, fee, sequence)
        except (RateQuoteError, *REMOTE_ERRORS):
            logger.exception("Shipping quote %d failed", sequence)
            outcome = replace(
                self.shipping,
                status=QuoteStatus.FAILED,
                failure=Failure.network("Could not calculate the delivery fee."),
            )

        if sequence != self._sequence:
            logger.debug("Discarding stale shipping quote %d (latest %d)", sequence, self._sequence)
            return self.shipping
        self.shipping = outcome
        return self.shipping

    async def apply_discount(self, code: str) -> DiscountCheck:
        """Validate and apply ``code``; a rejected code keeps the current discount."""
        check = await self._discounts.validate(code)
        if check.ok:
            self.discount = check.discount
        return check

    def remove_discount(self) -> None:
        self.discount = None
