"""Discount code lookup and redemption rules.

``check_redeemable`` and ``discount_amount`` are shared with the server-side
verify endpoint so the client and the order writer agree on what a code is
worth.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.currency import quantize_money
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from services.storefront_service.client.errors import REMOTE_ERRORS
from services.storefront_service.client.record_store import RecordStore
from services.storefront_service.models.enums import DiscountType
from services.storefront_service.schemas import DiscountCode

logger = get_logger(__name__)


class DiscountRejection(str, enum.Enum):
    EMPTY = "empty"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    UNAVAILABLE = "unavailable"


REJECTION_MESSAGES = {
    DiscountRejection.EMPTY: "Enter a discount code.",
    DiscountRejection.NOT_FOUND: "Invalid discount code.",
    DiscountRejection.INACTIVE: "This discount code is no longer active.",
    DiscountRejection.EXPIRED: "This discount code has expired.",
    DiscountRejection.EXHAUSTED: "This discount code has reached its usage limit.",
    DiscountRejection.UNAVAILABLE: "Could not check the discount code. Please try again.",
}


@dataclass(frozen=True)
class DiscountCheck:
    discount: Optional[DiscountCode] = None
    rejection: Optional[DiscountRejection] = None

    @property
    def ok(self) -> bool:
        return self.discount is not None

    @property
    def message(self) -> Optional[str]:
        return REJECTION_MESSAGES[self.rejection] if self.rejection else None


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def check_redeemable(code: Any, now: Optional[datetime] = None) -> Optional[DiscountRejection]:
    """Return why ``code`` cannot be redeemed, or ``None`` if it can.

    Accepts anything with the discount attributes (ORM row or schema).
    """
    now = now or utc_now()
    if not code.is_active:
        return DiscountRejection.INACTIVE
    expires_at = as_utc(code.expires_at)
    if expires_at is not None and expires_at <= now:
        return DiscountRejection.EXPIRED
    if code.max_uses is not None and code.used_count >= code.max_uses:
        return DiscountRejection.EXHAUSTED
    return None


def discount_amount(subtotal: Decimal, discount: Optional[Any]) -> Decimal:
    """Amount taken off ``subtotal``; never more than the subtotal itself."""
    if discount is None or subtotal <= 0:
        return Decimal("0")
    if DiscountType(discount.type) == DiscountType.PERCENTAGE:
        amount = subtotal * Decimal(discount.value) / Decimal(100)
    else:
        amount = Decimal(discount.value)
    return quantize_money(min(max(amount, Decimal("0")), subtotal))


class DiscountService:
    def __init__(self, record_store: RecordStore):
        self._store = record_store

    async def validate(self, code: str, now: Optional[datetime] = None) -> DiscountCheck:
        normalized = normalize_code(code)
        if not normalized:
            return DiscountCheck(rejection=DiscountRejection.EMPTY)

        try:
            rows = await self._store.select("discount_codes", where={"code": normalized})
        except REMOTE_ERRORS:
            logger.exception("Discount lookup failed for %s", normalized)
            return DiscountCheck(rejection=DiscountRejection.UNAVAILABLE)

        if not rows:
            return DiscountCheck(rejection=DiscountRejection.NOT_FOUND)

        discount = DiscountCode.model_validate(rows[0])
        rejection = check_redeemable(discount, now)
        if rejection is not None:
            logger.info("Discount %s rejected: %s", normalized, rejection.value)
            return DiscountCheck(rejection=rejection)
        return DiscountCheck(discount=discount)
