"""Pydantic records shared by the storefront client core and its HTTP surface."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from services.storefront_service.models.enums import DiscountType

# ============================================================================
# CART
# ============================================================================


class CartItemInput(BaseModel):
    """A product (optionally a specific variant) being added to the cart."""

    product_id: str
    variant_id: Optional[str] = None
    name: str
    unit_price: Decimal = Field(..., ge=0)
    image: Optional[str] = None
    weight: Decimal = Field(Decimal("0"), ge=0)
    variant_label: Optional[str] = None


class CartLine(BaseModel):
    """One line of the active cart.

    Guest lines carry a synthetic ``guest-<ms>-<random>`` id; remote lines carry
    the persisted record id. Merge and dedup use ``key``, never ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    variant_id: Optional[str] = None
    name: str
    unit_price: Decimal
    image: Optional[str] = None
    quantity: int = Field(..., ge=1)
    weight: Decimal = Decimal("0")
    variant_label: Optional[str] = None

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return (self.product_id, self.variant_id)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


# ============================================================================
# ADDRESSES & ZONES
# ============================================================================


class ShippingAddress(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: Optional[str] = None
    full_name: str = ""
    phone: str = ""
    address_line: str = ""
    zone_id: Optional[str] = None
    sub_zone_id: Optional[str] = None
    area_id: Optional[str] = None
    is_default: bool = False


class LogisticsZone(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    parent_id: Optional[str] = None


class ZonePath(BaseModel):
    """Names of a resolved destination, as sent to the rate-quote endpoint."""

    zone: str
    sub_zone: str
    area: str


# ============================================================================
# PRICING
# ============================================================================


class DiscountCode(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    type: DiscountType
    value: Decimal
    max_uses: Optional[int] = None
    used_count: int = 0
    expires_at: Optional[datetime] = None
    is_active: bool = True


class DeliveryMethod(BaseModel):
    """Flat speed premium added on top of the dynamic logistics fee."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    premium: Decimal = Decimal("0")


# ============================================================================
# PAYMENT VERIFICATION (wire format is camelCase)
# ============================================================================


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    reference: str = Field(..., min_length=1)
    delivery_method_id: str = Field(..., min_length=1)
    address_id: str = Field(..., min_length=1)
    discount_code: Optional[str] = None
    selected_line_ids: List[str] = Field(default_factory=list)


class VerifyPaymentResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    order_id: str
    order_number: str
    amount: Decimal
