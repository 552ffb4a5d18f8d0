"""Storefront commerce models: cart lines, addresses, discounts, orders, transactions."""

import random
import string
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, new_id
from services.storefront_service.models.enums import (
    DiscountType,
    OrderStatus,
    TransactionStatus,
    enum_values,
)
from sqlalchemy import JSON, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# CART
# ============================================================================


class CartLine(Base):
    """Server-persisted cart lines for authenticated shoppers.

    Guest carts never reach this table until the sign-in merge runs.
    """

    __tablename__ = "cart_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)

    # No FK: lines pointing at deleted products are dropped on read
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="cart_line_positive_quantity"),
        Index("ix_cart_lines_user_product", "user_id", "product_id", "variant_id"),
    )

    def __repr__(self):
        return f"<CartLine {self.product_id} x{self.quantity}>"


# ============================================================================
# ADDRESSES
# ============================================================================


class ShippingAddress(Base):
    """Saved delivery addresses; at most one default per user."""

    __tablename__ = "shipping_addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    address_line: Mapped[str] = mapped_column(String(512), nullable=False)

    zone_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sub_zone_id: Mapped[str] = mapped_column(String(36), nullable=False)
    area_id: Mapped[str] = mapped_column(String(36), nullable=False)

    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<ShippingAddress {self.full_name} default={self.is_default}>"


# ============================================================================
# DISCOUNTS
# ============================================================================


class DiscountCode(Base):
    """Discount codes redeemable at checkout. Codes are stored upper-case."""

    __tablename__ = "discount_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(
        String(50), unique=True, index=True, nullable=False
    )
    type: Mapped[DiscountType] = mapped_column(
        SAEnum(
            DiscountType,
            name="discount_type_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    max_uses: Mapped[Optional[int]] = mapped_column(nullable=True)  # None = unlimited
    used_count: Mapped[int] = mapped_column(default=0, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<DiscountCode {self.code}>"


# ============================================================================
# ORDERS
# ============================================================================


class PaymentTransaction(Base):
    """Provider transactions confirmed by the verification endpoint."""

    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    reference: Mapped[str] = mapped_column(
        String(128), unique=True, index=True, nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="payment_transaction_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(String(32), default="paystack")
    provider_response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<PaymentTransaction {self.reference}>"


class Order(Base):
    """Orders created after a verified payment."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    order_number: Mapped[str] = mapped_column(
        String(32), unique=True, index=True, nullable=False
    )
    # One order per provider reference
    payment_reference: Mapped[str] = mapped_column(
        String(128), unique=True, index=True, nullable=False
    )

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            name="order_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=OrderStatus.PAID,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    items_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    shipping_address_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True
    )
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_method: Mapped[str] = mapped_column(String(32), nullable=False)
    discount_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(32), default="paystack")
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("payment_transactions.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )

    @staticmethod
    def generate_order_number() -> str:
        """Generate a unique order number like ORD-20260104-A1B2C."""
        date_part = utc_now().strftime("%Y%m%d")
        random_part = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=5)
        )
        return f"ORD-{date_part}-{random_part}"

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """Price snapshot of each purchased cart line."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    variant_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
