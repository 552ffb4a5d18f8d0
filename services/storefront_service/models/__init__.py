"""Storefront Service models package."""

from services.storefront_service.models.catalog import Product, ProductVariant
from services.storefront_service.models.commerce import (
    CartLine,
    DiscountCode,
    Order,
    OrderItem,
    PaymentTransaction,
    ShippingAddress,
)
from services.storefront_service.models.enums import (
    DiscountType,
    OrderStatus,
    TransactionStatus,
)
from services.storefront_service.models.logistics import (
    LOGISTICS_CONFIG_KEY,
    AdminSetting,
    LogisticsZone,
)

__all__ = [
    "AdminSetting",
    "CartLine",
    "DiscountCode",
    "DiscountType",
    "LOGISTICS_CONFIG_KEY",
    "LogisticsZone",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentTransaction",
    "Product",
    "ProductVariant",
    "ShippingAddress",
    "TransactionStatus",
]
