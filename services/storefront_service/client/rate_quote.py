"""Dynamic logistics fee lookups against the admin-configured rate endpoint."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
from libs.common.config import Settings, get_settings
from libs.common.currency import quantize_money
from libs.common.logging import get_logger
from services.storefront_service.client.record_store import RecordStore
from services.storefront_service.models.logistics import LOGISTICS_CONFIG_KEY
from services.storefront_service.schemas import ZonePath

logger = get_logger(__name__)


class RateQuoteError(Exception):
    """The rate endpoint could not be reached or answered with an error status."""


@dataclass(frozen=True)
class LogisticsConfig:
    api_endpoint: str = ""
    is_enabled: bool = False

    @property
    def active(self) -> bool:
        return self.is_enabled and bool(self.api_endpoint.strip())


class RateQuoteClient:
    def __init__(
        self,
        record_store: RecordStore,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self._store = record_store
        self._settings = settings or get_settings()
        self._transport = transport
        self._timeout = timeout or self._settings.RATE_QUOTE_TIMEOUT_SECONDS

    async def load_config(self) -> LogisticsConfig:
        """Admin settings record wins; environment settings are the fallback."""
        rows = await self._store.select("admin_settings", where={"key": LOGISTICS_CONFIG_KEY})
        if rows and isinstance(rows[0]["value"], dict):
            value = rows[0]["value"]
            return LogisticsConfig(
                api_endpoint=str(value.get("api_endpoint") or ""),
                is_enabled=bool(value.get("is_enabled")),
            )
        return LogisticsConfig(
            api_endpoint=self._settings.LOGISTICS_API_ENDPOINT,
            is_enabled=self._settings.LOGISTICS_ENABLED,
        )

    async def quote(
        self, path: ZonePath, cart_total: Decimal, items_weight: Decimal
    ) -> Decimal:
        """Return the delivery fee in cedis for ``path``.

        Disabled or unset config and malformed responses yield zero. Transport
        failures and error statuses raise ``RateQuoteError``.
        """
        config = await self.load_config()
        if not config.active:
            return Decimal("0")

        payload = {
            "location": {"zone": path.zone, "subZone": path.sub_zone, "area": path.area},
            "cartTotal": float(cart_total),
            "itemsWeight": float(items_weight),
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(config.api_endpoint, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Rate quote endpoint returned %s: %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise RateQuoteError(f"Rate quote failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Rate quote request failed: %s", e)
            raise RateQuoteError("Rate quote endpoint unreachable") from e

        try:
            fee = Decimal(str(response.json()["deliveryFee"]))
        except (ValueError, KeyError, TypeError, InvalidOperation):
            logger.warning("Malformed rate quote response: %s", response.text[:200])
            return Decimal("0")
        if not fee.is_finite() or fee < 0:
            logger.warning("Rate quote returned unusable fee %s", fee)
            return Decimal("0")
        return quantize_money(fee)
