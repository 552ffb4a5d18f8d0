"""Shipping address book for the signed-in user."""

from dataclasses import dataclass, field
from typing import Optional

from libs.common.logging import get_logger
from services.storefront_service.client.errors import REMOTE_ERRORS, Failure
from services.storefront_service.client.record_store import RecordStore
from services.storefront_service.schemas import ShippingAddress

logger = get_logger(__name__)

ADDRESSES = "shipping_addresses"

REQUIRED_FIELDS = {
    "full_name": "Full name is required",
    "phone": "Phone number is required",
    "address_line": "Address is required",
    "zone_id": "Select a zone",
    "sub_zone_id": "Select a sub-zone",
    "area_id": "Select an area",
}


@dataclass(frozen=True)
class AddressResult:
    address: Optional[ShippingAddress] = None
    addresses: tuple[ShippingAddress, ...] = field(default_factory=tuple)
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def validate_address(address: ShippingAddress) -> Optional[Failure]:
    for name, message in REQUIRED_FIELDS.items():
        value = getattr(address, name)
        if value is None or not str(value).strip():
            return Failure.validation(message, name)
    return None


class AddressBook:
    def __init__(self, record_store: RecordStore):
        self._store = record_store

    async def list(self, user_id: str) -> AddressResult:
        try:
            addresses = await self._fetch(user_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to load addresses for user %s", user_id)
            return AddressResult(failure=Failure.network("Could not load your addresses."))
        return AddressResult(addresses=addresses)

    async def default(self, user_id: str) -> Optional[ShippingAddress]:
        """The default address, falling back to the most recent one."""
        result = await self.list(user_id)
        if not result.addresses:
            return None
        return next((a for a in result.addresses if a.is_default), result.addresses[0])

    async def _fetch(self, user_id: str) -> tuple[ShippingAddress, ...]:
        rows = await self._store.select(
            ADDRESSES, where={"user_id": user_id}, order_by="created_at", descending=True
        )
        return tuple(ShippingAddress.model_validate(row) for row in rows)

    async def save(
        self, user_id: str, address: ShippingAddress, *, make_default: bool = False
    ) -> AddressResult:
        """Insert a new address; the user's first address becomes the default."""
        failure = validate_address(address)
        if failure is not None:
            return AddressResult(failure=failure)

        values = address.model_dump(exclude={"id", "user_id", "is_default"})
        values = {k: v.strip() if isinstance(v, str) else v for k, v in values.items()}
        try:
            async with self._store.transaction() as tx:
                existing = await tx.select(ADDRESSES, where={"user_id": user_id})
                is_default = make_default or not existing
                if is_default and existing:
                    await tx.update(
                        ADDRESSES, {"is_default": False}, where={"user_id": user_id}
                    )
                row = await tx.insert(
                    ADDRESSES, {**values, "user_id": user_id, "is_default": is_default}
                )
            addresses = await self._fetch(user_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to save address for user %s", user_id)
            return AddressResult(failure=Failure.network("Could not save the address."))

        logger.info("Saved address %s for user %s", row["id"], user_id)
        return AddressResult(address=ShippingAddress.model_validate(row), addresses=addresses)

    async def set_default(self, user_id: str, address_id: str) -> AddressResult:
        """Make ``address_id`` the only default, atomically."""
        try:
            async with self._store.transaction() as tx:
                rows = await tx.select(ADDRESSES, where={"id": address_id, "user_id": user_id})
                if not rows:
                    return AddressResult(
                        failure=Failure.validation("Address not found", "address_id")
                    )
                await tx.update(ADDRESSES, {"is_default": False}, where={"user_id": user_id})
                await tx.update(ADDRESSES, {"is_default": True}, where={"id": address_id})
            addresses = await self._fetch(user_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to set default address %s", address_id)
            return AddressResult(failure=Failure.network("Could not update the default address."))

        chosen = next((a for a in addresses if a.id == address_id), None)
        return AddressResult(address=chosen, addresses=addresses)
