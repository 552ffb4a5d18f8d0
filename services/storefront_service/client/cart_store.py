"""Cart Store: the single source of truth for the active cart.

Guest carts live in device-local storage; authenticated carts live in the
``cart_lines`` collection of the record store. Every operation returns a
``CartSnapshot`` the caller re-renders from; remote failures leave the
in-memory cart untouched and are reported on the snapshot.
"""

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from libs.common.logging import get_logger
from pydantic import ValidationError
from services.storefront_service.client.errors import REMOTE_ERRORS, Failure
from services.storefront_service.client.local_storage import (
    LocalStorage,
    LocalStorageCorrupt,
)
from services.storefront_service.client.notifications import Notifier
from services.storefront_service.client.record_store import RecordStore
from services.storefront_service.schemas import CartItemInput, CartLine

logger = get_logger(__name__)

GUEST_CART_KEY = "cart"
CART_LINES = "cart_lines"


@dataclass(frozen=True)
class Identity:
    """Who the cart belongs to. No user_id means an anonymous (guest) session."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    access_token: Optional[str] = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Identity()


@dataclass(frozen=True)
class CartSnapshot:
    identity: Identity
    lines: tuple[CartLine, ...]
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def line_ids(self) -> frozenset[str]:
        return frozenset(line.id for line in self.lines)

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def find(self, line_id: str) -> Optional[CartLine]:
        return next((line for line in self.lines if line.id == line_id), None)


@dataclass(frozen=True)
class MergeOutcome:
    merged: int
    pending: int
    snapshot: CartSnapshot
    failure: Optional[Failure] = None

    @property
    def complete(self) -> bool:
        return self.pending == 0 and self.failure is None


CartListener = Callable[[CartSnapshot], None]


def new_guest_line_id() -> str:
    return f"guest-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class CartStore:
    def __init__(
        self,
        record_store: RecordStore,
        local_storage: LocalStorage,
        notifier: Optional[Notifier] = None,
        *,
        storage_key: str = GUEST_CART_KEY,
    ):
        self._store = record_store
        self._local = local_storage
        self._notifier = notifier or Notifier()
        self._storage_key = storage_key
        self._identity = ANONYMOUS
        self._lines: tuple[CartLine, ...] = ()
        self._listeners: list[CartListener] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return self._lines

    def snapshot(self, failure: Optional[Failure] = None) -> CartSnapshot:
        return CartSnapshot(self._identity, self._lines, failure)

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a listener called with every committed snapshot."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, lines: Iterable[CartLine]) -> CartSnapshot:
        self._lines = tuple(lines)
        if not self._identity.is_authenticated:
            self._write_guest(self._lines)
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Guest persistence
    # ------------------------------------------------------------------

    def _read_guest(self) -> tuple[tuple[CartLine, ...], set[str]]:
        """Return (lines, synced line ids); unreadable data resets to empty."""
        try:
            raw = self._local.get(self._storage_key)
            if raw is None:
                return (), set()
            if isinstance(raw, list):
                raw = {"lines": raw, "synced": []}
            lines = tuple(CartLine.model_validate(item) for item in raw["lines"])
            synced = {str(line_id) for line_id in raw.get("synced", [])}
            return lines, synced
        except (LocalStorageCorrupt, ValidationError, KeyError, TypeError, AttributeError):
            logger.warning("Guest cart in local storage is unreadable; resetting to empty")
            self._local.remove(self._storage_key)
            return (), set()

    def _write_guest(
        self, lines: Iterable[CartLine], synced: Iterable[str] = ()
    ) -> None:
        lines = list(lines)
        if not lines:
            self._local.remove(self._storage_key)
            return
        self._local.set(
            self._storage_key,
            {
                "lines": [line.model_dump(mode="json") for line in lines],
                "synced": sorted(synced),
            },
        )

    def pending_guest_lines(self) -> tuple[CartLine, ...]:
        """Guest lines still waiting to be merged into a remote cart."""
        lines, synced = self._read_guest()
        return tuple(line for line in lines if line.id not in synced)

    # ------------------------------------------------------------------
    # Remote helpers
    # ------------------------------------------------------------------

    async def _fetch_remote(self, user_id: str) -> list[CartLine]:
        rows = await self._store.select(
            CART_LINES, where={"user_id": user_id}, order_by="created_at"
        )
        if not rows:
            return []

        product_ids = {row["product_id"] for row in rows}
        variant_ids = {row["variant_id"] for row in rows if row["variant_id"]}
        products = {
            p["id"]: p
            for p in await self._store.select("products", where_in={"id": product_ids})
        }
        variants: dict[str, dict[str, Any]] = {}
        if variant_ids:
            variants = {
                v["id"]: v
                for v in await self._store.select(
                    "product_variants", where_in={"id": variant_ids}
                )
            }

        lines = []
        for row in rows:
            product = products.get(row["product_id"])
            if product is None:
                logger.warning(
                    "Dropping cart line %s: product %s no longer exists",
                    row["id"],
                    row["product_id"],
                )
                continue
            variant = variants.get(row["variant_id"]) if row["variant_id"] else None
            modifier = Decimal(variant["price_modifier"]) if variant else Decimal("0")
            lines.append(
                CartLine(
                    id=row["id"],
                    product_id=row["product_id"],
                    variant_id=row["variant_id"],
                    name=product["name"],
                    unit_price=Decimal(product["price"]) + modifier,
                    image=product.get("image"),
                    quantity=row["quantity"],
                    weight=Decimal(product.get("weight") or 0),
                    variant_label=(
                        f"{variant['name']}: {variant['value']}" if variant else None
                    ),
                )
            )
        return lines

    async def _upsert_remote(
        self, user_id: str, product_id: str, variant_id: Optional[str], quantity: int
    ) -> None:
        existing = await self._store.select(
            CART_LINES,
            where={"user_id": user_id, "product_id": product_id, "variant_id": variant_id},
        )
        if existing:
            await self._store.update(
                CART_LINES,
                {"quantity": existing[0]["quantity"] + quantity},
                where={"id": existing[0]["id"]},
            )
        else:
            await self._store.insert(
                CART_LINES,
                {
                    "user_id": user_id,
                    "product_id": product_id,
                    "variant_id": variant_id,
                    "quantity": quantity,
                },
            )

    async def _load(self) -> CartSnapshot:
        if not self._identity.is_authenticated:
            lines, _ = self._read_guest()
            return self._commit(lines)

        try:
            lines = await self._fetch_remote(self._identity.user_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to load cart for user %s", self._identity.user_id)
            return self.snapshot(Failure.network("Could not load your cart."))
        return self._commit(lines)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load(self) -> CartSnapshot:
        async with self._lock:
            return await self._load()

    async def add(self, item: CartItemInput, quantity: int = 1) -> CartSnapshot:
        if quantity < 1:
            return self.snapshot(Failure.validation("Quantity must be at least 1", "quantity"))

        async with self._lock:
            key = (item.product_id, item.variant_id)

            if not self._identity.is_authenticated:
                lines = list(self._lines)
                for index, line in enumerate(lines):
                    if line.key == key:
                        lines[index] = line.model_copy(
                            update={"quantity": line.quantity + quantity}
                        )
                        break
                else:
                    lines.append(
                        CartLine(
                            id=new_guest_line_id(),
                            quantity=quantity,
                            **item.model_dump(),
                        )
                    )
                snapshot = self._commit(lines)
            else:
                user_id = self._identity.user_id
                try:
                    await self._upsert_remote(user_id, item.product_id, item.variant_id, quantity)
                    lines = await self._fetch_remote(user_id)
                except REMOTE_ERRORS:
                    logger.exception(
                        "Failed to add product %s to cart for user %s",
                        item.product_id,
                        user_id,
                    )
                    return self.snapshot(Failure.network("Could not add item to cart."))
                snapshot = self._commit(lines)

        self._notifier.notify("Added to cart")
        return snapshot

    async def remove(self, line_id: str) -> CartSnapshot:
        async with self._lock:
            return await self._remove(line_id)

    async def _remove(self, line_id: str) -> CartSnapshot:
        if self.snapshot().find(line_id) is None:
            return self.snapshot()

        if not self._identity.is_authenticated:
            return self._commit(line for line in self._lines if line.id != line_id)

        user_id = self._identity.user_id
        try:
            await self._store.delete(CART_LINES, where={"id": line_id, "user_id": user_id})
            lines = await self._fetch_remote(user_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to remove cart line %s", line_id)
            return self.snapshot(Failure.network("Could not remove item."))
        return self._commit(lines)

    async def set_quantity(self, line_id: str, quantity: int) -> CartSnapshot:
        async with self._lock:
            if quantity <= 0:
                return await self._remove(line_id)

            line = self.snapshot().find(line_id)
            if line is None:
                return self.snapshot()

            if not self._identity.is_authenticated:
                return self._commit(
                    current.model_copy(update={"quantity": quantity})
                    if current.id == line_id
                    else current
                    for current in self._lines
                )

            user_id = self._identity.user_id
            try:
                await self._store.update(
                    CART_LINES,
                    {"quantity": quantity},
                    where={"id": line_id, "user_id": user_id},
                )
                lines = await self._fetch_remote(user_id)
            except REMOTE_ERRORS:
                logger.exception("Failed to update quantity for cart line %s", line_id)
                return self.snapshot(Failure.network("Could not update quantity."))
            return self._commit(lines)

    async def increment(self, line_id: str, delta: int) -> CartSnapshot:
        """Adjust a line by ``delta``; dropping to zero removes it."""
        line = self.snapshot().find(line_id)
        if line is None:
            return self.snapshot()
        return await self.set_quantity(line_id, line.quantity + delta)

    async def clear(self, line_ids: Optional[Iterable[str]] = None) -> CartSnapshot:
        """Empty the cart, or only the given lines (used after a verified payment)."""
        async with self._lock:
            targets = None if line_ids is None else set(line_ids)

            if not self._identity.is_authenticated:
                if targets is None:
                    return self._commit(())
                return self._commit(line for line in self._lines if line.id not in targets)

            user_id = self._identity.user_id
            try:
                if targets is None:
                    await self._store.delete(CART_LINES, where={"user_id": user_id})
                elif targets:
                    await self._store.delete(
                        CART_LINES, where={"user_id": user_id}, where_in={"id": targets}
                    )
                lines = await self._fetch_remote(user_id)
            except REMOTE_ERRORS:
                logger.exception("Failed to clear cart for user %s", user_id)
                return self.snapshot(Failure.network("Could not clear the cart."))
            return self._commit(lines)

    # ------------------------------------------------------------------
    # Identity transitions
    # ------------------------------------------------------------------

    async def switch_identity(self, identity: Identity) -> CartSnapshot:
        """Make ``identity`` the active context, merging the guest cart on sign-in."""
        async with self._lock:
            previous = self._identity
            if identity == previous:
                return self.snapshot()

            self._identity = identity
            if identity.is_authenticated and not previous.is_authenticated:
                if self.pending_guest_lines():
                    outcome = await self._merge(None)
                    return outcome.snapshot
            return await self._load()

    async def merge(self, anonymous_lines: Optional[Iterable[CartLine]] = None) -> MergeOutcome:
        """Fold guest lines into the signed-in user's remote cart.

        With no argument the pending lines are read from local storage, which
        is how a partially failed merge is retried.
        """
        async with self._lock:
            return await self._merge(anonymous_lines)

    async def _merge(self, anonymous_lines: Optional[Iterable[CartLine]]) -> MergeOutcome:
        if not self._identity.is_authenticated:
            return MergeOutcome(
                0, 0, self.snapshot(), Failure.validation("Sign in to merge the guest cart")
            )

        stored_lines, synced = self._read_guest()
        lines = tuple(anonymous_lines) if anonymous_lines is not None else stored_lines
        user_id = self._identity.user_id

        merged = 0
        failure = None
        # One upsert at a time per user; lines sharing a key must accumulate.
        for line in lines:
            if line.id in synced:
                continue
            try:
                await self._upsert_remote(user_id, line.product_id, line.variant_id, line.quantity)
            except REMOTE_ERRORS:
                logger.exception(
                    "Guest cart merge stopped at line %s for user %s", line.id, user_id
                )
                failure = Failure.network(
                    "Some items from your guest cart could not be saved. We'll retry."
                )
                break
            synced.add(line.id)
            self._write_guest(lines, synced)
            merged += 1

        pending = sum(1 for line in lines if line.id not in synced)
        if pending == 0:
            self._local.remove(self._storage_key)

        snapshot = await self._load()
        if failure is None and snapshot.failure is not None:
            failure = snapshot.failure
        logger.info(
            "Merged %d guest cart lines for user %s (%d pending)", merged, user_id, pending
        )
        snapshot = CartSnapshot(snapshot.identity, snapshot.lines, failure)
        return MergeOutcome(merged, pending, snapshot, failure)
