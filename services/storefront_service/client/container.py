"""Constructs the storefront client components and owns their lifecycle."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.logging import configure_logging, get_logger
from libs.db.config import build_engine
from services.storefront_service.client.addresses import AddressBook
from services.storefront_service.client.cart_store import (
    ANONYMOUS,
    CartSnapshot,
    CartStore,
    Identity,
)
from services.storefront_service.client.discounts import DiscountService
from services.storefront_service.client.local_storage import LocalStorage
from services.storefront_service.client.notifications import Notifier
from services.storefront_service.client.payments import (
    PaymentOrchestrator,
    PaymentProvider,
    PaymentState,
)
from services.storefront_service.client.pricing import PricingEngine
from services.storefront_service.client.rate_quote import RateQuoteClient
from services.storefront_service.client.record_store import RecordStore, SqlRecordStore
from services.storefront_service.client.selection import SelectionModel
from services.storefront_service.client.verification import PaymentVerifier, Verifier
from services.storefront_service.client.zones import ZoneHierarchyReader, ZoneNavigator
from sqlalchemy.ext.asyncio import AsyncEngine

logger = get_logger(__name__)


@dataclass(eq=False)
class CheckoutSession:
    pricing: PricingEngine
    payments: PaymentOrchestrator

    @property
    def in_flight(self) -> bool:
        return self.payments.state == PaymentState.PROCESSING

    def close(self) -> None:
        self.payments.close()


class Storefront:
    """One instance per running app: build at start, ``close()`` at exit."""

    def __init__(
        self,
        record_store: RecordStore,
        local_storage: LocalStorage,
        provider: PaymentProvider,
        *,
        verifier: Optional[Verifier] = None,
        rate_quotes: Optional[RateQuoteClient] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings or get_settings()
        self.notifier = notifier or Notifier()
        self.cart = CartStore(record_store, local_storage, self.notifier)
        self.selection = SelectionModel(self.cart)
        self.zones = ZoneHierarchyReader(record_store)
        self.discounts = DiscountService(record_store)
        self.addresses = AddressBook(record_store)
        self.rate_quotes = rate_quotes or RateQuoteClient(record_store, self.settings)
        self.verifier = verifier or PaymentVerifier(settings=self.settings)
        self.provider = provider
        self._engine = engine
        self._sessions: list[CheckoutSession] = []

    @classmethod
    def from_settings(
        cls,
        provider: PaymentProvider,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> "Storefront":
        settings = settings or get_settings()
        configure_logging()
        engine = build_engine(settings.DATABASE_URL)
        return cls(
            SqlRecordStore(engine),
            LocalStorage(Path(settings.LOCAL_STORAGE_DIR)),
            provider,
            settings=settings,
            engine=engine,
            **kwargs,
        )

    @property
    def identity(self) -> Identity:
        return self.cart.identity

    async def start(self) -> CartSnapshot:
        logger.info("Storefront starting")
        return await self.cart.load()

    async def sign_in(self, identity: Identity) -> CartSnapshot:
        if not identity.is_authenticated:
            raise ValueError("sign_in() needs an authenticated identity")
        logger.info("Signing in user %s", identity.user_id)
        return await self.cart.switch_identity(identity)

    async def sign_out(self) -> CartSnapshot:
        logger.info("Signing out user %s", self.identity.user_id)
        return await self.cart.switch_identity(ANONYMOUS)

    @property
    def open_checkouts(self) -> tuple[CheckoutSession, ...]:
        return tuple(self._sessions)

    def zone_navigator(self) -> ZoneNavigator:
        return ZoneNavigator(self.zones)

    def checkout(self) -> CheckoutSession:
        """Fresh pricing and payment state for one checkout visit.

        Starting a visit closes earlier visits, except ones with a payment
        still in flight.
        """
        for stale in [s for s in self._sessions if not s.in_flight]:
            self.end_checkout(stale)
        pricing = PricingEngine(
            self.selection,
            self.zones,
            self.rate_quotes,
            self.discounts,
            settings=self.settings,
        )
        payments = PaymentOrchestrator(
            self.cart,
            self.selection,
            pricing,
            self.provider,
            self.verifier,
            settings=self.settings,
        )
        session = CheckoutSession(pricing, payments)
        self._sessions.append(session)
        return session

    def end_checkout(self, session: CheckoutSession) -> None:
        if session in self._sessions:
            self._sessions.remove(session)
            session.close()

    async def close(self) -> None:
        for session in self._sessions:
            session.close()
        self._sessions.clear()
        self.selection.close()
        if self._engine is not None:
            await self._engine.dispose()
        logger.info("Storefront closed")
