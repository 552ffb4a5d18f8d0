"""Payment Orchestrator: drives one checkout attempt from initiation to a verified order.

States: idle -> processing -> success | error; error -> idle via ``retry()``;
processing -> idle when the shopper dismisses the provider window before
paying. The provider callback alone never marks an order paid: only a
successful server verification does.
"""

import asyncio
import enum
import secrets
import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Protocol

from libs.common.config import Settings, get_settings
from libs.common.currency import cedis_to_pesewas
from libs.common.logging import get_logger
from services.storefront_service.client.cart_store import CartStore
from services.storefront_service.client.errors import REMOTE_ERRORS
from services.storefront_service.client.pricing import PricingEngine, QuoteStatus
from services.storefront_service.client.selection import SelectionModel
from services.storefront_service.client.verification import VerificationRejected, Verifier
from services.storefront_service.schemas import VerifyPaymentRequest

logger = get_logger(__name__)


class PaymentState(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    PaymentState.IDLE: {PaymentState.PROCESSING},
    PaymentState.PROCESSING: {PaymentState.SUCCESS, PaymentState.ERROR, PaymentState.IDLE},
    PaymentState.ERROR: {PaymentState.IDLE},
    PaymentState.SUCCESS: set(),
}


class PaymentErrorKind(str, enum.Enum):
    NETWORK = "network"
    UNVERIFIED = "unverified"
    TIMEOUT = "timeout"
    MISSING_SESSION = "missing_session"


ERROR_MESSAGES = {
    PaymentErrorKind.NETWORK: (
        "Could not reach the payment provider. You have not been charged; please try again."
    ),
    PaymentErrorKind.UNVERIFIED: (
        "We received a payment confirmation from the provider but could not verify it. "
        "Please check your order history before retrying, or contact support."
    ),
    PaymentErrorKind.TIMEOUT: (
        "The payment window expired. If you completed the payment, check your order "
        "history before retrying."
    ),
    PaymentErrorKind.MISSING_SESSION: (
        "The payment session could not be found. Please start checkout again."
    ),
}


@dataclass(frozen=True)
class PaymentAttempt:
    reference: Optional[str] = None
    amount: Decimal = Decimal("0")
    status: PaymentState = PaymentState.IDLE
    error_kind: Optional[PaymentErrorKind] = None
    error_message: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None


IDLE_ATTEMPT = PaymentAttempt()


class InitiateStatus(str, enum.Enum):
    STARTED = "started"
    EMPTY_SELECTION = "empty_selection"
    ADDRESS_REQUIRED = "address_required"
    SIGN_IN_REQUIRED = "sign_in_required"
    NOTHING_TO_PAY = "nothing_to_pay"
    BUSY = "busy"
    FAILED = "failed"


@dataclass(frozen=True)
class InitiateOutcome:
    status: InitiateStatus
    attempt: PaymentAttempt

    @property
    def started(self) -> bool:
        return self.status == InitiateStatus.STARTED


@dataclass(frozen=True)
class PaymentSessionRequest:
    """What the hosted checkout widget needs; ``amount`` is in pesewas."""

    public_key: str
    email: str
    amount: int
    currency: str
    reference: str
    metadata: dict[str, Any] = field(default_factory=dict)


SuccessCallback = Callable[[str], Awaitable[Any]]
CloseCallback = Callable[[], Any]


class PaymentProvider(Protocol):
    async def open_session(
        self,
        request: PaymentSessionRequest,
        on_success: SuccessCallback,
        on_close: CloseCallback,
    ) -> None: ...

    def release(self, reference: str) -> None:
        """Forget the session for ``reference``; unknown references are ignored."""
        ...


class PaymentProviderError(Exception):
    """The provider session could not be opened."""


def new_payment_reference() -> str:
    return f"STF-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class _Checkout:
    reference: str
    address_id: str
    delivery_method_id: str
    discount_code: Optional[str]
    line_ids: frozenset[str]


class PaymentOrchestrator:
    def __init__(
        self,
        cart: CartStore,
        selection: SelectionModel,
        pricing: PricingEngine,
        provider: PaymentProvider,
        verifier: Verifier,
        *,
        settings: Optional[Settings] = None,
    ):
        self._cart = cart
        self._selection = selection
        self._pricing = pricing
        self._provider = provider
        self._verifier = verifier
        self._settings = settings or get_settings()
        self._attempt = IDLE_ATTEMPT
        self._checkout: Optional[_Checkout] = None
        self._verifying = False
        self._watchdog: Optional[asyncio.TimerHandle] = None
        self._listeners: list[Callable[[PaymentAttempt], None]] = []

    @property
    def attempt(self) -> PaymentAttempt:
        return self._attempt

    @property
    def state(self) -> PaymentState:
        return self._attempt.status

    def subscribe(self, listener: Callable[[PaymentAttempt], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, attempt: PaymentAttempt) -> PaymentAttempt:
        current = self._attempt.status
        leaving = self._attempt.reference
        if attempt.status != current and attempt.status not in ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(f"Illegal payment transition {current.value} -> {attempt.status.value}")
        logger.info(
            "Payment %s: %s -> %s",
            attempt.reference or self._attempt.reference,
            current.value,
            attempt.status.value,
        )
        self._attempt = attempt
        if current == PaymentState.PROCESSING and attempt.status != PaymentState.PROCESSING:
            self._provider.release(leaving)
        for listener in list(self._listeners):
            listener(attempt)
        return attempt

    def _fail(self, kind: PaymentErrorKind, detail: Optional[str] = None) -> PaymentAttempt:
        self._cancel_watchdog()
        message = ERROR_MESSAGES[kind]
        if detail:
            message = f"{message} ({detail})"
        return self._transition(
            replace(
                self._attempt,
                status=PaymentState.ERROR,
                error_kind=kind,
                error_message=message,
            )
        )

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _expire(self) -> None:
        self._watchdog = None
        if self.state == PaymentState.PROCESSING and not self._verifying:
            logger.warning("Payment %s timed out waiting for the provider", self._attempt.reference)
            self._fail(PaymentErrorKind.TIMEOUT)

    def _refuse(self, status: InitiateStatus) -> InitiateOutcome:
        logger.info("Checkout not started: %s", status.value)
        return InitiateOutcome(status, self._attempt)

    async def initiate(self, address_id: Optional[str]) -> InitiateOutcome:
        """Start a payment for the current selection and total."""
        if self.state != PaymentState.IDLE:
            return self._refuse(InitiateStatus.BUSY)

        identity = self._cart.identity
        if not identity.is_authenticated or not identity.email:
            return self._refuse(InitiateStatus.SIGN_IN_REQUIRED)
        line_ids = self._selection.selected_ids
        if not line_ids:
            return self._refuse(InitiateStatus.EMPTY_SELECTION)
        if not address_id:
            return self._refuse(InitiateStatus.ADDRESS_REQUIRED)
        if self._pricing.shipping.status == QuoteStatus.LOADING:
            return self._refuse(InitiateStatus.BUSY)

        amount = self._pricing.totals.grand_total
        if amount <= 0:
            return self._refuse(InitiateStatus.NOTHING_TO_PAY)

        reference = new_payment_reference()
        discount = self._pricing.discount
        self._checkout = _Checkout(
            reference=reference,
            address_id=address_id,
            delivery_method_id=self._pricing.delivery_method.id,
            discount_code=discount.code if discount else None,
            line_ids=line_ids,
        )
        self._verifying = False
        self._transition(
            PaymentAttempt(reference=reference, amount=amount, status=PaymentState.PROCESSING)
        )
        self._watchdog = asyncio.get_running_loop().call_later(
            self._settings.PAYMENT_WINDOW_SECONDS, self._expire
        )

        request = PaymentSessionRequest(
            public_key=self._settings.PAYSTACK_PUBLIC_KEY,
            email=identity.email,
            amount=cedis_to_pesewas(amount),
            currency=self._settings.STORE_CURRENCY,
            reference=reference,
            metadata={
                "user_id": identity.user_id,
                "address_id": address_id,
                "delivery_method_id": self._checkout.delivery_method_id,
                "discount_code": self._checkout.discount_code,
                "selected_line_ids": sorted(line_ids),
            },
        )
        try:
            await self._provider.open_session(request, self.handle_callback, self.handle_close)
        except (PaymentProviderError, *REMOTE_ERRORS) as e:
            logger.exception("Could not open payment session %s", reference)
            # A callback may already have moved the attempt on.
            if self.state == PaymentState.PROCESSING and not self._verifying:
                self._fail(PaymentErrorKind.NETWORK, str(e) or None)
            return InitiateOutcome(InitiateStatus.FAILED, self._attempt)

        return InitiateOutcome(InitiateStatus.STARTED, self._attempt)

    async def handle_callback(self, reference: Optional[str]) -> PaymentAttempt:
        """Provider reported a completed payment; confirm it with the server."""
        if self.state != PaymentState.PROCESSING:
            logger.warning(
                "Ignoring payment callback for %s in state %s", reference, self.state.value
            )
            return self._attempt
        if self._verifying:
            logger.warning("Duplicate payment callback for %s", reference)
            return self._attempt

        checkout = self._checkout
        if checkout is None or not reference or reference != checkout.reference:
            logger.error(
                "Payment callback reference %s does not match session %s",
                reference,
                checkout.reference if checkout else None,
            )
            return self._fail(PaymentErrorKind.MISSING_SESSION)

        self._verifying = True
        self._cancel_watchdog()
        request = VerifyPaymentRequest(
            reference=reference,
            delivery_method_id=checkout.delivery_method_id,
            address_id=checkout.address_id,
            discount_code=checkout.discount_code,
            selected_line_ids=sorted(checkout.line_ids),
        )
        # _verifying stays set until a terminal transition.
        try:
            result = await asyncio.wait_for(
                self._verifier.verify(request, self._cart.identity.access_token or ""),
                timeout=self._settings.VERIFICATION_TIMEOUT_SECONDS,
            )
        except VerificationRejected as e:
            logger.error("Payment %s was not verified: %s", reference, e.message)
            return self._unverified(e.message)
        except REMOTE_ERRORS:
            logger.exception("Payment verification for %s did not complete", reference)
            return self._unverified()
        except Exception:
            logger.exception("Unexpected error verifying payment %s", reference)
            return self._unverified()

        snapshot = await self._cart.clear(checkout.line_ids)
        if snapshot.failure is not None:
            logger.warning(
                "Order %s placed but purchased lines were not cleared locally: %s",
                result.order_number,
                snapshot.failure.message,
            )
        self._checkout = None
        self._verifying = False
        return self._transition(
            replace(
                self._attempt,
                status=PaymentState.SUCCESS,
                order_id=result.order_id,
                order_number=result.order_number,
            )
        )

    def _unverified(self, detail: Optional[str] = None) -> PaymentAttempt:
        self._verifying = False
        return self._fail(PaymentErrorKind.UNVERIFIED, detail)

    def handle_close(self) -> PaymentAttempt:
        """Shopper dismissed the provider window."""
        if self.state != PaymentState.PROCESSING or self._verifying:
            return self._attempt
        self._cancel_watchdog()
        self._checkout = None
        logger.info("Payment %s dismissed by the shopper", self._attempt.reference)
        return self._transition(IDLE_ATTEMPT)

    def retry(self) -> PaymentAttempt:
        """Discard a failed attempt so checkout can start again."""
        if self.state != PaymentState.ERROR:
            return self._attempt
        self._checkout = None
        return self._transition(IDLE_ATTEMPT)

    def close(self) -> None:
        self._cancel_watchdog()
        if self.state == PaymentState.PROCESSING and self._attempt.reference:
            self._provider.release(self._attempt.reference)
        self._listeners.clear()
