"""Paystack hosted checkout as a ``PaymentProvider``.

The hosted page runs outside this process: ``open_session`` initializes the
transaction and launches its authorization URL, and whatever receives the
redirect (or the shopper closing the page) reports back through
``complete()`` or ``dismiss()``.
"""

import webbrowser
from typing import Callable, Optional

from libs.common.logging import get_logger
from services.storefront_service.client.payments import (
    CloseCallback,
    PaymentProviderError,
    PaymentSessionRequest,
    SuccessCallback,
)
from services.storefront_service.paystack_client import PaystackClient, PaystackError

logger = get_logger(__name__)


class PaystackCheckout:
    def __init__(
        self,
        client: PaystackClient,
        *,
        launcher: Callable[[str], object] = webbrowser.open,
        callback_url: Optional[str] = None,
    ):
        self._client = client
        self._launcher = launcher
        self._callback_url = callback_url
        self._sessions: dict[str, tuple[SuccessCallback, CloseCallback]] = {}

    async def open_session(
        self,
        request: PaymentSessionRequest,
        on_success: SuccessCallback,
        on_close: CloseCallback,
    ) -> None:
        try:
            session = await self._client.initialize_transaction(
                email=request.email,
                amount_pesewas=request.amount,
                reference=request.reference,
                currency=request.currency,
                metadata=request.metadata,
                callback_url=self._callback_url,
            )
        except PaystackError as e:
            raise PaymentProviderError(e.message) from e

        self._sessions[request.reference] = (on_success, on_close)
        logger.info("Opening Paystack checkout for %s", request.reference)
        self._launcher(session.authorization_url)

    async def complete(self, reference: str) -> None:
        """The hosted page redirected back with ``reference``."""
        callbacks = self._sessions.pop(reference, None)
        if callbacks is None:
            logger.warning("Paystack redirect for unknown reference %s", reference)
            return
        await callbacks[0](reference)

    def dismiss(self, reference: str) -> None:
        callbacks = self._sessions.pop(reference, None)
        if callbacks is not None:
            callbacks[1]()

    def release(self, reference: str) -> None:
        if self._sessions.pop(reference, None) is not None:
            logger.debug("Released Paystack session %s", reference)

    @property
    def open_references(self) -> frozenset[str]:
        return frozenset(self._sessions)
