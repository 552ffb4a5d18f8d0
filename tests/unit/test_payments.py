"""Unit tests for the payment state machine."""

import asyncio
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from libs.common.config import get_settings
from services.storefront_service.client.cart_store import CartStore, Identity
from services.storefront_service.client.discounts import DiscountService
from services.storefront_service.client.payments import (
    InitiateStatus,
    PaymentErrorKind,
    PaymentOrchestrator,
    PaymentProviderError,
    PaymentState,
)
from services.storefront_service.client.pricing import PricingEngine
from services.storefront_service.client.selection import SelectionModel
from services.storefront_service.client.verification import PaymentVerifier
from services.storefront_service.client.zones import ZoneHierarchyReader
from tests.factories import ProductFactory, cart_item
from tests.stubs import FakeProvider, FakeVerifier, FixedRateQuotes, rejected

SHOPPER = Identity(user_id="user-abena", email="abena@test.com", access_token="jwt-abena")
VERIFY_URL = "https://store.test/store/checkout/verify"


@pytest_asyncio.fixture
async def shop(db_session, record_store, local_storage):
    """Signed-in cart with Tee x2 (80.00) and Cap x1 (25.00), all selected."""
    tee = ProductFactory.create(name="Tee", price=Decimal("40.00"))
    cap = ProductFactory.create(name="Cap", price=Decimal("25.00"))
    db_session.add_all([tee, cap])
    await db_session.commit()

    cart = CartStore(record_store, local_storage)
    await cart.switch_identity(SHOPPER)
    await cart.add(cart_item(tee), 2)
    await cart.add(cart_item(cap))
    selection = SelectionModel(cart)
    pricing = PricingEngine(
        selection,
        ZoneHierarchyReader(record_store),
        FixedRateQuotes(),
        DiscountService(record_store),
    )
    return cart, selection, pricing


def _orchestrator(shop, provider=None, verifier=None, **settings_overrides):
    cart, selection, pricing = shop
    settings = get_settings().model_copy(update=settings_overrides)
    return PaymentOrchestrator(
        cart,
        selection,
        pricing,
        provider or FakeProvider(),
        verifier or FakeVerifier(),
        settings=settings,
    )


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_selection_does_not_transition(shop):
    _, selection, _ = shop
    selection.toggle_all()
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)

    outcome = await payments.initiate("addr-1")

    assert outcome.status == InitiateStatus.EMPTY_SELECTION
    assert payments.state == PaymentState.IDLE
    assert provider.requests == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_missing_address_does_not_transition(shop):
    payments = _orchestrator(shop)

    outcome = await payments.initiate(None)

    assert outcome.status == InitiateStatus.ADDRESS_REQUIRED
    assert payments.state == PaymentState.IDLE


@pytest.mark.asyncio
@pytest.mark.unit
async def test_guest_must_sign_in(shop):
    cart, _, _ = shop
    await cart.switch_identity(Identity())
    payments = _orchestrator(shop)

    outcome = await payments.initiate("addr-1")

    assert outcome.status == InitiateStatus.SIGN_IN_REQUIRED


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_initiate_opens_session_in_pesewas(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)

    outcome = await payments.initiate("addr-1")

    assert outcome.started
    assert payments.state == PaymentState.PROCESSING
    (request,) = provider.requests
    assert request.amount == 10500
    assert request.currency == "GHS"
    assert request.email == "abena@test.com"
    assert request.reference.startswith("STF-")
    assert payments.attempt.amount == Decimal("105.00")
    payments.close()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verified_payment_clears_only_selected_lines(shop):
    cart, selection, _ = shop
    cap_line = next(line for line in cart.lines if line.name == "Cap")
    selection.toggle(cap_line.id)
    provider, verifier = FakeProvider(), FakeVerifier()
    payments = _orchestrator(shop, provider, verifier)
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)

    assert attempt.status == PaymentState.SUCCESS
    assert attempt.order_number == "ORD-20261018-ABCDE"
    assert [line.name for line in cart.lines] == ["Cap"]
    (request, token) = verifier.requests[0]
    assert token == "jwt-abena"
    assert request.address_id == "addr-1"
    assert request.delivery_method_id == "normal"
    assert cap_line.id not in request.selected_line_ids


@pytest.mark.asyncio
@pytest.mark.unit
async def test_dismiss_returns_to_idle_without_error(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)
    await payments.initiate("addr-1")

    attempt = provider.on_close()

    assert attempt.status == PaymentState.IDLE
    assert attempt.error_message is None
    again = await payments.initiate("addr-1")
    assert again.started
    payments.close()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_initiate_while_processing_is_busy(shop):
    payments = _orchestrator(shop)
    await payments.initiate("addr-1")

    outcome = await payments.initiate("addr-1")

    assert outcome.status == InitiateStatus.BUSY
    payments.close()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_server_rejection_is_unverified_and_keeps_cart(shop):
    cart, _, _ = shop
    provider = FakeProvider()
    payments = _orchestrator(shop, provider, FakeVerifier(error=rejected()))
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)

    assert attempt.status == PaymentState.ERROR
    assert attempt.error_kind == PaymentErrorKind.UNVERIFIED
    assert "order history" in attempt.error_message
    assert len(cart.lines) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verification_network_error_is_unverified(shop):
    provider = FakeProvider()
    verifier = FakeVerifier(error=httpx.ConnectError("refused"))
    payments = _orchestrator(shop, provider, verifier)
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)

    assert attempt.error_kind == PaymentErrorKind.UNVERIFIED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_verification_timeout_degrades_to_error(shop):
    provider = FakeProvider()
    payments = _orchestrator(
        shop, provider, FakeVerifier(delay=1), VERIFICATION_TIMEOUT_SECONDS=0.01
    )
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)

    assert attempt.status == PaymentState.ERROR
    assert attempt.error_kind == PaymentErrorKind.UNVERIFIED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_provider_failure_is_plain_network_error(shop):
    payments = _orchestrator(shop, FakeProvider(error=PaymentProviderError("init failed")))

    outcome = await payments.initiate("addr-1")

    assert outcome.status == InitiateStatus.FAILED
    assert payments.attempt.error_kind == PaymentErrorKind.NETWORK
    assert "not been charged" in payments.attempt.error_message


@pytest.mark.asyncio
@pytest.mark.unit
async def test_callback_with_wrong_reference_is_missing_session(shop):
    provider = FakeProvider()
    verifier = FakeVerifier()
    payments = _orchestrator(shop, provider, verifier)
    await payments.initiate("addr-1")

    attempt = await provider.on_success("STF-someone-else")

    assert attempt.error_kind == PaymentErrorKind.MISSING_SESSION
    assert verifier.requests == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_no_callback_times_out(shop):
    payments = _orchestrator(shop, PAYMENT_WINDOW_SECONDS=0.02)
    await payments.initiate("addr-1")

    await asyncio.sleep(0.1)

    assert payments.state == PaymentState.ERROR
    assert payments.attempt.error_kind == PaymentErrorKind.TIMEOUT


@pytest.mark.asyncio
@pytest.mark.unit
async def test_retry_is_the_only_way_out_of_error(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider, FakeVerifier(error=rejected()))
    await payments.initiate("addr-1")
    await provider.on_success(provider.last_reference)

    blocked = await payments.initiate("addr-1")
    assert blocked.status == InitiateStatus.BUSY
    provider.on_close()
    assert payments.state == PaymentState.ERROR

    assert payments.retry().status == PaymentState.IDLE
    assert payments.attempt.reference is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_duplicate_callback_verifies_once(shop):
    provider = FakeProvider()
    verifier = FakeVerifier(delay=0.01)
    payments = _orchestrator(shop, provider, verifier)
    await payments.initiate("addr-1")
    reference = provider.last_reference

    await asyncio.gather(
        provider.on_success(reference), provider.on_success(reference)
    )

    assert len(verifier.requests) == 1
    assert payments.state == PaymentState.SUCCESS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_listeners_see_each_transition(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)
    states = []
    payments.subscribe(lambda attempt: states.append(attempt.status))

    await payments.initiate("addr-1")
    await provider.on_success(provider.last_reference)

    assert states == [PaymentState.PROCESSING, PaymentState.SUCCESS]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_duplicate_callback_while_cart_clears_is_ignored(shop, monkeypatch):
    cart, _, _ = shop
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(
                200,
                json={"success": True, "orderId": "order-1", "orderNumber": "ORD-20261018-ABCDE", "amount": "105.00"},
            )
        return httpx.Response(409, json={"detail": "Payment is already being processed"})

    original_clear = cart.clear

    async def slow_clear(line_ids=None):
        await asyncio.sleep(0.05)
        return await original_clear(line_ids)

    monkeypatch.setattr(cart, "clear", slow_clear)
    provider = FakeProvider()
    verifier = PaymentVerifier(VERIFY_URL, transport=httpx.MockTransport(handler))
    payments = _orchestrator(shop, provider, verifier)
    await payments.initiate("addr-1")
    reference = provider.last_reference

    async def late_duplicate():
        await asyncio.sleep(0.02)
        return await provider.on_success(reference)

    first, second = await asyncio.gather(provider.on_success(reference), late_duplicate())

    assert len(calls) == 1
    assert first.status == PaymentState.SUCCESS
    assert second.status == PaymentState.PROCESSING
    assert payments.state == PaymentState.SUCCESS
    assert cart.lines == ()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unreadable_verification_response_is_unverified(shop):
    cart, _, _ = shop
    provider = FakeProvider()
    verifier = PaymentVerifier(
        VERIFY_URL,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>gateway</html>")),
    )
    payments = _orchestrator(shop, provider, verifier, PAYMENT_WINDOW_SECONDS=0.05)
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)
    await asyncio.sleep(0.1)

    assert attempt.error_kind == PaymentErrorKind.UNVERIFIED
    assert payments.state == PaymentState.ERROR
    assert payments.attempt.error_kind == PaymentErrorKind.UNVERIFIED
    assert len(cart.lines) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unexpected_verifier_error_is_unverified(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider, FakeVerifier(error=RuntimeError("serializer bug")))
    await payments.initiate("addr-1")

    attempt = await provider.on_success(provider.last_reference)

    assert attempt.status == PaymentState.ERROR
    assert attempt.error_kind == PaymentErrorKind.UNVERIFIED
    assert payments.retry().status == PaymentState.IDLE


# ---------------------------------------------------------------------------
# Provider session release
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_provider_session_released_on_timeout(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider, PAYMENT_WINDOW_SECONDS=0.02)
    await payments.initiate("addr-1")
    reference = provider.last_reference

    await asyncio.sleep(0.1)

    assert payments.attempt.error_kind == PaymentErrorKind.TIMEOUT
    assert provider.released == [reference]
    payments.retry()
    assert provider.released == [reference]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_provider_session_released_on_dismiss_and_success(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)

    await payments.initiate("addr-1")
    dismissed = provider.last_reference
    provider.on_close()

    await payments.initiate("addr-1")
    paid = provider.last_reference
    await provider.on_success(paid)

    assert provider.released == [dismissed, paid]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_close_releases_session_in_flight(shop):
    provider = FakeProvider()
    payments = _orchestrator(shop, provider)
    await payments.initiate("addr-1")

    payments.close()

    assert provider.released == [provider.last_reference]
