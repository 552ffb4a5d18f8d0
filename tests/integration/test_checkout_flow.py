"""End-to-end checkout: guest cart, sign-in merge, quote, pay, verify."""

from decimal import Decimal

import pytest
from httpx import ASGITransport
from services.storefront_service.app.main import app
from services.storefront_service.client.cart_store import Identity
from services.storefront_service.client.container import Storefront
from services.storefront_service.client.payments import PaymentState
from services.storefront_service.client.pricing import QuoteStatus
from services.storefront_service.client.verification import PaymentVerifier
from services.storefront_service.models import CartLine, Order, OrderItem
from services.storefront_service.schemas import ShippingAddress
from sqlalchemy import select
from tests.factories import SHOPPER_EMAIL, SHOPPER_ID, ProductFactory, cart_item, zone_chain
from tests.stubs import FakeProvider, FixedRateQuotes


@pytest.mark.asyncio
@pytest.mark.integration
async def test_guest_to_paid_order(store_client, db_session, record_store, local_storage, paystack):
    kente = ProductFactory.create(name="Kente Scarf", price=Decimal("60.00"))
    beads = ProductFactory.create(name="Bead Bracelet", price=Decimal("20.00"))
    root, middle, leaf = zone_chain()
    db_session.add_all([kente, beads, root])
    await db_session.flush()
    db_session.add(middle)
    await db_session.flush()
    db_session.add(leaf)
    await db_session.commit()

    provider = FakeProvider()
    storefront = Storefront(
        record_store,
        local_storage,
        provider,
        verifier=PaymentVerifier(
            "http://test/store/checkout/verify", transport=ASGITransport(app=app)
        ),
        rate_quotes=FixedRateQuotes(fee="12.50"),
    )
    await storefront.start()

    # Shopping as a guest, then signing in
    await storefront.cart.add(cart_item(kente), 2)
    await storefront.cart.add(cart_item(beads))
    await storefront.sign_in(
        Identity(user_id=SHOPPER_ID, email=SHOPPER_EMAIL, access_token="jwt-kofi")
    )
    assert storefront.cart.snapshot().count == 3
    assert storefront.cart.pending_guest_lines() == ()

    # Bracelet stays in the cart for later
    bracelet = next(line for line in storefront.cart.lines if line.name == "Bead Bracelet")
    storefront.selection.toggle(bracelet.id)

    saved = await storefront.addresses.save(
        SHOPPER_ID,
        ShippingAddress(
            full_name="Kofi Asante",
            phone="0201234567",
            address_line="7 Cantonments Road",
            zone_id=root.id,
            sub_zone_id=middle.id,
            area_id=leaf.id,
        ),
    )
    checkout = storefront.checkout()
    quote = await checkout.pricing.set_address(saved.address)
    assert quote.status == QuoteStatus.READY
    assert checkout.pricing.totals.grand_total == Decimal("132.50")

    outcome = await checkout.payments.initiate(saved.address.id)
    assert outcome.started
    (session,) = provider.requests
    assert session.amount == 13250

    paystack.settle(session.reference, session.amount)
    attempt = await provider.on_success(session.reference)

    assert attempt.status == PaymentState.SUCCESS, attempt.error_message
    order = (await db_session.execute(select(Order))).scalar_one()
    assert order.order_number == attempt.order_number
    assert order.total_amount == Decimal("132.50")
    item = (await db_session.execute(select(OrderItem))).scalar_one()
    assert (item.product_name, item.quantity) == ("Kente Scarf", 2)

    assert [line.name for line in storefront.cart.lines] == ["Bead Bracelet"]
    remaining = (await db_session.execute(select(CartLine.product_id))).scalars().all()
    assert remaining == [beads.id]

    await storefront.close()
