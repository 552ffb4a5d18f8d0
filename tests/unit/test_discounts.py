"""Unit tests for discount validation and amounts."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.storefront_service.client.discounts import (
    DiscountRejection,
    DiscountService,
    check_redeemable,
    discount_amount,
)
from services.storefront_service.models import DiscountType
from services.storefront_service.schemas import DiscountCode
from tests.factories import DiscountFactory
from tests.stubs import FlakyRecordStore


def _code(**overrides):
    defaults = {
        "code": "SAVE10",
        "type": DiscountType.PERCENTAGE,
        "value": Decimal("10"),
        "max_uses": None,
        "used_count": 0,
        "expires_at": None,
        "is_active": True,
    }
    defaults.update(overrides)
    return DiscountCode(**defaults)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_exhausted_code_rejected_even_when_active_and_unexpired():
    code = _code(
        max_uses=5,
        used_count=5,
        expires_at=datetime.now(timezone.utc) + timedelta(days=3),
    )

    assert check_redeemable(code) == DiscountRejection.EXHAUSTED


@pytest.mark.unit
def test_expired_code_rejected_even_with_uses_left():
    code = _code(
        max_uses=5,
        used_count=1,
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )

    assert check_redeemable(code) == DiscountRejection.EXPIRED


@pytest.mark.unit
def test_inactive_code_rejected():
    assert check_redeemable(_code(is_active=False)) == DiscountRejection.INACTIVE


@pytest.mark.unit
def test_unlimited_code_is_redeemable():
    assert check_redeemable(_code(used_count=10_000)) is None


@pytest.mark.unit
def test_percentage_amount():
    assert discount_amount(Decimal("100"), _code(value=Decimal("10"))) == Decimal("10.00")


@pytest.mark.unit
def test_fixed_amount_capped_at_subtotal():
    code = _code(type=DiscountType.FIXED, value=Decimal("500"))

    assert discount_amount(Decimal("100"), code) == Decimal("100.00")


@pytest.mark.unit
def test_no_discount_on_empty_subtotal():
    assert discount_amount(Decimal("0"), _code()) == Decimal("0")


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_is_case_insensitive(record_store, db_session):
    db_session.add(DiscountFactory.create(code="WELCOME15", value=Decimal("15")))
    await db_session.commit()

    check = await DiscountService(record_store).validate("  welcome15 ")

    assert check.ok
    assert check.discount.value == Decimal("15")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_unknown_code(record_store):
    check = await DiscountService(record_store).validate("NOPE")

    assert check.rejection == DiscountRejection.NOT_FOUND
    assert check.message == "Invalid discount code."


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_expired_code_from_store(record_store, db_session):
    db_session.add(
        DiscountFactory.create(
            code="OLD", expires_at=datetime.now(timezone.utc) - timedelta(days=1)
        )
    )
    await db_session.commit()

    check = await DiscountService(record_store).validate("old")

    assert check.rejection == DiscountRejection.EXPIRED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_code_rejected_without_lookup(record_store):
    flaky = FlakyRecordStore(record_store)

    check = await DiscountService(flaky).validate("   ")

    assert check.rejection == DiscountRejection.EMPTY
    assert flaky.calls == {}


@pytest.mark.asyncio
@pytest.mark.unit
async def test_store_failure_is_unavailable(record_store):
    flaky = FlakyRecordStore(record_store)
    flaky.offline = True

    check = await DiscountService(flaky).validate("SAVE10")

    assert check.rejection == DiscountRejection.UNAVAILABLE
