"""Unit tests for the logistics rate-quote client."""

import json
from decimal import Decimal

import httpx
import pytest
from libs.common.config import get_settings
from services.storefront_service.client.rate_quote import RateQuoteClient, RateQuoteError
from services.storefront_service.models import LOGISTICS_CONFIG_KEY
from services.storefront_service.schemas import ZonePath

PATH = ZonePath(zone="Greater Accra", sub_zone="Accra Central", area="Osu")
ENDPOINT = "https://logistics.test/quote"


async def _enable(record_store, endpoint=ENDPOINT, enabled=True):
    await record_store.insert(
        "admin_settings",
        {"key": LOGISTICS_CONFIG_KEY, "value": {"api_endpoint": endpoint, "is_enabled": enabled}},
    )


def _client(record_store, handler, **kwargs):
    return RateQuoteClient(record_store, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_quote_posts_location_and_reads_fee(record_store):
    await _enable(record_store)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"deliveryFee": 17.5})

    fee = await _client(record_store, handler).quote(PATH, Decimal("120.00"), Decimal("2.5"))

    assert fee == Decimal("17.50")
    assert seen["url"] == ENDPOINT
    assert seen["body"] == {
        "location": {"zone": "Greater Accra", "subZone": "Accra Central", "area": "Osu"},
        "cartTotal": 120.0,
        "itemsWeight": 2.5,
    }


@pytest.mark.asyncio
@pytest.mark.unit
async def test_disabled_config_is_free_without_calling(record_store):
    await _enable(record_store, enabled=False)

    def handler(request):
        raise AssertionError("endpoint must not be called")

    fee = await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1"))

    assert fee == Decimal("0")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_missing_endpoint_is_free(record_store):
    await _enable(record_store, endpoint="  ")

    def handler(request):
        raise AssertionError("endpoint must not be called")

    assert await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1")) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_settings_fallback_when_no_admin_record(record_store):
    settings = get_settings().model_copy(
        update={"LOGISTICS_API_ENDPOINT": ENDPOINT, "LOGISTICS_ENABLED": True}
    )

    def handler(request):
        return httpx.Response(200, json={"deliveryFee": "9"})

    client = _client(record_store, handler, settings=settings)

    assert (await client.load_config()).active
    assert await client.quote(PATH, Decimal("10"), Decimal("1")) == Decimal("9.00")


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [{"fee": 10}, {"deliveryFee": "abc"}, {"deliveryFee": -4}, {"deliveryFee": None}, ["x"]],
)
async def test_malformed_response_is_free(record_store, body):
    await _enable(record_store)

    def handler(request):
        return httpx.Response(200, json=body)

    assert await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1")) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_non_json_response_is_free(record_store):
    await _enable(record_store)

    def handler(request):
        return httpx.Response(200, text="<html>oops</html>")

    assert await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1")) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_error_status_raises(record_store):
    await _enable(record_store)

    def handler(request):
        return httpx.Response(503, text="down")

    with pytest.raises(RateQuoteError):
        await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1"))


@pytest.mark.asyncio
@pytest.mark.unit
async def test_network_error_raises(record_store):
    await _enable(record_store)

    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(RateQuoteError):
        await _client(record_store, handler).quote(PATH, Decimal("10"), Decimal("1"))
