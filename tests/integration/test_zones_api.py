"""Integration tests for the zone lookup endpoint."""

import pytest
from tests.factories import ZoneFactory, zone_chain


@pytest.mark.asyncio
@pytest.mark.integration
async def test_root_zones_sorted(api_client, db_session):
    root, middle, leaf = zone_chain()
    db_session.add_all([root, ZoneFactory.create(name="Ashanti")])
    await db_session.flush()
    db_session.add(middle)
    await db_session.flush()
    db_session.add(leaf)
    await db_session.commit()

    response = await api_client.get("/store/zones")

    assert response.status_code == 200
    assert [z["name"] for z in response.json()] == ["Ashanti", "Greater Accra"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_children_of_zone(api_client, db_session):
    root, middle, leaf = zone_chain()
    db_session.add(root)
    await db_session.flush()
    db_session.add(middle)
    await db_session.flush()
    db_session.add(leaf)
    await db_session.commit()

    response = await api_client.get("/store/zones", params={"parent_id": middle.id})

    assert response.status_code == 200
    (area,) = response.json()
    assert area == {"id": leaf.id, "name": "Osu", "parent_id": middle.id}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(api_client):
    response = await api_client.get("/health")

    assert response.json() == {"status": "ok", "service": "storefront"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_is_echoed(api_client):
    response = await api_client.get("/store/zones", headers={"X-Request-ID": "req-osu-42"})

    assert response.headers["X-Request-ID"] == "req-osu-42"
    assert "X-Response-Time-Ms" in response.headers
