"""
HTTP surface: snapshot reads, the two commands, loop start/stop.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from fleet_monitor.config import settings
from fleet_monitor.engine import make_alert
from fleet_monitor.main import app, get_simulation, stop_simulation_loop

QURUM = {"lat": 23.6025, "lng": 58.4375, "name": "Shell Station Qurum"}


@pytest.fixture
async def client(seeded_sim, monkeypatch):
    monkeypatch.setattr(settings, "autostart", False)
    app.dependency_overrides[get_simulation] = lambda: seeded_sim
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await stop_simulation_loop()
    app.dependency_overrides = {}


@pytest.mark.asyncio
async def test_state_snapshot(client):
    response = await client.get("/api/state")
    assert response.status_code == 200
    data = response.json()
    assert data["running"] is False
    assert len(data["trucks"]) == 5
    assert data["alerts"] == []
    assert data["fuelLossHistory"] == []
    assert data["fuelConsumptionData"] == []


@pytest.mark.asyncio
async def test_get_truck(client):
    response = await client.get("/api/trucks/TK003")
    assert response.status_code == 200
    assert response.json()["destination"]["name"] == "Shell Station Qurum"

    response = await client.get("/api/trucks/TK999")
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_TRUCK_NOT_FOUND"


@pytest.mark.asyncio
async def test_assign_trip(client, seeded_sim):
    response = await client.post("/api/trucks/TK001/assign", json=QURUM)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "assigned"
    assert body["warning"] is None
    assert body["distanceKm"] > 0
    assert seeded_sim.trucks["TK001"].status == "assigned"

    response = await client.post("/api/trucks/TK001/assign", json=QURUM)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_assign_unknown_truck(client):
    response = await client.post("/api/trucks/TK999/assign", json=QURUM)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_assign_rejects_bad_body(client):
    response = await client.post("/api/trucks/TK001/assign", json={"name": "Nowhere"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_assign_requires_destination_name(client, seeded_sim):
    response = await client.post("/api/trucks/TK001/assign", json={"lat": 23.6025, "lng": 58.4375})
    assert response.status_code == 422
    assert seeded_sim.trucks["TK001"].status == "idle"


@pytest.mark.asyncio
async def test_long_trip_warns_but_assigns(client, seeded_sim):
    response = await client.post("/api/trucks/TK001/assign", json={"lat": 17.0194, "lng": 54.0897, "name": "Salalah"})
    assert response.status_code == 200
    assert response.json()["warning"].startswith("This trip is ~")
    assert seeded_sim.trucks["TK001"].status == "assigned"


@pytest.mark.asyncio
async def test_acknowledge_alert(client, seeded_sim):
    alert = make_alert(seeded_sim.trucks["TK002"], "theft", "high", "Injected", seeded_sim.clock())
    seeded_sim.alerts.appendleft(alert)

    for _ in range(2):
        response = await client.post(f"/api/alerts/{alert.id}/acknowledge")
        assert response.status_code == 200
        assert response.json() == {"alertId": alert.id, "acknowledged": True}

    response = await client.get("/api/alerts", params={"unacknowledged_only": True})
    assert response.json() == []

    response = await client.post("/api/alerts/alert-missing/acknowledge")
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_ALERT_NOT_FOUND"


@pytest.mark.asyncio
async def test_streams_after_ticks(client, seeded_sim):
    for _ in range(5):
        seeded_sim.tick()
    consumption = (await client.get("/api/fuel-consumption")).json()
    assert consumption
    assert all(sample["truckId"] == "TK002" or sample["truckId"] == "TK003" for sample in consumption)
    assert (await client.get("/api/fuel-loss")).json() == []


@pytest.mark.asyncio
async def test_zones_and_destinations(client):
    zones = (await client.get("/api/zones")).json()
    assert len(zones) == 8
    destinations = (await client.get("/api/destinations")).json()
    assert len(destinations) == 6
    assert not any(d["id"].startswith("danger") for d in destinations)


@pytest.mark.asyncio
async def test_truck_zones(client, seeded_sim):
    from fleet_monitor.models import Location
    seeded_sim.trucks["TK001"].position = Location(lat=23.5850, lng=58.4000)
    response = await client.get("/api/trucks/TK001/zones")
    assert [z["id"] for z in response.json()] == ["delivery-2"]
    assert (await client.get("/api/trucks/TK999/zones")).status_code == 404


@pytest.mark.asyncio
async def test_summary(client):
    summary = (await client.get("/api/summary")).json()
    assert summary["total"] == 5
    assert summary["active"] == 3


@pytest.mark.asyncio
async def test_start_and_stop(client, seeded_sim):
    seeded_sim.tick()
    response = await client.post("/api/start")
    assert response.status_code == 200
    assert response.json()["running"] is True
    assert seeded_sim.tick_count <= 1

    response = await client.post("/api/stop")
    assert response.json()["running"] is False
    ticks = seeded_sim.tick_count

    response = await client.post("/api/stop")
    assert response.json()["message"] == "Simulation was not running"
    assert seeded_sim.tick_count == ticks
