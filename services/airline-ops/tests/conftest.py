"""Shared fixtures for the airline-ops API tests."""

from __future__ import annotations

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from airline_ops.main import create_app

DEPARTURE = "2025-09-17T10:00:00+00:00"
ARRIVAL = "2025-09-17T11:00:00+00:00"


@pytest.fixture()
def app(monkeypatch, tmp_path):
    db_path = tmp_path / "airline.sqlite"
    monkeypatch.setenv("DB_DSN", f"sqlite+aiosqlite:///{db_path}")
    return create_app()


@pytest_asyncio.fixture()
async def client(app):
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client


async def create(client: AsyncClient, path: str, payload: dict) -> dict:
    response = await client.post(path, json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest_asyncio.fixture()
async def network(client):
    """Airline A with aircraft X and two airports, enough to schedule a flight."""

    airline = await create(client, "/airlines", {"name": "Test Air", "iata_code": "TA", "country": "Norway"})
    p1 = await create(client, "/airports", {"name": "Oslo Gardermoen", "iata_code": "OSL", "city": "Oslo"})
    p2 = await create(client, "/airports", {"name": "Bergen Flesland", "iata_code": "BGO", "city": "Bergen"})
    aircraft = await create(
        client,
        "/aircraft",
        {"registration_number": "LN-TAX", "model": "737-800", "capacity": 186, "airline_id": airline["id"]},
    )
    return {"airline": airline["id"], "p1": p1["id"], "p2": p2["id"], "aircraft": aircraft["id"]}


def flight_payload(network: dict, **overrides) -> dict:
    payload = {
        "flight_number": "TA100",
        "departure_airport_id": network["p1"],
        "arrival_airport_id": network["p2"],
        "departure_time": DEPARTURE,
        "arrival_time": ARRIVAL,
        "aircraft_id": network["aircraft"],
        "airline_id": network["airline"],
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture()
async def flight(client, network):
    return await create(client, "/flights", flight_payload(network))


@pytest_asyncio.fixture()
async def passenger(client):
    return await create(
        client, "/passengers", {"first_name": "Ola", "last_name": "Nordmann", "email": "ola@example.com"}
    )
