"""Integration tests for CRUD routes, delete guards and crew assignments."""

from __future__ import annotations

import pytest
from conftest import create, flight_payload

pytestmark = pytest.mark.asyncio


async def test_airline_crud(client):
    created = await client.post("/airlines", json={"name": "Fjord Air", "iata_code": "FJ", "founded_year": 1999})
    assert created.status_code == 201
    assert created.json()["message"] == "Airline created successfully"
    airline_id = created.json()["data"]["id"]

    fetched = await client.get(f"/airlines/{airline_id}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["name"] == "Fjord Air"
    assert fetched.json()["data"]["flights"] == []

    updated = await client.put(f"/airlines/{airline_id}", json={"name": "Fjord Airways"})
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["name"] == "Fjord Airways"
    # fields left out of the replacement are cleared
    assert data["iata_code"] is None
    assert data["founded_year"] is None

    deleted = await client.delete(f"/airlines/{airline_id}")
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Airline deleted successfully", "data": None}

    gone = await client.get(f"/airlines/{airline_id}")
    assert gone.status_code == 404
    assert gone.json() == {"message": "Airline not found"}


async def test_airline_name_required(client):
    response = await client.post("/airlines", json={"iata_code": "XX"})

    assert response.status_code == 400
    assert response.json() == {"message": "Airline name is required", "reason": "MissingField", "field": "name"}


async def test_malformed_payload_is_bad_request(client):
    response = await client.post("/aircraft", json={"registration_number": "LN-X", "model": "A320", "capacity": "many"})

    assert response.status_code == 400
    body = response.json()
    assert body["reason"] == "MalformedField"
    assert body["field"] == "capacity"
    assert body["errors"]


@pytest.mark.parametrize("path", ["/airports", "/aircraft", "/passengers", "/bookings", "/crew-members"])
async def test_unknown_ids_are_not_found(client, path):
    response = await client.get(f"{path}/does-not-exist")

    assert response.status_code == 404


async def test_delete_unknown_record(client):
    response = await client.delete("/passengers/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"message": "Passenger not found"}


async def test_airline_delete_blocked_by_dependents(client, network, flight):
    response = await client.delete(f"/airlines/{network['airline']}")

    assert response.status_code == 400
    assert response.json() == {
        "message": "Cannot delete airline with related records",
        "reason": "HasDependents",
        "data": {"aircraft": 1, "flights": 1, "crewMembers": 0},
    }


async def test_airport_delete_blocked_by_flights(client, network, flight):
    response = await client.delete(f"/airports/{network['p2']}")

    assert response.status_code == 400
    assert response.json()["data"] == {"departing": 0, "arriving": 1}


async def test_aircraft_without_airline(client):
    created = await create(client, "/aircraft", {"registration_number": "N12345", "model": "C172"})

    assert created["airline_id"] is None
    listing = await client.get("/aircraft")
    assert listing.json()["data"][0]["airline_name"] is None
    assert listing.json()["data"][0]["flight_count"] == 0


async def test_aircraft_with_unknown_airline(client):
    response = await client.post(
        "/aircraft", json={"registration_number": "N1", "model": "C172", "airline_id": "ghost"}
    )

    assert response.status_code == 400
    assert response.json()["reason"] == "UnknownAirline"


async def test_flight_delete_cascades_crew_but_not_bookings(client, network, flight, passenger):
    crew = await create(
        client,
        "/crew-members",
        {"first_name": "Per", "last_name": "P", "position": "Pilot", "airline_id": network["airline"]},
    )
    await create(
        client, "/crew-members/assign", {"flight_id": flight["id"], "crew_member_id": crew["id"], "role": "Captain"}
    )

    deleted = await client.delete(f"/flights/{flight['id']}")
    assert deleted.status_code == 200

    detail = await client.get(f"/crew-members/{crew['id']}")
    assert detail.json()["data"]["flights"] == []

    booked_flight = await create(client, "/flights", flight_payload(network, flight_number="TA300"))
    await create(client, "/bookings", {"flight_id": booked_flight["id"], "passenger_id": passenger["id"]})
    blocked = await client.delete(f"/flights/{booked_flight['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Cannot delete flight with related bookings"
    assert blocked.json()["data"] == {"bookings": 1}


async def test_passenger_delete_blocked_by_bookings(client, flight, passenger):
    booking = await create(client, "/bookings", {"flight_id": flight["id"], "passenger_id": passenger["id"]})

    blocked = await client.delete(f"/passengers/{passenger['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["data"] == {"bookings": 1}

    assert (await client.delete(f"/bookings/{booking['id']}")).status_code == 200
    assert (await client.delete(f"/passengers/{passenger['id']}")).status_code == 200


async def test_passenger_email_must_be_unique(client, passenger):
    duplicate = await client.post(
        "/passengers", json={"first_name": "Kari", "last_name": "Nordmann", "email": passenger["email"]}
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["reason"] == "DuplicateEmail"

    other = await create(client, "/passengers", {"first_name": "Kari", "last_name": "N", "email": "kari@example.com"})

    keep_own = await client.put(
        f"/passengers/{passenger['id']}",
        json={"first_name": "Ola", "last_name": "Changed", "email": passenger["email"], "date_of_birth": "1990-05-17"},
    )
    assert keep_own.status_code == 200
    assert keep_own.json()["data"]["date_of_birth"] == "1990-05-17"

    steal = await client.put(
        f"/passengers/{other['id']}",
        json={"first_name": "Kari", "last_name": "N", "email": passenger["email"]},
    )
    assert steal.status_code == 400
    assert steal.json()["reason"] == "DuplicateEmail"


async def test_passenger_requires_names_and_email(client):
    response = await client.post("/passengers", json={"first_name": "Ola", "email": "x@example.com"})

    assert response.status_code == 400
    assert response.json()["field"] == "last_name"


async def test_crew_member_requires_airline(client):
    response = await client.post("/crew-members", json={"first_name": "A", "last_name": "B", "position": "Pilot"})

    assert response.status_code == 400
    assert response.json()["message"] == "First name, last name, position, and airline ID are required"


async def test_crew_assignment_lifecycle(client, network, flight):
    crew = await create(
        client,
        "/crew-members",
        {"first_name": "Per", "last_name": "P", "position": "Pilot", "airline_id": network["airline"]},
    )
    key = {"flight_id": flight["id"], "crew_member_id": crew["id"]}

    assigned = await client.post("/crew-members/assign", json={**key, "role": "Captain"})
    assert assigned.status_code == 201
    assert assigned.json() == {
        "message": "Crew member assigned to flight successfully",
        "data": {**key, "role": "Captain"},
    }

    again = await client.post("/crew-members/assign", json={**key, "role": "First Officer"})
    assert again.status_code == 400
    assert again.json()["reason"] == "DuplicateAssignment"

    listing = await client.get("/crew-members")
    assert listing.json()["data"][0]["flight_count"] == 1

    removed = await client.request("DELETE", "/crew-members/assign", json=key)
    assert removed.status_code == 200
    assert removed.json()["message"] == "Crew member removed from flight successfully"

    removed_again = await client.request("DELETE", "/crew-members/assign", json=key)
    assert removed_again.status_code == 404
    assert removed_again.json() == {"message": "Assignment not found"}


async def test_crew_assignment_requires_role(client, network, flight):
    response = await client.post(
        "/crew-members/assign", json={"flight_id": flight["id"], "crew_member_id": "someone"}
    )

    assert response.status_code == 400
    assert response.json()["reason"] == "MissingField"
    assert response.json()["field"] == "role"


async def test_crew_member_delete_drops_assignments(client, network, flight):
    crew = await create(
        client,
        "/crew-members",
        {"first_name": "Per", "last_name": "P", "position": "Pilot", "airline_id": network["airline"]},
    )
    await create(
        client, "/crew-members/assign", {"flight_id": flight["id"], "crew_member_id": crew["id"], "role": "Captain"}
    )

    deleted = await client.delete(f"/crew-members/{crew['id']}")

    assert deleted.status_code == 200
    detail = await client.get(f"/flights/{flight['id']}")
    assert detail.json()["data"]["crew_members"] == []


async def test_airport_detail_lists_both_directions(client, network, flight):
    response = await client.get(f"/airports/{network['p1']}")

    detail = response.json()["data"]
    assert [f["flight_number"] for f in detail["departing_flights"]] == ["TA100"]
    assert detail["arriving_flights"] == []

    listing = await client.get("/airports")
    by_code = {row["iata_code"]: row for row in listing.json()["data"]}
    assert by_code["OSL"]["departures"] == 1
    assert by_code["BGO"]["arrivals"] == 1


async def test_aircraft_with_blank_airline_is_unowned(client):
    response = await client.post("/aircraft", json={"registration_number": "N1", "model": "C172", "airline_id": ""})

    assert response.status_code == 201
    assert response.json()["data"]["airline_id"] is None


async def test_scheduled_aircraft_keeps_its_airline(client, network, flight):
    other = await create(client, "/airlines", {"name": "Other Air"})
    aircraft_url = f"/aircraft/{network['aircraft']}"

    moved = await client.put(
        aircraft_url, json={"registration_number": "LN-TAX", "model": "737-800", "airline_id": other["id"]}
    )
    assert moved.status_code == 400
    assert moved.json() == {
        "message": "Aircraft is scheduled on flights operated by another airline",
        "reason": "AircraftAirlineMismatch",
        "field": "airline_id",
        "data": {"flights": 1},
    }

    released = await client.put(aircraft_url, json={"registration_number": "LN-TAX", "model": "737-800"})
    assert released.status_code == 400
    assert released.json()["reason"] == "AircraftAirlineMismatch"

    renamed = await client.put(
        aircraft_url, json={"registration_number": "LN-TAY", "model": "737-800", "airline_id": network["airline"]}
    )
    assert renamed.status_code == 200

    await client.delete(f"/flights/{flight['id']}")
    idle = await client.put(
        aircraft_url, json={"registration_number": "LN-TAY", "model": "737-800", "airline_id": other["id"]}
    )
    assert idle.status_code == 200
    assert idle.json()["data"]["airline_id"] == other["id"]


async def test_assigned_crew_member_keeps_its_airline(client, network, flight):
    other = await create(client, "/airlines", {"name": "Other Air"})
    crew_payload = {"first_name": "Per", "last_name": "P", "position": "Pilot", "airline_id": network["airline"]}
    crew = await create(client, "/crew-members", crew_payload)
    key = {"flight_id": flight["id"], "crew_member_id": crew["id"]}
    await create(client, "/crew-members/assign", {**key, "role": "Captain"})

    moved = await client.put(f"/crew-members/{crew['id']}", json={**crew_payload, "airline_id": other["id"]})
    assert moved.status_code == 400
    assert moved.json()["reason"] == "AirlineMismatch"
    assert moved.json()["data"] == {"flights": 1}

    await client.request("DELETE", "/crew-members/assign", json=key)
    free = await client.put(f"/crew-members/{crew['id']}", json={**crew_payload, "airline_id": other["id"]})
    assert free.status_code == 200
