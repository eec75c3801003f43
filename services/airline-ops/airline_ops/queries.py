"""Read models: list views with aggregated counts, detail views and statistics."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from .errors import InfrastructureError
from .models import Aircraft, Airline, Airport, Booking, CrewMember, Flight, FlightCrew, Passenger
from .schemas import ensure_timezone
from .store import storage_errors
from .validator import EntityKind

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

dep = aliased(Airport, name="dep")
arr = aliased(Airport, name="arr")


def _normalize(row: Any) -> Row:
    data = dict(row)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = ensure_timezone(value)
    return data


async def _all(db: AsyncSession, stmt: Select, action: str) -> List[Row]:
    with storage_errors(action):
        result = await db.execute(stmt)
    return [_normalize(row) for row in result.mappings().all()]


async def _first(db: AsyncSession, stmt: Select, action: str) -> Optional[Row]:
    rows = await _all(db, stmt, action)
    return rows[0] if rows else None


def _count_of(column: Any, target: Any) -> Any:
    return select(func.count()).where(column == target).scalar_subquery()


def _flight_summary() -> Select:
    return (
        select(
            Flight.id,
            Flight.flight_number,
            dep.name.label("departure_airport"),
            dep.iata_code.label("departure_code"),
            arr.name.label("arrival_airport"),
            arr.iata_code.label("arrival_code"),
            Flight.departure_time,
            Flight.arrival_time,
            Flight.status,
        )
        .join(dep, Flight.departure_airport_id == dep.id)
        .join(arr, Flight.arrival_airport_id == arr.id)
    )


def _flight_joined() -> Select:
    return (
        select(
            Flight.__table__,
            Airline.name.label("airline_name"),
            Airline.iata_code.label("airline_code"),
            dep.name.label("departure_airport"),
            dep.iata_code.label("departure_code"),
            dep.city.label("departure_city"),
            arr.name.label("arrival_airport"),
            arr.iata_code.label("arrival_code"),
            arr.city.label("arrival_city"),
            Aircraft.registration_number,
            Aircraft.model.label("aircraft_model"),
            Aircraft.capacity,
        )
        .join(Airline, Flight.airline_id == Airline.id)
        .join(dep, Flight.departure_airport_id == dep.id)
        .join(arr, Flight.arrival_airport_id == arr.id)
        .join(Aircraft, Flight.aircraft_id == Aircraft.id)
    )


def _booking_joined() -> Select:
    return (
        select(
            Booking.__table__,
            Passenger.first_name,
            Passenger.last_name,
            Passenger.email,
            Flight.flight_number,
            Flight.departure_time,
            Flight.arrival_time,
            Flight.status,
            Airline.name.label("airline_name"),
            dep.name.label("departure_airport"),
            dep.iata_code.label("departure_code"),
            arr.name.label("arrival_airport"),
            arr.iata_code.label("arrival_code"),
        )
        .join(Passenger, Booking.passenger_id == Passenger.id)
        .join(Flight, Booking.flight_id == Flight.id)
        .join(Airline, Flight.airline_id == Airline.id)
        .join(dep, Flight.departure_airport_id == dep.id)
        .join(arr, Flight.arrival_airport_id == arr.id)
    )


# --- list views ---------------------------------------------------------------

async def list_airlines(db: AsyncSession) -> List[Row]:
    stmt = select(Airline.__table__, _count_of(Flight.airline_id, Airline.id).label("flight_count")).order_by(
        Airline.name
    )
    return await _all(db, stmt, "listing airlines")


async def list_airports(db: AsyncSession) -> List[Row]:
    stmt = select(
        Airport.__table__,
        _count_of(Flight.departure_airport_id, Airport.id).label("departures"),
        _count_of(Flight.arrival_airport_id, Airport.id).label("arrivals"),
    ).order_by(Airport.name)
    return await _all(db, stmt, "listing airports")


async def list_aircraft(db: AsyncSession) -> List[Row]:
    stmt = (
        select(
            Aircraft.__table__,
            Airline.name.label("airline_name"),
            _count_of(Flight.aircraft_id, Aircraft.id).label("flight_count"),
        )
        .outerjoin(Airline, Aircraft.airline_id == Airline.id)
        .order_by(Aircraft.registration_number)
    )
    return await _all(db, stmt, "listing aircraft")


async def list_flights(db: AsyncSession) -> List[Row]:
    stmt = _flight_joined().add_columns(_count_of(Booking.flight_id, Flight.id).label("booking_count"))
    return await _all(db, stmt.order_by(Flight.departure_time.desc()), "listing flights")


async def list_passengers(db: AsyncSession) -> List[Row]:
    stmt = select(
        Passenger.__table__, _count_of(Booking.passenger_id, Passenger.id).label("booking_count")
    ).order_by(Passenger.last_name, Passenger.first_name)
    return await _all(db, stmt, "listing passengers")


async def list_bookings(db: AsyncSession) -> List[Row]:
    return await _all(db, _booking_joined().order_by(Flight.departure_time.desc()), "listing bookings")


async def list_crew_members(db: AsyncSession) -> List[Row]:
    stmt = (
        select(
            CrewMember.__table__,
            Airline.name.label("airline_name"),
            _count_of(FlightCrew.crew_member_id, CrewMember.id).label("flight_count"),
        )
        .outerjoin(Airline, CrewMember.airline_id == Airline.id)
        .order_by(CrewMember.last_name, CrewMember.first_name)
    )
    return await _all(db, stmt, "listing crew members")


# --- detail views -------------------------------------------------------------

async def airline_detail(db: AsyncSession, airline_id: str) -> Optional[Row]:
    airline = await _first(db, select(Airline.__table__).where(Airline.id == airline_id), "loading airline")
    if airline is None:
        return None
    airline["flights"] = await _all(
        db,
        _flight_summary().where(Flight.airline_id == airline_id).order_by(Flight.departure_time.desc()),
        "loading airline flights",
    )
    airline["aircraft"] = await _all(
        db,
        select(
            Aircraft.id, Aircraft.registration_number, Aircraft.model, Aircraft.manufacturer, Aircraft.capacity
        ).where(Aircraft.airline_id == airline_id),
        "loading airline aircraft",
    )
    return airline


async def airport_detail(db: AsyncSession, airport_id: str) -> Optional[Row]:
    airport = await _first(db, select(Airport.__table__).where(Airport.id == airport_id), "loading airport")
    if airport is None:
        return None
    flight_columns = (
        Flight.id,
        Flight.flight_number,
        Airline.name.label("airline"),
        Airline.iata_code.label("airline_code"),
    )
    times = (Flight.departure_time, Flight.arrival_time, Flight.status)
    airport["departing_flights"] = await _all(
        db,
        select(*flight_columns, arr.name.label("arrival_airport"), arr.iata_code.label("arrival_code"), *times)
        .join(Airline, Flight.airline_id == Airline.id)
        .join(arr, Flight.arrival_airport_id == arr.id)
        .where(Flight.departure_airport_id == airport_id)
        .order_by(Flight.departure_time.desc()),
        "loading departing flights",
    )
    airport["arriving_flights"] = await _all(
        db,
        select(*flight_columns, dep.name.label("departure_airport"), dep.iata_code.label("departure_code"), *times)
        .join(Airline, Flight.airline_id == Airline.id)
        .join(dep, Flight.departure_airport_id == dep.id)
        .where(Flight.arrival_airport_id == airport_id)
        .order_by(Flight.arrival_time.desc()),
        "loading arriving flights",
    )
    return airport


async def aircraft_detail(db: AsyncSession, aircraft_id: str) -> Optional[Row]:
    stmt = (
        select(Aircraft.__table__, Airline.name.label("airline_name"))
        .outerjoin(Airline, Aircraft.airline_id == Airline.id)
        .where(Aircraft.id == aircraft_id)
    )
    aircraft = await _first(db, stmt, "loading aircraft")
    if aircraft is None:
        return None
    aircraft["flights"] = await _all(
        db,
        _flight_summary().where(Flight.aircraft_id == aircraft_id).order_by(Flight.departure_time.desc()),
        "loading aircraft flights",
    )
    return aircraft


async def flight_detail(db: AsyncSession, flight_id: str) -> Optional[Row]:
    flight = await _first(db, _flight_joined().where(Flight.id == flight_id), "loading flight")
    if flight is None:
        return None
    flight["bookings"] = await _all(
        db,
        select(
            Booking.id,
            Booking.seat_number,
            Booking.booking_status,
            Booking.price,
            Passenger.first_name,
            Passenger.last_name,
            Passenger.email,
        )
        .join(Passenger, Booking.passenger_id == Passenger.id)
        .where(Booking.flight_id == flight_id),
        "loading flight bookings",
    )
    flight["crew_members"] = await _all(
        db,
        select(CrewMember.id, CrewMember.first_name, CrewMember.last_name, CrewMember.position, FlightCrew.role)
        .join(CrewMember, FlightCrew.crew_member_id == CrewMember.id)
        .where(FlightCrew.flight_id == flight_id),
        "loading flight crew",
    )
    return flight


async def passenger_detail(db: AsyncSession, passenger_id: str) -> Optional[Row]:
    passenger = await _first(
        db, select(Passenger.__table__).where(Passenger.id == passenger_id), "loading passenger"
    )
    if passenger is None:
        return None
    passenger["bookings"] = await _all(
        db,
        select(
            Booking.id,
            Booking.seat_number,
            Booking.booking_status,
            Booking.price,
            Booking.booking_date,
            Flight.flight_number,
            Flight.departure_time,
            Flight.arrival_time,
            Flight.status,
            Airline.name.label("airline_name"),
            Airline.iata_code.label("airline_code"),
            dep.name.label("departure_airport"),
            dep.iata_code.label("departure_code"),
            arr.name.label("arrival_airport"),
            arr.iata_code.label("arrival_code"),
        )
        .join(Flight, Booking.flight_id == Flight.id)
        .join(Airline, Flight.airline_id == Airline.id)
        .join(dep, Flight.departure_airport_id == dep.id)
        .join(arr, Flight.arrival_airport_id == arr.id)
        .where(Booking.passenger_id == passenger_id)
        .order_by(Flight.departure_time.desc()),
        "loading passenger bookings",
    )
    return passenger


async def booking_detail(db: AsyncSession, booking_id: str) -> Optional[Row]:
    stmt = _booking_joined().add_columns(
        Passenger.phone,
        Passenger.passport_number,
        Passenger.nationality,
    ).where(Booking.id == booking_id)
    return await _first(db, stmt, "loading booking")


async def crew_member_detail(db: AsyncSession, crew_member_id: str) -> Optional[Row]:
    stmt = (
        select(CrewMember.__table__, Airline.name.label("airline_name"))
        .outerjoin(Airline, CrewMember.airline_id == Airline.id)
        .where(CrewMember.id == crew_member_id)
    )
    crew_member = await _first(db, stmt, "loading crew member")
    if crew_member is None:
        return None
    crew_member["flights"] = await _all(
        db,
        _flight_summary()
        .add_columns(FlightCrew.role)
        .join(FlightCrew, FlightCrew.flight_id == Flight.id)
        .where(FlightCrew.crew_member_id == crew_member_id)
        .order_by(Flight.departure_time.desc()),
        "loading crew member flights",
    )
    return crew_member


LIST_VIEWS: Dict[EntityKind, Callable[[AsyncSession], Awaitable[List[Row]]]] = {
    EntityKind.AIRLINE: list_airlines,
    EntityKind.AIRPORT: list_airports,
    EntityKind.AIRCRAFT: list_aircraft,
    EntityKind.FLIGHT: list_flights,
    EntityKind.PASSENGER: list_passengers,
    EntityKind.BOOKING: list_bookings,
    EntityKind.CREW_MEMBER: list_crew_members,
}

DETAIL_VIEWS: Dict[EntityKind, Callable[[AsyncSession, str], Awaitable[Optional[Row]]]] = {
    EntityKind.AIRLINE: airline_detail,
    EntityKind.AIRPORT: airport_detail,
    EntityKind.AIRCRAFT: aircraft_detail,
    EntityKind.FLIGHT: flight_detail,
    EntityKind.PASSENGER: passenger_detail,
    EntityKind.BOOKING: booking_detail,
    EntityKind.CREW_MEMBER: crew_member_detail,
}


# --- statistics ---------------------------------------------------------------

COUNTED_TABLES = {
    "flights": Flight,
    "passengers": Passenger,
    "airlines": Airline,
    "aircraft": Aircraft,
    "airports": Airport,
    "bookings": Booking,
    "crewMembers": CrewMember,
}


def _average_durations(rows: List[Row]) -> List[Row]:
    hours: Dict[str, List[float]] = defaultdict(list)
    for row in rows:
        departure = ensure_timezone(row["departure_time"])
        arrival = ensure_timezone(row["arrival_time"])
        hours[row["airline"]].append((arrival - departure).total_seconds() / 3600)
    averages = [
        {"airline": airline, "avg_duration_hours": sum(values) / len(values)} for airline, values in hours.items()
    ]
    return sorted(averages, key=lambda item: item["avg_duration_hours"], reverse=True)


async def collect_stats(db: AsyncSession) -> Row:
    """Aggregate reporting figures inside one transaction.

    Any failing sub-query aborts the whole aggregation.
    """

    try:
        async with db.begin():
            counts = {}
            for key, model in COUNTED_TABLES.items():
                result = await db.execute(select(func.count()).select_from(model))
                counts[key] = int(result.scalar_one())

            flight_count = func.count(Flight.id)
            per_airline = await db.execute(
                select(Airline.name, flight_count.label("flight_count"))
                .outerjoin(Flight, Flight.airline_id == Airline.id)
                .group_by(Airline.id, Airline.name)
                .order_by(flight_count.desc())
            )

            departures = _count_of(Flight.departure_airport_id, Airport.id)
            arrivals = _count_of(Flight.arrival_airport_id, Airport.id)
            per_airport = await db.execute(
                select(
                    Airport.name,
                    Airport.iata_code,
                    departures.label("departures"),
                    arrivals.label("arrivals"),
                    (departures + arrivals).label("total_flights"),
                ).order_by((departures + arrivals).desc())
            )

            crew_counts = (
                select(FlightCrew.flight_id, func.count(FlightCrew.crew_member_id).label("crew_count"))
                .group_by(FlightCrew.flight_id)
                .subquery()
            )
            multi_crew = await db.execute(
                select(Flight.id, Flight.flight_number, Airline.name.label("airline"), crew_counts.c.crew_count)
                .join(Airline, Flight.airline_id == Airline.id)
                .join(crew_counts, crew_counts.c.flight_id == Flight.id)
                .where(crew_counts.c.crew_count > 1)
                .order_by(crew_counts.c.crew_count.desc())
            )

            legs = await db.execute(
                select(Airline.name.label("airline"), Flight.departure_time, Flight.arrival_time).join(
                    Airline, Flight.airline_id == Airline.id
                )
            )

            return {
                "counts": counts,
                "flightsPerAirline": [dict(row) for row in per_airline.mappings().all()],
                "flightsPerAirport": [dict(row) for row in per_airport.mappings().all()],
                "flightsWithMultipleCrew": [dict(row) for row in multi_crew.mappings().all()],
                "avgFlightDurations": _average_durations([dict(row) for row in legs.mappings().all()]),
            }
    except SQLAlchemyError as exc:
        logger.exception("Statistics aggregation failed")
        raise InfrastructureError(f"Statistics aggregation failed: {exc}") from exc
