"""Pydantic schemas for the airline-ops service.

Write payloads declare every field optional: presence of required fields is
decided by the integrity validator so that a missing field is reported the
same way whichever route received it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .validator import EntityKind


def ensure_timezone(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if getattr(dt, "tzinfo", None) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class AirlineWrite(BaseModel):
    name: Optional[str] = None
    iata_code: Optional[str] = None
    country: Optional[str] = None
    founded_year: Optional[int] = None


class AirportWrite(BaseModel):
    name: Optional[str] = None
    iata_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class AircraftWrite(BaseModel):
    registration_number: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    capacity: Optional[int] = None
    year_manufactured: Optional[int] = None
    airline_id: Optional[str] = Field(None, description="Operating airline, may be left empty")


class FlightWrite(BaseModel):
    flight_number: Optional[str] = None
    departure_airport_id: Optional[str] = None
    arrival_airport_id: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    aircraft_id: Optional[str] = None
    airline_id: Optional[str] = None
    status: Optional[str] = Field(None, description="Defaults to 'Scheduled'")


class PassengerWrite(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    passport_number: Optional[str] = None
    nationality: Optional[str] = None
    date_of_birth: Optional[date] = None


class BookingWrite(BaseModel):
    flight_id: Optional[str] = None
    passenger_id: Optional[str] = None
    seat_number: Optional[str] = None
    booking_status: Optional[str] = Field(None, description="Defaults to 'Confirmed'")
    price: Optional[Decimal] = None


class CrewMemberWrite(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    airline_id: Optional[str] = None
    license_number: Optional[str] = None
    experience_years: Optional[int] = None


class CrewAssignment(BaseModel):
    flight_id: Optional[str] = None
    crew_member_id: Optional[str] = None
    role: Optional[str] = None


class CrewRemoval(BaseModel):
    flight_id: Optional[str] = None
    crew_member_id: Optional[str] = None


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class AirlineOut(_Out):
    id: str
    name: str
    iata_code: Optional[str]
    country: Optional[str]
    founded_year: Optional[int]


class AirportOut(_Out):
    id: str
    name: str
    iata_code: Optional[str]
    city: Optional[str]
    country: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]


class AircraftOut(_Out):
    id: str
    registration_number: str
    model: str
    manufacturer: Optional[str]
    capacity: Optional[int]
    year_manufactured: Optional[int]
    airline_id: Optional[str]


class FlightOut(_Out):
    id: str
    flight_number: str
    departure_airport_id: str
    arrival_airport_id: str
    departure_time: datetime
    arrival_time: datetime
    aircraft_id: str
    airline_id: str
    status: str

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def make_aware(cls, value: datetime) -> datetime:
        return ensure_timezone(value)


class PassengerOut(_Out):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    passport_number: Optional[str]
    nationality: Optional[str]
    date_of_birth: Optional[date]


class BookingOut(_Out):
    id: str
    flight_id: str
    passenger_id: str
    booking_date: datetime
    seat_number: Optional[str]
    booking_status: str
    price: Optional[Decimal]

    @field_validator("booking_date")
    @classmethod
    def make_aware(cls, value: datetime) -> datetime:
        return ensure_timezone(value)


class CrewMemberOut(_Out):
    id: str
    first_name: str
    last_name: str
    position: str
    airline_id: Optional[str]
    license_number: Optional[str]
    experience_years: Optional[int]


class FlightCrewOut(_Out):
    flight_id: str
    crew_member_id: str
    role: str


class Envelope(BaseModel):
    message: str
    data: Any = None


class ErrorEnvelope(BaseModel):
    message: str
    reason: Optional[str] = None
    field: Optional[str] = None
    data: Optional[Dict[str, int]] = None


OUT_MODELS: Dict[EntityKind, Type[_Out]] = {
    EntityKind.AIRLINE: AirlineOut,
    EntityKind.AIRPORT: AirportOut,
    EntityKind.AIRCRAFT: AircraftOut,
    EntityKind.FLIGHT: FlightOut,
    EntityKind.PASSENGER: PassengerOut,
    EntityKind.BOOKING: BookingOut,
    EntityKind.CREW_MEMBER: CrewMemberOut,
    EntityKind.FLIGHT_CREW: FlightCrewOut,
}


def serialize(kind: EntityKind, record: Any) -> Dict[str, Any]:
    """Render a stored record as JSON-safe data through its output model."""

    return OUT_MODELS[kind].model_validate(record).model_dump(mode="json")
