"""SQLAlchemy models for the airline-ops service."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base

DEFAULT_FLIGHT_STATUS = "Scheduled"
DEFAULT_BOOKING_STATUS = "Confirmed"


def new_id() -> str:
    return str(uuid.uuid4())


class Airline(Base):
    __tablename__ = "airline"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    iata_code: Mapped[str | None] = mapped_column(String(8))
    country: Mapped[str | None] = mapped_column(String(100))
    founded_year: Mapped[int | None] = mapped_column(Integer)


class Airport(Base):
    __tablename__ = "airport"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    iata_code: Mapped[str | None] = mapped_column(String(8))
    city: Mapped[str | None] = mapped_column(String(100))
    country: Mapped[str | None] = mapped_column(String(100))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)


class Aircraft(Base):
    __tablename__ = "aircraft"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    registration_number: Mapped[str] = mapped_column(String(32), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    manufacturer: Mapped[str | None] = mapped_column(String(100))
    capacity: Mapped[int | None] = mapped_column(Integer)
    year_manufactured: Mapped[int | None] = mapped_column(Integer)
    airline_id: Mapped[str | None] = mapped_column(ForeignKey("airline.id", ondelete="SET NULL"), index=True)


class Flight(Base):
    """Scheduled leg operated by an airline with one of its aircraft."""

    __tablename__ = "flight"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    flight_number: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    departure_airport_id: Mapped[str] = mapped_column(ForeignKey("airport.id"), nullable=False, index=True)
    arrival_airport_id: Mapped[str] = mapped_column(ForeignKey("airport.id"), nullable=False, index=True)
    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    aircraft_id: Mapped[str] = mapped_column(ForeignKey("aircraft.id"), nullable=False, index=True)
    airline_id: Mapped[str] = mapped_column(ForeignKey("airline.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_FLIGHT_STATUS)


class Passenger(Base):
    __tablename__ = "passenger"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(32))
    passport_number: Mapped[str | None] = mapped_column(String(32))
    nationality: Mapped[str | None] = mapped_column(String(100))
    date_of_birth: Mapped[date | None] = mapped_column(Date)


class Booking(Base):
    """Seat reservation of a passenger on a flight."""

    __tablename__ = "booking"
    __table_args__ = (UniqueConstraint("flight_id", "seat_number", name="uq_booking_flight_seat"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    flight_id: Mapped[str] = mapped_column(ForeignKey("flight.id", ondelete="CASCADE"), nullable=False, index=True)
    passenger_id: Mapped[str] = mapped_column(ForeignKey("passenger.id"), nullable=False, index=True)
    booking_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    seat_number: Mapped[str | None] = mapped_column(String(8))
    booking_status: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_BOOKING_STATUS)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))


class CrewMember(Base):
    __tablename__ = "crew_member"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[str] = mapped_column(String(64), nullable=False)
    airline_id: Mapped[str | None] = mapped_column(ForeignKey("airline.id", ondelete="SET NULL"), index=True)
    license_number: Mapped[str | None] = mapped_column(String(64))
    experience_years: Mapped[int | None] = mapped_column(Integer)


class FlightCrew(Base):
    """Junction row assigning a crew member to a flight."""

    __tablename__ = "flight_crew"

    flight_id: Mapped[str] = mapped_column(ForeignKey("flight.id", ondelete="CASCADE"), primary_key=True)
    crew_member_id: Mapped[str] = mapped_column(ForeignKey("crew_member.id", ondelete="CASCADE"), primary_key=True)
    role: Mapped[str] = mapped_column(String(64), nullable=False)
