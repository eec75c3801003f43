"""Referential-integrity and conflict checks applied before every write.

The validator never touches the database directly. It reads through a
:class:`RecordStore` and answers with a :class:`Verdict`: either the
admissible record (defaults applied) or the first :class:`Conflict` found.
Business-rule violations are returned, never raised; only failures of the
store itself escape as exceptions.

Checks for a write run in a fixed order and stop at the first failure:

1. required fields are present
2. intrinsic checks that need no lookups (same airport, time order)
3. references resolve to existing records
4. relational checks across the resolved records (airline ownership); on
   update, rows already pointing at the record must stay with its airline
5. uniqueness rules (email, seat, crew assignment)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from .models import DEFAULT_BOOKING_STATUS, DEFAULT_FLIGHT_STATUS


class EntityKind(str, Enum):
    AIRLINE = "airline"
    AIRPORT = "airport"
    AIRCRAFT = "aircraft"
    FLIGHT = "flight"
    PASSENGER = "passenger"
    BOOKING = "booking"
    CREW_MEMBER = "crew_member"
    FLIGHT_CREW = "flight_crew"


class ConflictReason(str, Enum):
    """Tag identifying which rule rejected a write."""

    MISSING_FIELD = "MissingField"
    MALFORMED_FIELD = "MalformedField"
    SAME_AIRPORT = "SameAirport"
    INVALID_TIME_ORDER = "InvalidTimeOrder"
    UNKNOWN_AIRPORT = "UnknownAirport"
    UNKNOWN_AIRCRAFT = "UnknownAircraft"
    UNKNOWN_AIRLINE = "UnknownAirline"
    UNKNOWN_FLIGHT = "UnknownFlight"
    UNKNOWN_PASSENGER = "UnknownPassenger"
    UNKNOWN_CREW_MEMBER = "UnknownCrewMember"
    AIRCRAFT_AIRLINE_MISMATCH = "AircraftAirlineMismatch"
    AIRLINE_MISMATCH = "AirlineMismatch"
    SEAT_TAKEN = "SeatTaken"
    DUPLICATE_EMAIL = "DuplicateEmail"
    DUPLICATE_ASSIGNMENT = "DuplicateAssignment"
    HAS_DEPENDENTS = "HasDependents"


INPUT_REASONS = frozenset({ConflictReason.MISSING_FIELD, ConflictReason.MALFORMED_FIELD})


@dataclass(frozen=True)
class Conflict:
    reason: ConflictReason
    message: str
    field: Optional[str] = None
    counts: Optional[Dict[str, int]] = None


@dataclass(frozen=True)
class Reference:
    """Foreign key that must resolve to an existing record."""

    field: str
    kind: EntityKind
    reason: ConflictReason
    message: str
    optional: bool = False


@dataclass(frozen=True)
class UniqueRule:
    """Combination of fields that may appear on at most one record.

    The rule is skipped when any of its fields is null, matching how the
    storage layer treats NULL in a unique constraint.
    """

    fields: Tuple[str, ...]
    reason: ConflictReason
    message: str


@dataclass(frozen=True)
class Dependent:
    """Rows of ``kind`` whose ``field`` points at the record being deleted."""

    relation: str
    kind: EntityKind
    field: str


@dataclass(frozen=True)
class OwnershipGuard:
    """Flights reached through ``relation`` must be operated by the record's airline.

    Checked on update only, when the record's ``airline_id`` may change under
    rows that already reference it.
    """

    relation: str
    reason: ConflictReason
    message: str


Record = Mapping[str, Any]
IntrinsicCheck = Callable[[Record], Optional[Conflict]]
RelationalCheck = Callable[[Record, Mapping[str, Record]], Optional[Conflict]]


@dataclass(frozen=True)
class EntityRules:
    label: str
    required: Tuple[str, ...]
    missing_message: str
    intrinsic: Tuple[IntrinsicCheck, ...] = ()
    references: Tuple[Reference, ...] = ()
    relational: Tuple[RelationalCheck, ...] = ()
    guards: Tuple[OwnershipGuard, ...] = ()
    unique: Tuple[UniqueRule, ...] = ()
    dependents: Tuple[Dependent, ...] = ()
    blocked_message: str = ""
    cascades: Tuple[Dependent, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    create_only: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Verdict:
    """Outcome of a validation; ``conflict`` is ``None`` when the write may proceed."""

    record: Dict[str, Any]
    conflict: Optional[Conflict] = None
    counts: Dict[str, int] = field(default_factory=dict)
    cascades: Tuple[Dependent, ...] = ()

    @property
    def ok(self) -> bool:
        return self.conflict is None


class RecordStore(Protocol):
    """Read side of the data access layer consumed by the validator."""

    async def fetch_by_id(self, kind: EntityKind, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def count_dependents(self, kind: EntityKind, record_id: str, relation: str) -> int:
        ...

    async def exists_unique(
        self, kind: EntityKind, values: Mapping[str, Any], exclude_id: Optional[str] = None
    ) -> bool:
        """Return True when a record other than ``exclude_id`` already holds ``values``."""
        ...

    async def count_foreign_operated(
        self, kind: EntityKind, record_id: str, relation: str, airline_id: Optional[str]
    ) -> int:
        """Count flights reached through ``relation`` that another airline operates."""
        ...


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def as_instant(value: Any) -> Optional[datetime]:
    """Parse ``value`` as an aware datetime; naive values are taken as UTC."""

    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _distinct_airports(candidate: Record) -> Optional[Conflict]:
    if candidate["departure_airport_id"] == candidate["arrival_airport_id"]:
        return Conflict(
            ConflictReason.SAME_AIRPORT,
            "Departure and arrival airports must be different",
            field="arrival_airport_id",
        )
    return None


def _departure_before_arrival(candidate: Record) -> Optional[Conflict]:
    departure = as_instant(candidate["departure_time"])
    arrival = as_instant(candidate["arrival_time"])
    if departure is None or arrival is None:
        bad_field = "departure_time" if departure is None else "arrival_time"
        return Conflict(ConflictReason.MALFORMED_FIELD, f"{bad_field} is not a valid timestamp", field=bad_field)
    if departure >= arrival:
        return Conflict(
            ConflictReason.INVALID_TIME_ORDER,
            "Departure time must be before arrival time",
            field="arrival_time",
        )
    return None


def _aircraft_belongs_to_airline(candidate: Record, resolved: Mapping[str, Record]) -> Optional[Conflict]:
    if resolved["aircraft_id"].get("airline_id") != candidate["airline_id"]:
        return Conflict(
            ConflictReason.AIRCRAFT_AIRLINE_MISMATCH,
            "Aircraft does not belong to the specified airline",
            field="aircraft_id",
        )
    return None


def _crew_flies_for_operator(candidate: Record, resolved: Mapping[str, Record]) -> Optional[Conflict]:
    if resolved["crew_member_id"].get("airline_id") != resolved["flight_id"].get("airline_id"):
        return Conflict(
            ConflictReason.AIRLINE_MISMATCH,
            "Crew member does not belong to the airline operating this flight",
            field="crew_member_id",
        )
    return None


RULES: Dict[EntityKind, EntityRules] = {
    EntityKind.AIRLINE: EntityRules(
        label="Airline",
        required=("name",),
        missing_message="Airline name is required",
        dependents=(
            Dependent("aircraft", EntityKind.AIRCRAFT, "airline_id"),
            Dependent("flights", EntityKind.FLIGHT, "airline_id"),
            Dependent("crewMembers", EntityKind.CREW_MEMBER, "airline_id"),
        ),
        blocked_message="Cannot delete airline with related records",
    ),
    EntityKind.AIRPORT: EntityRules(
        label="Airport",
        required=("name",),
        missing_message="Airport name is required",
        dependents=(
            Dependent("departing", EntityKind.FLIGHT, "departure_airport_id"),
            Dependent("arriving", EntityKind.FLIGHT, "arrival_airport_id"),
        ),
        blocked_message="Cannot delete airport with related flights",
    ),
    EntityKind.AIRCRAFT: EntityRules(
        label="Aircraft",
        required=("registration_number", "model"),
        missing_message="Registration number and model are required",
        references=(
            Reference(
                "airline_id",
                EntityKind.AIRLINE,
                ConflictReason.UNKNOWN_AIRLINE,
                "Specified airline does not exist",
                optional=True,
            ),
        ),
        guards=(
            OwnershipGuard(
                "flights",
                ConflictReason.AIRCRAFT_AIRLINE_MISMATCH,
                "Aircraft is scheduled on flights operated by another airline",
            ),
        ),
        dependents=(Dependent("flights", EntityKind.FLIGHT, "aircraft_id"),),
        blocked_message="Cannot delete aircraft with related flights",
    ),
    EntityKind.FLIGHT: EntityRules(
        label="Flight",
        required=(
            "flight_number",
            "departure_airport_id",
            "arrival_airport_id",
            "departure_time",
            "arrival_time",
            "aircraft_id",
            "airline_id",
        ),
        missing_message="All flight details are required",
        intrinsic=(_distinct_airports, _departure_before_arrival),
        references=(
            Reference(
                "departure_airport_id",
                EntityKind.AIRPORT,
                ConflictReason.UNKNOWN_AIRPORT,
                "Departure airport does not exist",
            ),
            Reference(
                "arrival_airport_id",
                EntityKind.AIRPORT,
                ConflictReason.UNKNOWN_AIRPORT,
                "Arrival airport does not exist",
            ),
            Reference("aircraft_id", EntityKind.AIRCRAFT, ConflictReason.UNKNOWN_AIRCRAFT, "Aircraft does not exist"),
            Reference("airline_id", EntityKind.AIRLINE, ConflictReason.UNKNOWN_AIRLINE, "Airline does not exist"),
        ),
        relational=(_aircraft_belongs_to_airline,),
        dependents=(Dependent("bookings", EntityKind.BOOKING, "flight_id"),),
        blocked_message="Cannot delete flight with related bookings",
        cascades=(Dependent("crew", EntityKind.FLIGHT_CREW, "flight_id"),),
        defaults={"status": DEFAULT_FLIGHT_STATUS},
    ),
    EntityKind.PASSENGER: EntityRules(
        label="Passenger",
        required=("first_name", "last_name", "email"),
        missing_message="First name, last name, and email are required",
        unique=(
            UniqueRule(("email",), ConflictReason.DUPLICATE_EMAIL, "A passenger with this email already exists"),
        ),
        dependents=(Dependent("bookings", EntityKind.BOOKING, "passenger_id"),),
        blocked_message="Cannot delete passenger with related bookings",
    ),
    EntityKind.BOOKING: EntityRules(
        label="Booking",
        required=("flight_id", "passenger_id"),
        missing_message="Flight ID and passenger ID are required",
        references=(
            Reference("flight_id", EntityKind.FLIGHT, ConflictReason.UNKNOWN_FLIGHT, "Flight does not exist"),
            Reference(
                "passenger_id",
                EntityKind.PASSENGER,
                ConflictReason.UNKNOWN_PASSENGER,
                "Passenger does not exist",
            ),
        ),
        unique=(
            UniqueRule(("flight_id", "seat_number"), ConflictReason.SEAT_TAKEN, "This seat is already booked"),
        ),
        defaults={"booking_status": DEFAULT_BOOKING_STATUS},
        create_only=("booking_date",),
    ),
    EntityKind.CREW_MEMBER: EntityRules(
        label="Crew member",
        required=("first_name", "last_name", "position", "airline_id"),
        missing_message="First name, last name, position, and airline ID are required",
        references=(
            Reference("airline_id", EntityKind.AIRLINE, ConflictReason.UNKNOWN_AIRLINE, "Airline does not exist"),
        ),
        guards=(
            OwnershipGuard(
                "flights",
                ConflictReason.AIRLINE_MISMATCH,
                "Crew member is assigned to flights operated by another airline",
            ),
        ),
        cascades=(Dependent("flights", EntityKind.FLIGHT_CREW, "crew_member_id"),),
    ),
    EntityKind.FLIGHT_CREW: EntityRules(
        label="Assignment",
        required=("flight_id", "crew_member_id", "role"),
        missing_message="Flight ID, crew member ID, and role are required",
        references=(
            Reference("flight_id", EntityKind.FLIGHT, ConflictReason.UNKNOWN_FLIGHT, "Flight does not exist"),
            Reference(
                "crew_member_id",
                EntityKind.CREW_MEMBER,
                ConflictReason.UNKNOWN_CREW_MEMBER,
                "Crew member does not exist",
            ),
        ),
        relational=(_crew_flies_for_operator,),
        unique=(
            UniqueRule(
                ("flight_id", "crew_member_id"),
                ConflictReason.DUPLICATE_ASSIGNMENT,
                "This crew member is already assigned to this flight",
            ),
        ),
    ),
}


def find_dependent(kind: EntityKind, relation: str) -> Dependent:
    rules = RULES[kind]
    for dependent in rules.dependents + rules.cascades:
        if dependent.relation == relation:
            return dependent
    raise KeyError(f"{kind.value} has no relation {relation!r}")


class IntegrityValidator:
    """Decides whether a proposed write is admissible.

    Stateless apart from the injected store and clock, so one instance can
    serve concurrent requests.
    """

    def __init__(self, store: RecordStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def validate_write(
        self,
        kind: EntityKind,
        candidate: Mapping[str, Any],
        *,
        is_update: bool = False,
        self_id: Optional[str] = None,
    ) -> Verdict:
        rules = RULES[kind]
        record = {name: (None if value == "" else value) for name, value in candidate.items()}
        for name in rules.create_only:
            record.pop(name, None)

        for name in rules.required:
            if not is_present(record.get(name)):
                return Verdict(record, Conflict(ConflictReason.MISSING_FIELD, rules.missing_message, field=name))

        for check in rules.intrinsic:
            conflict = check(record)
            if conflict is not None:
                return Verdict(record, conflict)

        resolved: Dict[str, Record] = {}
        for ref in rules.references:
            value = record.get(ref.field)
            if ref.optional and not is_present(value):
                continue
            target = await self.store.fetch_by_id(ref.kind, value)
            if target is None:
                return Verdict(record, Conflict(ref.reason, ref.message, field=ref.field))
            resolved[ref.field] = target

        for relational_check in rules.relational:
            conflict = relational_check(record, resolved)
            if conflict is not None:
                return Verdict(record, conflict)

        if is_update and self_id is not None:
            for guard in rules.guards:
                stranded = await self.store.count_foreign_operated(
                    kind, self_id, guard.relation, record.get("airline_id")
                )
                if stranded > 0:
                    counts = {guard.relation: stranded}
                    return Verdict(record, Conflict(guard.reason, guard.message, field="airline_id", counts=counts))

        conflict = await self.check_unique(kind, record, self_id if is_update else None)
        if conflict is not None:
            return Verdict(record, conflict)

        for name, default in rules.defaults.items():
            if not is_present(record.get(name)):
                record[name] = default
        if not is_update:
            for name in rules.create_only:
                record[name] = self.clock()
        return Verdict(record)

    async def check_unique(
        self, kind: EntityKind, record: Mapping[str, Any], exclude_id: Optional[str] = None
    ) -> Optional[Conflict]:
        for rule in RULES[kind].unique:
            values = {name: record.get(name) for name in rule.fields}
            if not all(is_present(value) for value in values.values()):
                continue
            if await self.store.exists_unique(kind, values, exclude_id):
                return Conflict(rule.reason, rule.message, field=rule.fields[-1])
        return None

    async def validate_deletion(self, kind: EntityKind, record_id: str) -> Verdict:
        """Block deletion while dependent rows exist; report what must cascade otherwise."""

        rules = RULES[kind]
        counts: Dict[str, int] = {}
        for dependent in rules.dependents:
            counts[dependent.relation] = await self.store.count_dependents(kind, record_id, dependent.relation)
        if any(count > 0 for count in counts.values()):
            conflict = Conflict(ConflictReason.HAS_DEPENDENTS, rules.blocked_message, counts=dict(counts))
            return Verdict({"id": record_id}, conflict, counts=counts)
        return Verdict({"id": record_id}, counts=counts, cascades=rules.cascades)

    async def validate_flight_write(self, candidate: Mapping[str, Any], self_id: Optional[str] = None) -> Verdict:
        return await self.validate_write(
            EntityKind.FLIGHT, candidate, is_update=self_id is not None, self_id=self_id
        )

    async def validate_booking_write(
        self, candidate: Mapping[str, Any], is_update: bool = False, self_id: Optional[str] = None
    ) -> Verdict:
        return await self.validate_write(EntityKind.BOOKING, candidate, is_update=is_update, self_id=self_id)

    async def validate_passenger_write(
        self, candidate: Mapping[str, Any], is_update: bool = False, self_id: Optional[str] = None
    ) -> Verdict:
        return await self.validate_write(EntityKind.PASSENGER, candidate, is_update=is_update, self_id=self_id)

    async def validate_crew_assignment(
        self, flight_id: Optional[str], crew_member_id: Optional[str], role: Optional[str]
    ) -> Verdict:
        candidate = {"flight_id": flight_id, "crew_member_id": crew_member_id, "role": role}
        return await self.validate_write(EntityKind.FLIGHT_CREW, candidate)
