"""SQLAlchemy implementation of the record store used by the validator and services."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional, Type

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Base
from .errors import InfrastructureError
from .models import Aircraft, Airline, Airport, Booking, CrewMember, Flight, FlightCrew, Passenger
from .validator import EntityKind, find_dependent

logger = logging.getLogger(__name__)

MODELS: Dict[EntityKind, Type[Base]] = {
    EntityKind.AIRLINE: Airline,
    EntityKind.AIRPORT: Airport,
    EntityKind.AIRCRAFT: Aircraft,
    EntityKind.FLIGHT: Flight,
    EntityKind.PASSENGER: Passenger,
    EntityKind.BOOKING: Booking,
    EntityKind.CREW_MEMBER: CrewMember,
    EntityKind.FLIGHT_CREW: FlightCrew,
}


def to_dict(obj: Base) -> Dict[str, Any]:
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


def _column_values(model: Type[Base], record: Mapping[str, Any]) -> Dict[str, Any]:
    columns = {column.key for column in model.__table__.columns}
    return {key: value for key, value in record.items() if key in columns and key != "id"}


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Translate driver failures into ``InfrastructureError``.

    Integrity errors pass through untouched so the caller can map them back
    onto the uniqueness rule they violated.
    """

    try:
        yield
    except IntegrityError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("Storage failure while %s", action)
        raise InfrastructureError(f"Storage failure while {action}: {exc}") from exc


class SqlRecordStore:
    """Parameterized queries against the airline tables for one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def fetch_by_id(self, kind: EntityKind, record_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if record_id is None:
            return None
        with storage_errors(f"loading {kind.value}"):
            obj = await self.session.get(MODELS[kind], record_id)
        return to_dict(obj) if obj is not None else None

    async def count_dependents(self, kind: EntityKind, record_id: str, relation: str) -> int:
        dependent = find_dependent(kind, relation)
        model = MODELS[dependent.kind]
        stmt = select(func.count()).select_from(model).where(getattr(model, dependent.field) == record_id)
        with storage_errors(f"counting {relation} of {kind.value}"):
            result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def exists_unique(
        self, kind: EntityKind, values: Mapping[str, Any], exclude_id: Optional[str] = None
    ) -> bool:
        model = MODELS[kind]
        conditions = [getattr(model, name) == value for name, value in values.items()]
        if exclude_id is not None:
            conditions.append(model.id != exclude_id)
        stmt = select(func.count()).select_from(model).where(and_(*conditions))
        with storage_errors(f"checking uniqueness on {kind.value}"):
            result = await self.session.execute(stmt)
        return int(result.scalar_one()) > 0

    async def count_foreign_operated(
        self, kind: EntityKind, record_id: str, relation: str, airline_id: Optional[str]
    ) -> int:
        dependent = find_dependent(kind, relation)
        model = MODELS[dependent.kind]
        stmt = select(func.count()).select_from(model)
        if model is not Flight:
            stmt = stmt.join(Flight, model.flight_id == Flight.id)
        # != None renders as IS NOT NULL: an unowned record matches every flight
        stmt = stmt.where(getattr(model, dependent.field) == record_id, Flight.airline_id != airline_id)
        with storage_errors(f"checking flights of {kind.value}"):
            result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def insert(self, kind: EntityKind, record: Mapping[str, Any]) -> Dict[str, Any]:
        model = MODELS[kind]
        obj = model(**_column_values(model, record))
        self.session.add(obj)
        with storage_errors(f"inserting {kind.value}"):
            await self.session.flush()
        return to_dict(obj)

    async def update(self, kind: EntityKind, record_id: str, record: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        model = MODELS[kind]
        with storage_errors(f"loading {kind.value}"):
            obj = await self.session.get(model, record_id)
        if obj is None:
            return None
        for key, value in _column_values(model, record).items():
            setattr(obj, key, value)
        with storage_errors(f"updating {kind.value}"):
            await self.session.flush()
        return to_dict(obj)

    async def delete(self, kind: EntityKind, record_id: str) -> int:
        return await self.delete_matching(kind, {"id": record_id})

    async def delete_matching(self, kind: EntityKind, values: Mapping[str, Any]) -> int:
        model = MODELS[kind]
        conditions = [getattr(model, name) == value for name, value in values.items()]
        with storage_errors(f"deleting {kind.value}"):
            result = await self.session.execute(delete(model).where(and_(*conditions)))
        return result.rowcount or 0

    async def commit(self) -> None:
        with storage_errors("committing"):
            await self.session.commit()

    async def rollback(self) -> None:
        with storage_errors("rolling back"):
            await self.session.rollback()
