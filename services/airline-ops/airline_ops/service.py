"""Domain services for writing airline records.

Each operation validates the proposed write, performs it through the
record store and commits. The storage layer's unique constraints remain the
final word: a commit that loses a race is mapped back onto the same
conflict the validator would have reported.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ConflictError, InfrastructureError, NotFoundError, ValidationError
from .store import SqlRecordStore
from .validator import INPUT_REASONS, RULES, Conflict, EntityKind, IntegrityValidator, is_present

logger = logging.getLogger(__name__)

T = TypeVar("T")


def label_for(kind: EntityKind) -> str:
    return RULES[kind].label


def raise_for_conflict(kind: EntityKind, conflict: Conflict) -> None:
    logger.warning("Rejected %s write: %s (%s)", kind.value, conflict.reason.value, conflict.message)
    if conflict.reason in INPUT_REASONS:
        raise ValidationError(conflict.message, reason=conflict.reason.value, field=conflict.field)
    raise ConflictError(conflict)


async def _commit_write(
    store: SqlRecordStore,
    validator: IntegrityValidator,
    kind: EntityKind,
    record: Mapping[str, Any],
    write: Callable[[], Awaitable[T]],
    exclude_id: Optional[str] = None,
) -> T:
    try:
        result = await write()
        await store.commit()
    except IntegrityError as exc:
        await store.rollback()
        conflict = await validator.check_unique(kind, record, exclude_id)
        if conflict is None:
            logger.exception("Unexpected constraint violation writing %s", kind.value)
            raise InfrastructureError(f"Constraint violation writing {kind.value}: {exc.orig}") from exc
        logger.warning("Storage constraint rejected %s write: %s", kind.value, conflict.reason.value)
        raise ConflictError(conflict) from exc
    return result


async def create_record(
    db: AsyncSession, kind: EntityKind, payload: Mapping[str, Any], validator: Optional[IntegrityValidator] = None
) -> Dict[str, Any]:
    store = SqlRecordStore(db)
    validator = validator or IntegrityValidator(store)
    verdict = await validator.validate_write(kind, payload)
    if verdict.conflict is not None:
        raise_for_conflict(kind, verdict.conflict)

    created = await _commit_write(store, validator, kind, verdict.record, lambda: store.insert(kind, verdict.record))
    logger.info("Created %s %s", kind.value, created.get("id"))
    return created


async def update_record(
    db: AsyncSession,
    kind: EntityKind,
    record_id: str,
    payload: Mapping[str, Any],
    validator: Optional[IntegrityValidator] = None,
) -> Dict[str, Any]:
    """Replace every writable field of an existing record.

    Optional fields left out of ``payload`` are cleared; fields that are only
    set on creation (booking_date) are kept.
    """

    store = SqlRecordStore(db)
    validator = validator or IntegrityValidator(store)
    if await store.fetch_by_id(kind, record_id) is None:
        raise NotFoundError(label_for(kind))

    verdict = await validator.validate_write(kind, payload, is_update=True, self_id=record_id)
    if verdict.conflict is not None:
        raise_for_conflict(kind, verdict.conflict)

    updated = await _commit_write(
        store,
        validator,
        kind,
        verdict.record,
        lambda: store.update(kind, record_id, verdict.record),
        exclude_id=record_id,
    )
    if updated is None:
        raise NotFoundError(label_for(kind))
    logger.info("Updated %s %s", kind.value, record_id)
    return updated


async def delete_record(db: AsyncSession, kind: EntityKind, record_id: str) -> Dict[str, int]:
    """Delete a record unless dependents block it; cascaded rows go first.

    Returns the number of rows removed per cascaded relation.
    """

    store = SqlRecordStore(db)
    validator = IntegrityValidator(store)
    if await store.fetch_by_id(kind, record_id) is None:
        raise NotFoundError(label_for(kind))

    verdict = await validator.validate_deletion(kind, record_id)
    if verdict.conflict is not None:
        raise_for_conflict(kind, verdict.conflict)

    removed: Dict[str, int] = {}
    try:
        for cascade in verdict.cascades:
            removed[cascade.relation] = await store.delete_matching(cascade.kind, {cascade.field: record_id})
        await store.delete(kind, record_id)
        await store.commit()
    except IntegrityError as exc:
        await store.rollback()
        logger.exception("Delete of %s %s hit a constraint", kind.value, record_id)
        raise InfrastructureError(f"Constraint violation deleting {kind.value}: {exc.orig}") from exc
    logger.info("Deleted %s %s (cascaded %s)", kind.value, record_id, removed)
    return removed


async def assign_crew(
    db: AsyncSession,
    flight_id: Optional[str],
    crew_member_id: Optional[str],
    role: Optional[str],
    validator: Optional[IntegrityValidator] = None,
) -> Dict[str, Any]:
    store = SqlRecordStore(db)
    validator = validator or IntegrityValidator(store)
    verdict = await validator.validate_crew_assignment(flight_id, crew_member_id, role)
    if verdict.conflict is not None:
        raise_for_conflict(EntityKind.FLIGHT_CREW, verdict.conflict)

    kind = EntityKind.FLIGHT_CREW
    assignment = await _commit_write(store, validator, kind, verdict.record, lambda: store.insert(kind, verdict.record))
    logger.info("Assigned crew member %s to flight %s as %s", crew_member_id, flight_id, role)
    return assignment


async def remove_crew(db: AsyncSession, flight_id: Optional[str], crew_member_id: Optional[str]) -> None:
    if not (is_present(flight_id) and is_present(crew_member_id)):
        raise ValidationError("Flight ID and crew member ID are required")

    store = SqlRecordStore(db)
    key = {"flight_id": flight_id, "crew_member_id": crew_member_id}
    if not await store.exists_unique(EntityKind.FLIGHT_CREW, key):
        raise NotFoundError("Assignment")

    await store.delete_matching(EntityKind.FLIGHT_CREW, key)
    await store.commit()
    logger.info("Removed crew member %s from flight %s", crew_member_id, flight_id)
