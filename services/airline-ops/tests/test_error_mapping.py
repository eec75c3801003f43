import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.exc import IntegrityError, OperationalError

from airline_ops import service
from airline_ops.errors import ConflictError, InfrastructureError, ValidationError
from airline_ops.store import storage_errors
from airline_ops.validator import Conflict, ConflictReason, EntityKind


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT INTO booking", {}, Exception("UNIQUE constraint failed"))


class CommitWriteTests(unittest.TestCase):
    """Ensure constraint violations at commit map back onto validator conflicts."""

    def _store(self) -> MagicMock:
        store = MagicMock()
        store.commit = AsyncMock(side_effect=_integrity_error())
        store.rollback = AsyncMock()
        return store

    def test_unique_violation_becomes_conflict(self) -> None:
        store = self._store()
        seat_taken = Conflict(ConflictReason.SEAT_TAKEN, "This seat is already booked", field="seat_number")
        validator = MagicMock()
        validator.check_unique = AsyncMock(return_value=seat_taken)
        write = AsyncMock(return_value={"id": "b1"})

        with self.assertRaises(ConflictError) as ctx:
            asyncio.run(service._commit_write(store, validator, EntityKind.BOOKING, {"seat_number": "12A"}, write))

        self.assertIs(ctx.exception.conflict, seat_taken)
        self.assertIsInstance(ctx.exception.__cause__, IntegrityError)
        store.rollback.assert_awaited_once()
        validator.check_unique.assert_awaited_once_with(EntityKind.BOOKING, {"seat_number": "12A"}, None)

    def test_unexplained_violation_is_infrastructure_error(self) -> None:
        store = self._store()
        validator = MagicMock()
        validator.check_unique = AsyncMock(return_value=None)
        write = AsyncMock(return_value={"id": "b1"})

        with self.assertRaises(InfrastructureError) as ctx:
            asyncio.run(service._commit_write(store, validator, EntityKind.BOOKING, {}, write, exclude_id="b1"))

        self.assertIsInstance(ctx.exception.__cause__, IntegrityError)
        validator.check_unique.assert_awaited_once_with(EntityKind.BOOKING, {}, "b1")


class RaiseForConflictTests(unittest.TestCase):
    """Input problems and business-rule conflicts surface as different errors."""

    def test_missing_field_is_validation_error(self) -> None:
        conflict = Conflict(ConflictReason.MISSING_FIELD, "Airline name is required", field="name")

        with self.assertRaises(ValidationError) as ctx:
            service.raise_for_conflict(EntityKind.AIRLINE, conflict)

        self.assertEqual(ctx.exception.reason, "MissingField")
        self.assertEqual(ctx.exception.field, "name")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_dependents_are_conflict_with_counts(self) -> None:
        conflict = Conflict(
            ConflictReason.HAS_DEPENDENTS, "Cannot delete flight with related bookings", counts={"bookings": 2}
        )

        with self.assertRaises(ConflictError) as ctx:
            service.raise_for_conflict(EntityKind.FLIGHT, conflict)

        self.assertEqual(ctx.exception.reason, "HasDependents")
        self.assertEqual(ctx.exception.counts, {"bookings": 2})


class StorageErrorsTests(unittest.TestCase):
    """Driver failures become infrastructure errors; constraint errors pass through."""

    def test_operational_error_is_wrapped(self) -> None:
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        with patch("airline_ops.store.logger") as logger:
            with self.assertRaises(InfrastructureError) as ctx:
                with storage_errors("loading flight"):
                    raise error

        self.assertIs(ctx.exception.__cause__, error)
        logger.exception.assert_called_once()

    def test_integrity_error_passes_through(self) -> None:
        error = _integrity_error()

        with self.assertRaises(IntegrityError) as ctx:
            with storage_errors("inserting booking"):
                raise error

        self.assertIs(ctx.exception, error)


if __name__ == "__main__":
    unittest.main()
