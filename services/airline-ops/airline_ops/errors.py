"""Exceptions raised by the airline-ops service layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .validator import Conflict


class AirlineOpsError(RuntimeError):
    """Base exception for the service layer."""

    status_code = 500


class ValidationError(AirlineOpsError):
    """Raised when a payload is missing fields or cannot be parsed."""

    status_code = 400

    def __init__(self, message: str, reason: str = "MissingField", field: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.field = field


class ConflictError(AirlineOpsError):
    """Raised when a write violates a business rule."""

    status_code = 400

    def __init__(self, conflict: "Conflict") -> None:
        super().__init__(conflict.message)
        self.conflict = conflict

    @property
    def reason(self) -> str:
        return self.conflict.reason.value

    @property
    def counts(self) -> Optional[Dict[str, int]]:
        return self.conflict.counts


class NotFoundError(AirlineOpsError):
    """Raised when the identifier addressed by a request does not resolve."""

    status_code = 404

    def __init__(self, label: str) -> None:
        super().__init__(f"{label} not found")
        self.label = label


class InfrastructureError(AirlineOpsError):
    """Raised when the storage layer is unavailable or fails unexpectedly."""

    status_code = 500


__all__ = [
    "AirlineOpsError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "InfrastructureError",
]
