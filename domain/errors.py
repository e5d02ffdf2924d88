"""Domain Errors

Every failure the core can report is a DomainError with a stable code and a
message that is safe to show to the caller.
"""
from enum import Enum
from typing import Optional
from uuid import UUID


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    RESERVATION_CONFLICT = "RESERVATION_CONFLICT"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    NOT_READY_FOR_SETTLEMENT = "NOT_READY_FOR_SETTLEMENT"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"


class DomainError(Exception):
    """Base domain error with code and user-safe message"""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Malformed interval, unknown or disabled slot, bad input"""

    code = ErrorCode.VALIDATION_FAILED


class ConflictError(DomainError):
    """Requested interval overlaps an active reservation on the same slot"""

    code = ErrorCode.RESERVATION_CONFLICT

    def __init__(self, slot_id: UUID, conflicting_id: Optional[UUID] = None) -> None:
        super().__init__("Slot already booked for this time range")
        self.slot_id = slot_id
        self.conflicting_id = conflicting_id


class IllegalTransitionError(DomainError):
    """Lifecycle operation is not allowed from the current state"""

    code = ErrorCode.ILLEGAL_TRANSITION


class AlreadySettledError(DomainError):
    """A payment record already exists for the reservation"""

    code = ErrorCode.ALREADY_SETTLED

    def __init__(self, reservation_id: UUID, payment_id: Optional[UUID] = None) -> None:
        super().__init__("Reservation is already settled")
        self.reservation_id = reservation_id
        self.payment_id = payment_id


class NotReadyError(DomainError):
    """Reservation cannot be settled yet"""

    code = ErrorCode.NOT_READY_FOR_SETTLEMENT


class ReservationNotFoundError(DomainError):
    """Reservation does not exist or belongs to someone else"""

    code = ErrorCode.RESERVATION_NOT_FOUND

    def __init__(self, reservation_id: UUID) -> None:
        super().__init__("Reservation not found")
        self.reservation_id = reservation_id
