"""Domain Entities - Aggregates"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from domain.enums import PaymentMethod, PenaltyKind, ReservationStatus, Timeframe
from domain.errors import IllegalTransitionError, ValidationError
from domain.value_objects import (
    LATE_PAYMENT_GRACE,
    TimeInterval,
    ensure_utc,
    minutes_between,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParkingSlot(BaseModel):
    """Bookable parking slot, as seen by the reservation core"""

    slot_id: UUID = Field(default_factory=uuid4)
    slot_number: str
    enabled: bool = True

    # Display cache only; conflicts are always derived from reservation intervals
    is_available: bool = True

    last_updated: datetime = Field(default_factory=_utcnow)
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    def mark_unavailable(self, now: datetime) -> None:
        self._set_availability(False, now)

    def mark_available(self, now: datetime) -> None:
        self._set_availability(True, now)

    def _set_availability(self, available: bool, now: datetime) -> None:
        if self.is_available == available:
            return
        self.is_available = available
        self.last_updated = now
        self.version += 1


class PaymentRecord(BaseModel):
    """Immutable receipt, created exactly once per reservation"""

    payment_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    requester_id: UUID
    slot_id: UUID
    slot_number: str
    vehicle_number: str

    usage_minutes: float = Field(ge=0)
    slabs: int = Field(ge=0)
    charge: Decimal = Field(ge=0)
    penalty_amount: Decimal = Field(ge=0)
    penalty_kind: PenaltyKind
    total_amount: Decimal = Field(ge=0)

    method: PaymentMethod
    settled_at: datetime

    model_config = ConfigDict(frozen=True, from_attributes=True)


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)

    # References to other contexts
    slot_id: UUID
    requester_id: UUID
    vehicle_number: str

    # Requested and actual occupancy
    requested: TimeInterval
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None

    status: ReservationStatus = ReservationStatus.RESERVED

    # Billing fields, server computed only
    planned_slabs: int = 0
    planned_cost: Decimal = Decimal("0")
    slabs: int = 0
    charge: Decimal = Decimal("0")
    penalty_amount: Decimal = Decimal("0")
    penalty_kind: PenaltyKind = PenaltyKind.NONE
    penalty_applied_at: Optional[datetime] = None
    payment_id: Optional[UUID] = None

    # Metadata
    created_at: datetime = Field(default_factory=_utcnow)
    modified_at: datetime = Field(default_factory=_utcnow)
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        slot_id: UUID,
        requester_id: UUID,
        vehicle_number: str,
        requested: TimeInterval,
        now: datetime,
        planned_slabs: int = 0,
        planned_cost: Decimal = Decimal("0"),
    ) -> "Reservation":
        """Create new reservation in RESERVED state"""
        vehicle_number = (vehicle_number or "").strip().upper()
        if not vehicle_number:
            raise ValidationError("Vehicle number is required")

        now = ensure_utc(now)
        return Reservation(
            slot_id=slot_id,
            requester_id=requester_id,
            vehicle_number=vehicle_number,
            requested=requested,
            planned_slabs=planned_slabs,
            planned_cost=planned_cost,
            created_at=now,
            modified_at=now,
        )

    # ==================== STATE TRANSITION METHODS ====================
    def check_in(self, now: datetime, early_window: timedelta = timedelta(0)) -> None:
        """Record the vehicle's arrival"""
        now = ensure_utc(now)
        if self.status == ReservationStatus.CHECKED_IN:
            raise IllegalTransitionError("Reservation is already checked in")
        if self.status != ReservationStatus.RESERVED:
            raise IllegalTransitionError(f"Cannot check in with status {self.status.value}")

        if now < self.requested.start - early_window:
            raise IllegalTransitionError("Cannot check in before the reserved time")
        if now > self.requested.end:
            raise IllegalTransitionError("Reserved time has already elapsed")

        self.checked_in_at = now
        self.status = ReservationStatus.CHECKED_IN
        self._touch(now)

    def check_out(self, now: datetime) -> float:
        """Record the vehicle's departure and return occupied minutes"""
        now = ensure_utc(now)
        if self.status != ReservationStatus.CHECKED_IN:
            raise IllegalTransitionError(f"Cannot check out with status {self.status.value}")
        if now < self.checked_in_at:
            raise IllegalTransitionError("Check-out cannot precede check-in")

        self.checked_out_at = now
        self.status = ReservationStatus.CHECKED_OUT
        self._touch(now)
        return self.occupied_minutes()

    def cancel(self, now: datetime) -> None:
        """Cancel while nothing has been billed"""
        now = ensure_utc(now)
        if not self.is_cancellable():
            raise IllegalTransitionError(f"Cannot cancel reservation with status {self.status.value}")
        if self.is_no_show(now):
            raise IllegalTransitionError("No-show reservations must be settled, not cancelled")

        self.status = ReservationStatus.CANCELLED
        self._touch(now)

    def mark_no_show(self, now: datetime) -> None:
        """Make the derived no-show condition explicit"""
        now = ensure_utc(now)
        if self.status != ReservationStatus.RESERVED or not self.is_no_show(now):
            raise IllegalTransitionError(f"Cannot mark as no-show with status {self.status.value}")

        self.status = ReservationStatus.NO_SHOW
        self._touch(now)

    def apply_late_penalty(self, amount: Decimal, now: datetime) -> bool:
        """Stamp the late-payment penalty once; returns False if one is already recorded"""
        if self.penalty_amount > 0:
            return False

        now = ensure_utc(now)
        self.penalty_amount = amount
        self.penalty_kind = PenaltyKind.LATE_PAYMENT
        self.penalty_applied_at = now
        self._touch(now)
        return True

    def settle(self, payment: PaymentRecord) -> None:
        """Copy the receipt's figures and close the reservation"""
        if self.status == ReservationStatus.SETTLED or self.payment_id is not None:
            raise IllegalTransitionError("Reservation is already settled")

        self.slabs = payment.slabs
        self.charge = payment.charge
        self.penalty_amount = payment.penalty_amount
        self.penalty_kind = payment.penalty_kind
        self.payment_id = payment.payment_id
        self.status = ReservationStatus.SETTLED
        self._touch(payment.settled_at)

    # ==================== QUERY METHODS ====================
    def is_cancellable(self) -> bool:
        return self.status in [ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN]

    def holds_slot(self) -> bool:
        """Reservation still claims its slot"""
        return self.status in [ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN]

    def blocks_interval(self) -> bool:
        """Counts for conflict detection"""
        return self.status != ReservationStatus.CANCELLED

    def is_no_show(self, now: datetime) -> bool:
        if self.status == ReservationStatus.NO_SHOW:
            return True
        return (
            self.status == ReservationStatus.RESERVED
            and self.checked_in_at is None
            and ensure_utc(now) > self.requested.end
        )

    def is_ready_for_settlement(self, now: datetime) -> bool:
        return self.status == ReservationStatus.CHECKED_OUT or self.is_no_show(now)

    def is_overdue_for_settlement(self, now: datetime) -> bool:
        """Checked out, unsettled, and past the grace window"""
        return (
            self.status == ReservationStatus.CHECKED_OUT
            and self.checked_out_at is not None
            and ensure_utc(now) - self.checked_out_at > LATE_PAYMENT_GRACE
        )

    def occupied_minutes(self) -> float:
        if self.checked_in_at is None or self.checked_out_at is None:
            return 0.0
        return minutes_between(self.checked_in_at, self.checked_out_at)

    def usage_minutes(self, now: datetime) -> float:
        """Minutes of actual use; an open stay is capped at the requested duration"""
        if self.checked_in_at is None:
            return 0.0
        if self.checked_out_at is not None:
            return self.occupied_minutes()
        return min(
            minutes_between(self.checked_in_at, ensure_utc(now)),
            self.requested.duration_minutes(),
        )

    def timeframe(self, now: datetime) -> Timeframe:
        now = ensure_utc(now)
        if self.status == ReservationStatus.CHECKED_IN or self.requested.contains(now):
            return Timeframe.CURRENT
        if now < self.requested.start:
            return Timeframe.FUTURE
        return Timeframe.PAST

    def _touch(self, now: datetime) -> None:
        self.modified_at = now
        self.version += 1
