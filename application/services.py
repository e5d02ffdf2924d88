"""Application Services - Business use cases"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from uuid import UUID

from domain.entities import ParkingSlot, PaymentRecord, Reservation
from domain.enums import PaymentMethod
from domain.errors import (
    AlreadySettledError,
    ConflictError,
    NotReadyError,
    ReservationNotFoundError,
    ValidationError,
)
from domain.fee_calculator import FeeCalculator
from domain.value_objects import FeePreview, Requester, TimeInterval, ensure_utc
from infrastructure.unit_of_work import InMemoryUnitOfWork, reservation_key, slot_key

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


def slot_in_use(reservations: List[Reservation], now: datetime) -> bool:
    """Whether the slot's display flag should read "unavailable" at `now`"""
    return any(
        r.holds_slot() or (r.blocks_interval() and r.requested.contains(now))
        for r in reservations
    )


class _ReservationAccess:
    """Shared lookups for services that act on one reservation"""

    def __init__(self, uow: InMemoryUnitOfWork, clock: Clock = system_clock):
        self.uow = uow
        self.clock = clock

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    async def _get_owned(self, requester: Requester, reservation_id: UUID) -> Reservation:
        """Load a reservation the requester may act on"""
        reservation = await self.uow.reservations.find_by_id(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        if not requester.is_admin and reservation.requester_id != requester.requester_id:
            # Someone else's reservation looks exactly like a missing one
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def _refresh_availability(self, slot_id: UUID, now: datetime) -> None:
        """Recompute the slot's display flag; call only inside the slot's transaction"""
        slot = await self.uow.slots.find_by_id(slot_id)
        if slot is None:
            return

        reservations = await self.uow.reservations.find_by_slot(slot_id)
        if slot_in_use(reservations, now):
            slot.mark_unavailable(now)
        else:
            slot.mark_available(now)
        await self.uow.slots.update(slot)


class ReservationLedger(_ReservationAccess):
    """Creates reservations; no slot is ever double-booked"""

    def __init__(
        self,
        uow: InMemoryUnitOfWork,
        fee_calculator: Optional[FeeCalculator] = None,
        clock: Clock = system_clock,
    ):
        super().__init__(uow, clock)
        self.fee_calculator = fee_calculator or FeeCalculator()

    async def reserve(
        self,
        requester: Requester,
        slot_id: UUID,
        vehicle_number: str,
        start: datetime,
        end: datetime,
    ) -> Reservation:
        """Reserve a slot for [start, end)"""
        now = self._now()
        try:
            requested = TimeInterval(start=start, end=end)
        except ValueError:
            raise ValidationError("End time must be after start time")
        if requested.has_elapsed(now):
            raise ValidationError("Reserved time is already over")

        async with self.uow.transaction(slot_key(slot_id)):
            slot = await self.uow.slots.find_by_id(slot_id)
            if slot is None:
                raise ValidationError("Slot not found")
            if not slot.enabled:
                raise ValidationError("Slot is not available for booking")

            # Always re-derived from stored intervals, never from slot.is_available
            conflict = await self.find_conflict(slot_id, requested)
            if conflict is not None:
                logger.warning(
                    "Rejected reservation on slot %s [%s, %s): overlaps %s",
                    slot.slot_number,
                    requested.start.isoformat(),
                    requested.end.isoformat(),
                    conflict.reservation_id,
                )
                raise ConflictError(slot_id, conflict.reservation_id)

            planned_slabs, planned_cost = self.fee_calculator.planned_cost(requested)
            reservation = Reservation.create(
                slot_id=slot_id,
                requester_id=requester.requester_id,
                vehicle_number=vehicle_number,
                requested=requested,
                now=now,
                planned_slabs=planned_slabs,
                planned_cost=planned_cost,
            )
            await self.uow.reservations.save(reservation)

            slot.mark_unavailable(now)
            await self.uow.slots.update(slot)

        logger.info(
            "Reserved slot %s for %s [%s, %s) as %s",
            slot.slot_number,
            reservation.vehicle_number,
            requested.start.isoformat(),
            requested.end.isoformat(),
            reservation.reservation_id,
        )
        return reservation

    async def find_conflict(self, slot_id: UUID, requested: TimeInterval) -> Optional[Reservation]:
        """First non-cancelled reservation on the slot overlapping `requested`"""
        for existing in await self.uow.reservations.find_by_slot(slot_id):
            if existing.blocks_interval() and existing.requested.overlaps(requested):
                return existing
        return None

    async def get_reservation(self, requester: Requester, reservation_id: UUID) -> Reservation:
        return await self._get_owned(requester, reservation_id)

    async def history_for_requester(self, requester_id: UUID) -> List[Reservation]:
        """Reservations made by a requester, newest first"""
        return await self.uow.reservations.find_by_requester(requester_id)

    async def history_for_slot(self, slot_id: UUID) -> List[Reservation]:
        """Reservations on a slot, ordered by requested start"""
        slot = await self.uow.slots.find_by_id(slot_id)
        if slot is None:
            raise ValidationError("Slot not found")
        return await self.uow.reservations.find_by_slot(slot_id)

    async def list_slots(self) -> List[ParkingSlot]:
        return await self.uow.slots.find_all()


class OccupancyLifecycle(_ReservationAccess):
    """Moves reservations through check-in, check-out and cancellation"""

    def __init__(
        self,
        uow: InMemoryUnitOfWork,
        clock: Clock = system_clock,
        check_in_early_minutes: int = 15,
    ):
        super().__init__(uow, clock)
        self.early_window = timedelta(minutes=check_in_early_minutes)

    async def check_in(self, requester: Requester, reservation_id: UUID) -> Reservation:
        """Vehicle arrived"""
        now = self._now()
        async with self.uow.transaction(reservation_key(reservation_id)):
            reservation = await self._get_owned(requester, reservation_id)
            reservation.check_in(now, early_window=self.early_window)
            await self.uow.reservations.update(reservation)

        logger.info("Checked in reservation %s at %s", reservation_id, now.isoformat())
        return reservation

    async def check_out(self, requester: Requester, reservation_id: UUID) -> Reservation:
        """Vehicle left"""
        now = self._now()
        async with self.uow.transaction(reservation_key(reservation_id)):
            reservation = await self._get_owned(requester, reservation_id)
            occupied = reservation.check_out(now)
            await self.uow.reservations.update(reservation)

        logger.info("Checked out reservation %s after %.1f minutes", reservation_id, occupied)
        return reservation

    async def cancel(self, requester: Requester, reservation_id: UUID) -> Reservation:
        """Cancel an unsettled reservation and release its slot"""
        now = self._now()
        # slot_id never changes, so it is safe to read it before locking
        current = await self._get_owned(requester, reservation_id)

        async with self.uow.transaction(reservation_key(reservation_id), slot_key(current.slot_id)):
            reservation = await self._get_owned(requester, reservation_id)
            reservation.cancel(now)
            await self.uow.reservations.update(reservation)
            await self._refresh_availability(reservation.slot_id, now)

        logger.info("Cancelled reservation %s", reservation_id)
        return reservation


class BillingService(_ReservationAccess):
    """Turns finished reservations into exactly one payment record each"""

    def __init__(
        self,
        uow: InMemoryUnitOfWork,
        fee_calculator: Optional[FeeCalculator] = None,
        clock: Clock = system_clock,
    ):
        super().__init__(uow, clock)
        self.fee_calculator = fee_calculator or FeeCalculator()

    async def preview(self, requester: Requester, reservation_id: UUID) -> FeePreview:
        """What settling right now would cost; nothing is written"""
        reservation = await self._get_owned(requester, reservation_id)
        return self.fee_calculator.preview(reservation, self._now())

    async def settle(
        self,
        requester: Requester,
        reservation_id: UUID,
        method: PaymentMethod,
    ) -> PaymentRecord:
        """Charge the reservation and close it"""
        now = self._now()
        current = await self._get_owned(requester, reservation_id)

        async with self.uow.transaction(reservation_key(reservation_id), slot_key(current.slot_id)):
            reservation = await self._get_owned(requester, reservation_id)

            existing = await self.uow.payments.find_by_reservation(reservation_id)
            if existing is not None or reservation.payment_id is not None:
                raise AlreadySettledError(
                    reservation_id, existing.payment_id if existing else reservation.payment_id
                )
            if not reservation.is_ready_for_settlement(now):
                raise NotReadyError(
                    f"Cannot settle reservation with status {reservation.status.value}"
                )

            fees = self.fee_calculator.for_reservation(reservation, now)
            slot = await self.uow.slots.find_by_id(reservation.slot_id)
            payment = PaymentRecord(
                reservation_id=reservation.reservation_id,
                requester_id=reservation.requester_id,
                slot_id=reservation.slot_id,
                slot_number=slot.slot_number if slot else "",
                vehicle_number=reservation.vehicle_number,
                usage_minutes=fees.usage_minutes,
                slabs=fees.slabs,
                charge=fees.charge,
                penalty_amount=fees.penalty_amount,
                penalty_kind=fees.penalty_kind,
                total_amount=fees.total_due,
                method=method,
                settled_at=now,
            )
            await self.uow.payments.save(payment)

            reservation.settle(payment)
            await self.uow.reservations.update(reservation)

            # Stays flagged until the reserved interval is over
            await self._refresh_availability(reservation.slot_id, now)

        logger.info(
            "Settled reservation %s via %s: charge %s + penalty %s (%s)",
            reservation_id,
            method.value,
            payment.charge,
            payment.penalty_amount,
            payment.penalty_kind.value,
        )
        return payment

    async def get_payment(self, requester: Requester, reservation_id: UUID) -> Optional[PaymentRecord]:
        await self._get_owned(requester, reservation_id)
        return await self.uow.payments.find_by_reservation(reservation_id)
