"""Recurring pass that stamps late-payment penalties and marks no-shows"""
import asyncio
import logging
from contextlib import suppress
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from application.services import Clock, slot_in_use, system_clock
from domain.enums import ReservationStatus
from domain.errors import DomainError
from domain.fee_calculator import LATE_PAYMENT_FEE
from domain.value_objects import ensure_utc
from infrastructure.unit_of_work import InMemoryUnitOfWork, reservation_key, slot_key

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    """Outcome of one sweep"""
    late_penalties_applied: int = 0
    no_shows_marked: int = 0
    slots_released: int = 0
    failures: int = 0


class PenaltySweeper:
    """
    Background job run on a fixed interval

    A reservation gets the late-payment penalty when it is checked out,
    still unsettled, and the check-out is more than 24 hours old. The same
    rule is used by settlement, so the two can never disagree. Reservations
    that already carry a penalty are skipped, which makes `run` idempotent.
    The sweep also clears "unavailable" flags left on slots whose last
    reservation ended after an early settlement.
    """

    def __init__(
        self,
        uow: InMemoryUnitOfWork,
        clock: Clock = system_clock,
        interval_seconds: float = 3600,
    ):
        self.uow = uow
        self.clock = clock
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> SweepReport:
        """One full pass; failures on single reservations are logged and skipped"""
        now = ensure_utc(self.clock())
        report = SweepReport()

        for candidate in await self.uow.reservations.find_by_status(ReservationStatus.CHECKED_OUT):
            if candidate.penalty_amount > 0 or not candidate.is_overdue_for_settlement(now):
                continue
            try:
                if await self._apply_late_penalty(candidate.reservation_id, now):
                    report.late_penalties_applied += 1
            except DomainError:
                logger.exception("Late penalty failed for reservation %s", candidate.reservation_id)
                report.failures += 1

        for candidate in await self.uow.reservations.find_by_status(ReservationStatus.RESERVED):
            if not candidate.is_no_show(now):
                continue
            try:
                if await self._mark_no_show(candidate.reservation_id, candidate.slot_id, now):
                    report.no_shows_marked += 1
            except DomainError:
                logger.exception("No-show marking failed for reservation %s", candidate.reservation_id)
                report.failures += 1

        for slot in await self.uow.slots.find_all():
            if slot.is_available:
                continue
            if slot_in_use(await self.uow.reservations.find_by_slot(slot.slot_id), now):
                continue
            if await self._release_slot(slot.slot_id, now):
                report.slots_released += 1

        if any(report.model_dump().values()):
            logger.info(
                "Penalty sweep: %d late penalties, %d no-shows, %d slots released, %d failures",
                report.late_penalties_applied,
                report.no_shows_marked,
                report.slots_released,
                report.failures,
            )
        return report

    async def _apply_late_penalty(self, reservation_id: UUID, now: datetime) -> bool:
        async with self.uow.transaction(reservation_key(reservation_id)):
            # Re-check under the lock; settlement may have won the race
            reservation = await self.uow.reservations.find_by_id(reservation_id)
            if reservation is None or not reservation.is_overdue_for_settlement(now):
                return False
            if not reservation.apply_late_penalty(LATE_PAYMENT_FEE, now):
                return False
            await self.uow.reservations.update(reservation)

        logger.info("Applied late-payment penalty to reservation %s", reservation_id)
        return True

    async def _mark_no_show(self, reservation_id: UUID, slot_id: UUID, now: datetime) -> bool:
        async with self.uow.transaction(reservation_key(reservation_id), slot_key(slot_id)):
            reservation = await self.uow.reservations.find_by_id(reservation_id)
            if reservation is None or reservation.status != ReservationStatus.RESERVED:
                return False
            if not reservation.is_no_show(now):
                return False
            reservation.mark_no_show(now)
            await self.uow.reservations.update(reservation)

            await self._clear_flag_if_idle(slot_id, now)

        logger.info("Marked reservation %s as no-show", reservation_id)
        return True

    async def _release_slot(self, slot_id: UUID, now: datetime) -> bool:
        """Clear a stale "unavailable" flag once nothing occupies the slot"""
        async with self.uow.transaction(slot_key(slot_id)):
            released = await self._clear_flag_if_idle(slot_id, now)

        if released:
            logger.info("Released availability flag of slot %s", slot_id)
        return released

    async def _clear_flag_if_idle(self, slot_id: UUID, now: datetime) -> bool:
        # Caller holds the slot key
        slot = await self.uow.slots.find_by_id(slot_id)
        if slot is None or slot.is_available:
            return False
        if slot_in_use(await self.uow.reservations.find_by_slot(slot_id), now):
            return False
        slot.mark_available(now)
        await self.uow.slots.update(slot)
        return True

    # ==================== SCHEDULING ====================
    def start(self) -> None:
        """Run once now, then every `interval_seconds`"""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="penalty-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.run()
            except Exception:
                # A failed sweep must never kill the loop; the next tick retries
                logger.exception("Penalty sweep failed")
            await asyncio.sleep(self.interval_seconds)
