"""In-Memory Repository Implementations

Entities are stored and handed out as copies, so a caller's changes only become
visible through save/update. Writes made inside a unit-of-work transaction are
journaled so the transaction can undo exactly its own changes.
"""
from contextvars import ContextVar
from typing import Any, Optional, List, Dict, Tuple
from uuid import UUID

from domain.repositories import ParkingSlotRepository, ReservationRepository, PaymentRepository
from domain.entities import ParkingSlot, Reservation, PaymentRecord
from domain.errors import AlreadySettledError

_MISSING = object()

UndoEntry = Tuple["_JournaledStore", UUID, Any]

_active_journal: ContextVar[Optional[List[UndoEntry]]] = ContextVar("_active_journal", default=None)


def begin_journal() -> Any:
    """Start recording writes for the current task; returns a reset token"""
    return _active_journal.set([])


def end_journal(token: Any, rollback: bool) -> None:
    """Stop recording; on rollback, undo every recorded write newest first"""
    journal = _active_journal.get()
    _active_journal.reset(token)
    if rollback and journal:
        for store, key, previous in reversed(journal):
            store._undo(key, previous)


class _JournaledStore:
    """Dict-backed table whose writes can be undone by the owning transaction"""

    def __init__(self):
        self._storage: Dict[UUID, Any] = {}

    def _write(self, key: UUID, value: Any) -> None:
        journal = _active_journal.get()
        if journal is not None:
            journal.append((self, key, self._storage.get(key, _MISSING)))
        self._storage[key] = value

    def _undo(self, key: UUID, previous: Any) -> None:
        if previous is _MISSING:
            self._storage.pop(key, None)
        else:
            self._storage[key] = previous


class InMemoryParkingSlotRepository(_JournaledStore, ParkingSlotRepository):
    """In-memory implementation of ParkingSlotRepository"""

    async def save(self, slot: ParkingSlot) -> ParkingSlot:
        """Save slot to memory"""
        self._write(slot.slot_id, slot.model_copy(deep=True))
        return slot

    async def find_by_id(self, slot_id: UUID) -> Optional[ParkingSlot]:
        """Find slot by ID"""
        slot = self._storage.get(slot_id)
        return slot.model_copy(deep=True) if slot else None

    async def find_by_number(self, slot_number: str) -> Optional[ParkingSlot]:
        """Find slot by its display number"""
        for slot in self._storage.values():
            if slot.slot_number == slot_number:
                return slot.model_copy(deep=True)
        return None

    async def find_all(self) -> List[ParkingSlot]:
        """Find all slots"""
        slots = sorted(self._storage.values(), key=lambda s: s.slot_number)
        return [s.model_copy(deep=True) for s in slots]

    async def update(self, slot: ParkingSlot) -> ParkingSlot:
        """Update slot"""
        if slot.slot_id in self._storage:
            self._write(slot.slot_id, slot.model_copy(deep=True))
            return slot
        raise ValueError("Slot not found")


class InMemoryReservationRepository(_JournaledStore, ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        self._write(reservation.reservation_id, reservation.model_copy(deep=True))
        return reservation

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        reservation = self._storage.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    async def find_by_requester(self, requester_id: UUID) -> List[Reservation]:
        """Find reservations made by a requester, newest first"""
        found = [r for r in self._storage.values() if r.requester_id == requester_id]
        found.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in found]

    async def find_by_slot(self, slot_id: UUID) -> List[Reservation]:
        """Find reservations on a slot, ordered by requested start"""
        found = [r for r in self._storage.values() if r.slot_id == slot_id]
        found.sort(key=lambda r: r.requested.start)
        return [r.model_copy(deep=True) for r in found]

    async def find_by_status(self, *statuses) -> List[Reservation]:
        """Find reservations in any of the given states"""
        return [r.model_copy(deep=True) for r in self._storage.values() if r.status in statuses]

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return [r.model_copy(deep=True) for r in self._storage.values()]

    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        if reservation.reservation_id in self._storage:
            self._write(reservation.reservation_id, reservation.model_copy(deep=True))
            return reservation
        raise ValueError("Reservation not found")


class InMemoryPaymentRepository(_JournaledStore, PaymentRepository):
    """In-memory implementation of PaymentRepository"""

    async def save(self, payment: PaymentRecord) -> PaymentRecord:
        """Insert payment record, enforcing one per reservation"""
        existing = await self.find_by_reservation(payment.reservation_id)
        if existing is not None:
            raise AlreadySettledError(payment.reservation_id, existing.payment_id)
        if payment.payment_id in self._storage:
            raise ValueError("Payment records are immutable")
        self._write(payment.payment_id, payment)
        return payment

    async def find_by_id(self, payment_id: UUID) -> Optional[PaymentRecord]:
        """Find payment by ID"""
        return self._storage.get(payment_id)

    async def find_by_reservation(self, reservation_id: UUID) -> Optional[PaymentRecord]:
        """Find the payment record of a reservation"""
        for payment in self._storage.values():
            if payment.reservation_id == reservation_id:
                return payment
        return None

    async def find_all(self) -> List[PaymentRecord]:
        """Find all payment records"""
        return list(self._storage.values())
