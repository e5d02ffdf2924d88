"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID

from domain.entities import ParkingSlot, Reservation, PaymentRecord


class ParkingSlotRepository(ABC):
    """Repository interface for ParkingSlot (owned by the catalog)"""

    @abstractmethod
    async def save(self, slot: ParkingSlot) -> ParkingSlot:
        """Save slot"""
        pass

    @abstractmethod
    async def find_by_id(self, slot_id: UUID) -> Optional[ParkingSlot]:
        """Find slot by ID"""
        pass

    @abstractmethod
    async def find_by_number(self, slot_number: str) -> Optional[ParkingSlot]:
        """Find slot by its display number"""
        pass

    @abstractmethod
    async def find_all(self) -> List[ParkingSlot]:
        """Find all slots"""
        pass

    @abstractmethod
    async def update(self, slot: ParkingSlot) -> ParkingSlot:
        """Update slot"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_requester(self, requester_id: UUID) -> List[Reservation]:
        """Find reservations made by a requester, newest first"""
        pass

    @abstractmethod
    async def find_by_slot(self, slot_id: UUID) -> List[Reservation]:
        """Find reservations on a slot, ordered by requested start"""
        pass

    @abstractmethod
    async def find_by_status(self, *statuses) -> List[Reservation]:
        """Find reservations in any of the given states"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        pass


class PaymentRepository(ABC):
    """Repository interface for PaymentRecord; records are insert-only"""

    @abstractmethod
    async def save(self, payment: PaymentRecord) -> PaymentRecord:
        """Insert payment record; at most one per reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: UUID) -> Optional[PaymentRecord]:
        """Find payment by ID"""
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> Optional[PaymentRecord]:
        """Find the payment record of a reservation"""
        pass

    @abstractmethod
    async def find_all(self) -> List[PaymentRecord]:
        """Find all payment records"""
        pass
