"""Unit of Work - atomic transactions over the in-memory repositories"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from uuid import UUID

from infrastructure.repositories.in_memory_repositories import (
    InMemoryParkingSlotRepository,
    InMemoryPaymentRepository,
    InMemoryReservationRepository,
    begin_journal,
    end_journal,
)

logger = logging.getLogger(__name__)


def slot_key(slot_id: UUID) -> str:
    return f"slot:{slot_id}"


def reservation_key(reservation_id: UUID) -> str:
    return f"reservation:{reservation_id}"


class InMemoryUnitOfWork:
    """
    Groups the repositories and serializes work per key

    `transaction(*keys)` holds one lock per key for the whole body, so a
    check-then-write sequence under a slot key cannot interleave with another
    one on the same slot. If the body raises, every write it made is undone
    before the locks are released.
    """

    def __init__(
        self,
        slots: Optional[InMemoryParkingSlotRepository] = None,
        reservations: Optional[InMemoryReservationRepository] = None,
        payments: Optional[InMemoryPaymentRepository] = None,
    ):
        self.slots = slots or InMemoryParkingSlotRepository()
        self.reservations = reservations or InMemoryReservationRepository()
        self.payments = payments or InMemoryPaymentRepository()
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def transaction(self, *keys: str) -> AsyncIterator["InMemoryUnitOfWork"]:
        # Sorted acquisition keeps two multi-key transactions from deadlocking
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                lock = self._locks[key]
                await lock.acquire()
                acquired.append(lock)

            token = begin_journal()
            try:
                yield self
            except BaseException:
                end_journal(token, rollback=True)
                logger.debug("Rolled back transaction on %s", ", ".join(ordered))
                raise
            end_journal(token, rollback=False)
        finally:
            for lock in reversed(acquired):
                lock.release()
