"""
Fee Calculator Module
Computes slab-based parking charges and penalties
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from domain.entities import Reservation
from domain.enums import PenaltyKind, ReservationStatus
from domain.errors import AlreadySettledError, IllegalTransitionError
from domain.value_objects import (
    LATE_PAYMENT_GRACE,
    FeeBreakdown,
    FeePreview,
    TimeInterval,
    ensure_utc,
    slab_count,
)

logger = logging.getLogger(__name__)

RATE_PER_SLAB = Decimal("5")
NO_SHOW_FEE = Decimal("5")
LATE_PAYMENT_FEE = Decimal("5")


class FeeCalculator:
    """Fixed-rate slab calculator. Every input time is passed in explicitly."""

    def compute(
        self,
        usage_minutes: float,
        settlement_time: datetime,
        occupancy_end: Optional[datetime],
        is_no_show: bool,
    ) -> FeeBreakdown:
        """
        Compute charge and penalty for a usage interval

        Rules, first match wins:
          1. no-show or zero usage: no charge, fixed no-show fee
          2. settled more than the grace window after occupancy ended:
             slab charge plus the late fee on top
          3. otherwise: slab charge only
        """
        usage_minutes = max(usage_minutes, 0.0)

        if is_no_show or usage_minutes == 0:
            return FeeBreakdown(
                usage_minutes=usage_minutes,
                slabs=0,
                charge=Decimal("0"),
                penalty_amount=NO_SHOW_FEE,
                penalty_kind=PenaltyKind.NO_SHOW,
            )

        slabs = slab_count(usage_minutes)
        charge = slabs * RATE_PER_SLAB

        if self.is_late(settlement_time, occupancy_end):
            return FeeBreakdown(
                usage_minutes=usage_minutes,
                slabs=slabs,
                charge=charge,
                penalty_amount=LATE_PAYMENT_FEE,
                penalty_kind=PenaltyKind.LATE_PAYMENT,
            )

        return FeeBreakdown(
            usage_minutes=usage_minutes,
            slabs=slabs,
            charge=charge,
            penalty_amount=Decimal("0"),
            penalty_kind=PenaltyKind.NONE,
        )

    def is_late(self, settlement_time: datetime, occupancy_end: Optional[datetime]) -> bool:
        if occupancy_end is None:
            return False
        return ensure_utc(settlement_time) - ensure_utc(occupancy_end) > LATE_PAYMENT_GRACE

    def for_reservation(self, reservation: Reservation, now: datetime) -> FeeBreakdown:
        """Fees for a reservation's current occupancy fields at `now`"""
        breakdown = self.compute(
            usage_minutes=reservation.usage_minutes(now),
            settlement_time=now,
            occupancy_end=reservation.checked_out_at,
            is_no_show=reservation.is_no_show(now),
        )
        logger.debug(
            "Fees for reservation %s: %s slabs, charge %s, penalty %s (%s)",
            reservation.reservation_id,
            breakdown.slabs,
            breakdown.charge,
            breakdown.penalty_amount,
            breakdown.penalty_kind.value,
        )
        return breakdown

    def preview(self, reservation: Reservation, now: datetime) -> FeePreview:
        """Non-committing estimate of what settling at `now` would cost"""
        if reservation.status == ReservationStatus.SETTLED:
            raise AlreadySettledError(reservation.reservation_id, reservation.payment_id)
        if reservation.status == ReservationStatus.CANCELLED:
            raise IllegalTransitionError("Cancelled reservations have nothing to pay")
        breakdown = self.for_reservation(reservation, now)
        return FeePreview(
            **breakdown.model_dump(exclude={"total_due"}),
            reservation_id=reservation.reservation_id,
            status=reservation.status,
            is_no_show=reservation.is_no_show(now),
            computed_at=ensure_utc(now),
        )

    def planned_cost(self, requested: TimeInterval) -> Tuple[int, Decimal]:
        """Slabs and cost of the requested interval, shown at booking time"""
        slabs = slab_count(requested.duration_minutes())
        return slabs, slabs * RATE_PER_SLAB
