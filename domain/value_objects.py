"""Domain Value Objects"""
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from domain.enums import PenaltyKind, ReservationStatus, Role

SLAB_MINUTES = 15
LATE_PAYMENT_GRACE = timedelta(hours=24)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open overlap test: [a) and [b) share at least one instant"""
    return start_a < end_b and end_a > start_b


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end, never negative"""
    return max((end - start).total_seconds() / 60, 0.0)


def slab_count(minutes: float) -> int:
    """Number of billing slabs; any partial slab counts as a full one"""
    if minutes <= 0:
        return 0
    return math.ceil(minutes / SLAB_MINUTES)


class TimeInterval(BaseModel):
    """Value Object for a half-open [start, end) time range"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def end_after_start(self) -> "TimeInterval":
        if self.start >= self.end:
            raise ValueError("End time must be after start time")
        return self

    def overlaps(self, other: "TimeInterval") -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) < self.end

    def has_elapsed(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.end

    def duration_minutes(self) -> float:
        return minutes_between(self.start, self.end)


class Requester(BaseModel):
    """Identity supplied by the authentication collaborator"""
    model_config = ConfigDict(frozen=True)

    requester_id: UUID
    role: Role = Role.DRIVER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class FeeBreakdown(BaseModel):
    """Result of a fee computation"""
    model_config = ConfigDict(frozen=True)

    usage_minutes: float = Field(ge=0)
    slabs: int = Field(ge=0)
    charge: Decimal = Field(ge=0)
    penalty_amount: Decimal = Field(ge=0)
    penalty_kind: PenaltyKind = PenaltyKind.NONE

    @computed_field
    @property
    def total_due(self) -> Decimal:
        return self.charge + self.penalty_amount


class FeePreview(FeeBreakdown):
    """Fee estimate for a reservation at a given instant; nothing is stored"""

    reservation_id: UUID
    status: ReservationStatus
    is_no_show: bool
    computed_at: datetime
