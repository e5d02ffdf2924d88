"""API Schemas - Request and Response DTOs

Request bodies carry identifiers, timestamps and tags only. Every monetary
figure is computed server side, so extra fields are rejected outright.
"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from typing import Optional

from domain.enums import PaymentMethod, PenaltyKind, ReservationStatus, Role, Timeframe


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    model_config = ConfigDict(extra="forbid")

    slot_id: UUID
    vehicle_number: str = Field(min_length=1, max_length=20)
    start_time: datetime
    end_time: datetime


class SettleReservationRequest(BaseModel):
    """Settle reservation request DTO"""
    model_config = ConfigDict(extra="forbid")

    method: PaymentMethod


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    slot_id: UUID
    requester_id: UUID
    vehicle_number: str
    start_time: datetime
    end_time: datetime
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    status: ReservationStatus
    timeframe: Timeframe
    planned_slabs: int
    planned_cost: Decimal
    slabs: int
    charge: Decimal
    penalty_amount: Decimal
    penalty_kind: PenaltyKind
    penalty_applied_at: Optional[datetime] = None
    payment_id: Optional[UUID] = None
    created_at: datetime
    modified_at: datetime
    version: int


class FeePreviewResponse(BaseModel):
    """Fee preview response DTO"""
    reservation_id: UUID
    status: ReservationStatus
    usage_minutes: float
    slabs: int
    charge: Decimal
    penalty_amount: Decimal
    penalty_kind: PenaltyKind
    total_due: Decimal
    is_no_show: bool
    computed_at: datetime


class PaymentResponse(BaseModel):
    """Payment record response DTO"""
    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    reservation_id: UUID
    requester_id: UUID
    slot_id: UUID
    slot_number: str
    vehicle_number: str
    usage_minutes: float
    slabs: int
    charge: Decimal
    penalty_amount: Decimal
    penalty_kind: PenaltyKind
    total_amount: Decimal
    method: PaymentMethod
    settled_at: datetime


# ============================================================================
# SLOT SCHEMAS
# ============================================================================

class SlotResponse(BaseModel):
    """Parking slot response DTO"""
    model_config = ConfigDict(from_attributes=True)

    slot_id: UUID
    slot_number: str
    enabled: bool
    is_available: bool
    last_updated: datetime


# ============================================================================
# SWEEP SCHEMAS
# ============================================================================

class SweepReportResponse(BaseModel):
    """Penalty sweep result DTO"""
    late_penalties_applied: int
    no_shows_marked: int
    slots_released: int
    failures: int


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Role
    disabled: bool
