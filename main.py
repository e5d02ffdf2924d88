import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Reservation
    CreateReservationRequest, SettleReservationRequest, ReservationResponse,
    FeePreviewResponse, PaymentResponse,
    # Slots & sweep
    SlotResponse, SweepReportResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, fake_users_db, get_requester, get_user, require_admin
from infrastructure.logging_config import setup_logging
from infrastructure.security import verify_password, create_access_token
from infrastructure.settings import get_settings
from infrastructure.unit_of_work import InMemoryUnitOfWork
from domain.auth import User
from domain.entities import ParkingSlot
from domain.enums import PaymentMethod, PenaltyKind, ReservationStatus
from domain.errors import DomainError, ErrorCode
from domain.value_objects import Requester

from application.penalty_sweeper import PenaltySweeper
from application.services import BillingService, Clock, OccupancyLifecycle, ReservationLedger, system_clock

logger = logging.getLogger(__name__)

settings = get_settings()

# Initialize storage
unit_of_work = InMemoryUnitOfWork()


async def seed_slots(uow: InMemoryUnitOfWork, slot_numbers) -> None:
    """Register the configured slots that do not exist yet"""
    for number in slot_numbers:
        if await uow.slots.find_by_number(number) is None:
            await uow.slots.save(ParkingSlot(slot_number=number))


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    await seed_slots(unit_of_work, settings.seed_slots)

    sweeper = PenaltySweeper(unit_of_work, interval_seconds=settings.sweep_interval_seconds)
    sweeper.start()
    logger.info("Parking reservation API started with %d slots", len(settings.seed_slots))
    try:
        yield
    finally:
        await sweeper.stop()


app = FastAPI(
    title="Parking Reservation API",
    description="Slot reservations, occupancy tracking and slab-based billing",
    version="1.0.0",
    lifespan=lifespan
)

# Dependency injection
def get_unit_of_work() -> InMemoryUnitOfWork:
    return unit_of_work

def get_clock() -> Clock:
    return system_clock

def get_reservation_ledger(
    uow: InMemoryUnitOfWork = Depends(get_unit_of_work),
    clock: Clock = Depends(get_clock)
) -> ReservationLedger:
    return ReservationLedger(uow, clock=clock)

def get_occupancy_lifecycle(
    uow: InMemoryUnitOfWork = Depends(get_unit_of_work),
    clock: Clock = Depends(get_clock)
) -> OccupancyLifecycle:
    return OccupancyLifecycle(uow, clock=clock, check_in_early_minutes=settings.check_in_early_minutes)

def get_billing_service(
    uow: InMemoryUnitOfWork = Depends(get_unit_of_work),
    clock: Clock = Depends(get_clock)
) -> BillingService:
    return BillingService(uow, clock=clock)

def get_penalty_sweeper(
    uow: InMemoryUnitOfWork = Depends(get_unit_of_work),
    clock: Clock = Depends(get_clock)
) -> PenaltySweeper:
    return PenaltySweeper(uow, clock=clock, interval_seconds=settings.sweep_interval_seconds)

_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.RESERVATION_NOT_FOUND: 404,
    ErrorCode.RESERVATION_CONFLICT: 409,
    ErrorCode.ILLEGAL_TRANSITION: 409,
    ErrorCode.ALREADY_SETTLED: 409,
    ErrorCode.NOT_READY_FOR_SETTLEMENT: 409,
}

def _http_error(error: DomainError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_CODE.get(error.code, 400),
        detail={"code": error.code.value, "message": error.message}
    )

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.value for item in ReservationStatus],
        "description": "Reservation lifecycle: RESERVED, CHECKED_IN, CHECKED_OUT, SETTLED, CANCELLED, NO_SHOW"
    }

@app.get("/api/enums/payment-method", tags=["Enum Reference"])
async def get_payment_methods():
    """Get all PaymentMethod enum values"""
    return {"values": [item.value for item in PaymentMethod]}

@app.get("/api/enums/penalty-kind", tags=["Enum Reference"])
async def get_penalty_kinds():
    """Get all PenaltyKind enum values"""
    return {"values": [item.value for item in PenaltyKind]}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": user.username})
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# SLOT ENDPOINTS
# ============================================================================

@app.get("/api/slots", response_model=List[SlotResponse], tags=["Slots"])
async def list_slots(
    ledger: ReservationLedger = Depends(get_reservation_ledger),
    requester: Requester = Depends(get_requester)
):
    """List slots with their availability flag"""
    return [SlotResponse.model_validate(s) for s in await ledger.list_slots()]

@app.get("/api/slots/{slot_id}/reservations", response_model=List[ReservationResponse], tags=["Slots"])
async def get_slot_reservations(
    slot_id: UUID,
    ledger: ReservationLedger = Depends(get_reservation_ledger),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(require_admin)
):
    """Reservation history of a slot (administrators only)"""
    try:
        reservations = await ledger.history_for_slot(slot_id)
    except DomainError as e:
        raise _http_error(e)
    now = clock()
    return [_reservation_to_response(r, now) for r in reservations]

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    ledger: ReservationLedger = Depends(get_reservation_ledger),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Reserve a slot for a time range"""
    try:
        reservation = await ledger.reserve(
            requester=requester,
            slot_id=request.slot_id,
            vehicle_number=request.vehicle_number,
            start=request.start_time,
            end=request.end_time
        )
        return _reservation_to_response(reservation, clock())
    except DomainError as e:
        raise _http_error(e)

@app.get("/api/reservations/me", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_my_reservations(
    ledger: ReservationLedger = Depends(get_reservation_ledger),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Reservation history of the caller, newest first"""
    reservations = await ledger.history_for_requester(requester.requester_id)
    now = clock()
    return [_reservation_to_response(r, now) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    ledger: ReservationLedger = Depends(get_reservation_ledger),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Get reservation by ID"""
    try:
        reservation = await ledger.get_reservation(requester, reservation_id)
        return _reservation_to_response(reservation, clock())
    except DomainError as e:
        raise _http_error(e)

@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in(
    reservation_id: UUID,
    lifecycle: OccupancyLifecycle = Depends(get_occupancy_lifecycle),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Record vehicle arrival"""
    try:
        reservation = await lifecycle.check_in(requester, reservation_id)
        return _reservation_to_response(reservation, clock())
    except DomainError as e:
        raise _http_error(e)

@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out(
    reservation_id: UUID,
    lifecycle: OccupancyLifecycle = Depends(get_occupancy_lifecycle),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Record vehicle departure"""
    try:
        reservation = await lifecycle.check_out(requester, reservation_id)
        return _reservation_to_response(reservation, clock())
    except DomainError as e:
        raise _http_error(e)

@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    lifecycle: OccupancyLifecycle = Depends(get_occupancy_lifecycle),
    clock: Clock = Depends(get_clock),
    requester: Requester = Depends(get_requester)
):
    """Cancel an unsettled reservation"""
    try:
        reservation = await lifecycle.cancel(requester, reservation_id)
        return _reservation_to_response(reservation, clock())
    except DomainError as e:
        raise _http_error(e)

@app.get("/api/reservations/{reservation_id}/preview", response_model=FeePreviewResponse, tags=["Payments"])
async def preview_fees(
    reservation_id: UUID,
    billing: BillingService = Depends(get_billing_service),
    requester: Requester = Depends(get_requester)
):
    """Live fee estimate; nothing is charged"""
    try:
        preview = await billing.preview(requester, reservation_id)
    except DomainError as e:
        raise _http_error(e)
    return FeePreviewResponse(
        reservation_id=preview.reservation_id,
        status=preview.status,
        usage_minutes=preview.usage_minutes,
        slabs=preview.slabs,
        charge=preview.charge,
        penalty_amount=preview.penalty_amount,
        penalty_kind=preview.penalty_kind,
        total_due=preview.total_due,
        is_no_show=preview.is_no_show,
        computed_at=preview.computed_at
    )

@app.post("/api/reservations/{reservation_id}/settle", response_model=PaymentResponse, status_code=201, tags=["Payments"])
async def settle_reservation(
    reservation_id: UUID,
    request: SettleReservationRequest,
    billing: BillingService = Depends(get_billing_service),
    requester: Requester = Depends(get_requester)
):
    """Pay for a reservation; at most one payment per reservation"""
    try:
        payment = await billing.settle(requester, reservation_id, request.method)
        return PaymentResponse.model_validate(payment)
    except DomainError as e:
        raise _http_error(e)

@app.get("/api/reservations/{reservation_id}/payment", response_model=PaymentResponse, tags=["Payments"])
async def get_payment(
    reservation_id: UUID,
    billing: BillingService = Depends(get_billing_service),
    requester: Requester = Depends(get_requester)
):
    """Get the payment record of a settled reservation"""
    try:
        payment = await billing.get_payment(requester, reservation_id)
    except DomainError as e:
        raise _http_error(e)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return PaymentResponse.model_validate(payment)

# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/api/admin/penalty-sweep", response_model=SweepReportResponse, tags=["Admin"])
async def run_penalty_sweep(
    sweeper: PenaltySweeper = Depends(get_penalty_sweeper),
    requester: Requester = Depends(require_admin)
):
    """Run one penalty sweep immediately"""
    report = await sweeper.run()
    return SweepReportResponse(**report.model_dump())

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _reservation_to_response(reservation, now: datetime) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        slot_id=reservation.slot_id,
        requester_id=reservation.requester_id,
        vehicle_number=reservation.vehicle_number,
        start_time=reservation.requested.start,
        end_time=reservation.requested.end,
        checked_in_at=reservation.checked_in_at,
        checked_out_at=reservation.checked_out_at,
        status=reservation.status,
        timeframe=reservation.timeframe(now),
        planned_slabs=reservation.planned_slabs,
        planned_cost=reservation.planned_cost,
        slabs=reservation.slabs,
        charge=reservation.charge,
        penalty_amount=reservation.penalty_amount,
        penalty_kind=reservation.penalty_kind,
        penalty_applied_at=reservation.penalty_applied_at,
        payment_id=reservation.payment_id,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
