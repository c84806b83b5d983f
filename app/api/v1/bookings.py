from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor, get_current_admin, get_settings_service
from app.core.join_window import is_joinable, join_opens_at, minutes_until_join
from app.db.models import Booking
from app.db.session import get_session
from app.schemas.booking import (
    ActionLogEntry,
    BookingCancel,
    BookingCreate,
    BookingListResponse,
    BookingReschedule,
    BookingResponse,
    JoinabilityResponse,
    MissedSweepResponse,
)
from app.schemas.consultation import ConsultationResponse
from app.schemas.user import Actor
from app.services.booking_service import BookingService
from app.services.consultation_service import ConsultationService
from app.services.settings_service import SettingsService

router = APIRouter()

async def get_booking_service(session: AsyncSession = Depends(get_session)) -> BookingService:
    return BookingService(session)

def ensure_participant(booking: Booking, actor: Actor, action: str):
    if actor.is_admin:
        return
    if actor.user_id not in (booking.pet_owner_id, booking.veterinarian_id):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this booking")

@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    request: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    if actor.role not in ("pet_owner", "admin"):
        raise HTTPException(status_code=403, detail="Only pet owners can book consultations")
    return await service.create_booking(actor, request)

@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status: Optional[str] = None,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    items, total = await service.list_bookings(actor, status=status, limit=limit, offset=offset)
    return BookingListResponse(
        items=[BookingResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(items) < total
    )

@router.get("/action-logs/me", response_model=List[ActionLogEntry])
async def read_my_action_logs(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    return await service.list_actor_action_logs(actor, limit=limit, offset=offset)

@router.post("/mark-missed", response_model=MissedSweepResponse)
async def mark_missed_bookings(
    actor: Actor = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service)
):
    return MissedSweepResponse(marked=await service.mark_missed_bookings())

@router.get("/{booking_id}", response_model=BookingResponse)
async def read_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(booking_id)
    ensure_participant(booking, actor, "view")
    return booking

@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(booking_id)
    if booking.veterinarian_id != actor.user_id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="Only the veterinarian or admin can confirm bookings")
    return await service.confirm_booking(booking_id, actor)

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    request: Optional[BookingCancel] = None,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(booking_id)
    ensure_participant(booking, actor, "cancel")
    return await service.cancel_booking(booking_id, actor, request.reason if request else None)

@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: UUID,
    request: BookingReschedule,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(booking_id)
    ensure_participant(booking, actor, "reschedule")
    return await service.reschedule_booking(
        booking_id, actor, request.scheduled_date, request.time_slot_start, request.time_slot_end
    )

@router.get("/{booking_id}/action-logs", response_model=List[ActionLogEntry])
async def read_action_logs(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.get_booking(booking_id)
    ensure_participant(booking, actor, "view action logs for")
    return await service.list_action_log(booking_id)

@router.get("/{booking_id}/joinable", response_model=JoinabilityResponse)
async def read_joinability(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    settings_service: SettingsService = Depends(get_settings_service)
):
    booking = await service.get_booking(booking_id)
    ensure_participant(booking, actor, "view")
    window = await settings_service.get_join_window_minutes()
    now = datetime.now()
    return JoinabilityResponse(
        booking_id=booking.id,
        joinable=is_joinable(booking.scheduled_date, booking.time_slot_start, booking.time_slot_end, window, now),
        join_window_minutes=window,
        opens_at=join_opens_at(booking.scheduled_date, booking.time_slot_start, window),
        minutes_until_join=minutes_until_join(booking.scheduled_date, booking.time_slot_start, window, now)
    )

@router.post("/{booking_id}/consultation", response_model=ConsultationResponse)
async def open_consultation(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    session: AsyncSession = Depends(get_session)
):
    booking = await BookingService(session).get_booking(booking_id)
    ensure_participant(booking, actor, "consult on")
    return await ConsultationService(session).open_for_booking(booking_id)
