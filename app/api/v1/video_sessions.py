from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor, get_current_admin
from app.core.utils import generate_sender_name
from app.db.models import VideoSession
from app.db.session import get_session
from app.schemas.user import Actor
from app.schemas.video_session import (
    ChatMessageCreate,
    ChatMessageResponse,
    VideoSessionCreate,
    VideoSessionEnd,
    VideoSessionResponse,
)
from app.services.video_session_service import VideoSessionService

router = APIRouter()

async def get_video_session_service(session: AsyncSession = Depends(get_session)) -> VideoSessionService:
    return VideoSessionService(session)

async def ensure_session_access(video_session: VideoSession, actor: Actor,
                                service: VideoSessionService, action: str):
    if actor.is_admin:
        return
    if actor.user_id in (video_session.host_user_id, video_session.participant_user_id):
        return
    # Parties of the linked consultation may act even if they are not host/participant
    consultation = await service.consultations.get_consultation(video_session.consultation_id)
    if actor.user_id in (consultation.pet_owner_id, consultation.veterinarian_id):
        return
    raise HTTPException(status_code=403, detail=f"Not authorized to {action} this session")

async def ensure_consultation_party(consultation_id: UUID, actor: Actor, service: VideoSessionService, action: str):
    consultation = await service.consultations.get_consultation(consultation_id)
    if not actor.is_admin and actor.user_id not in (consultation.pet_owner_id, consultation.veterinarian_id):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} a session for this consultation")

@router.post("", response_model=VideoSessionResponse)
async def create_session(
    request: VideoSessionCreate,
    response: Response,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    await ensure_consultation_party(request.consultation_id, actor, service, "open")

    video_session, created = await service.get_or_create(
        request.consultation_id, actor.user_id, request.participant_user_id
    )
    response.status_code = 201 if created else 200
    return video_session

@router.get("/active", response_model=List[VideoSessionResponse])
async def list_active_sessions(
    actor: Actor = Depends(get_current_admin),
    service: VideoSessionService = Depends(get_video_session_service)
):
    return await service.list_active_sessions()

@router.get("/consultation/{consultation_id}", response_model=Optional[VideoSessionResponse])
async def read_session_by_consultation(
    consultation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    await ensure_consultation_party(consultation_id, actor, service, "view")
    return await service.get_by_consultation(consultation_id)

@router.post("/room/{room_id}/join", response_model=VideoSessionResponse)
async def join_room(
    room_id: str,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_by_room(room_id)
    await ensure_session_access(video_session, actor, service, "join")
    return await service.join_room(room_id)

@router.get("/{session_id}", response_model=VideoSessionResponse)
async def read_session(
    session_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_session(session_id)
    await ensure_session_access(video_session, actor, service, "view")
    return video_session

@router.post("/{session_id}/start", response_model=VideoSessionResponse)
async def start_session(
    session_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_session(session_id)
    await ensure_session_access(video_session, actor, service, "start")
    return await service.start_session(session_id)

@router.post("/{session_id}/end", response_model=VideoSessionResponse)
async def end_session(
    session_id: UUID,
    request: Optional[VideoSessionEnd] = None,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_session(session_id)
    await ensure_session_access(video_session, actor, service, "end")
    return await service.end_session(session_id, request.recording_url if request else None)

@router.post("/{session_id}/messages", response_model=ChatMessageResponse, status_code=201)
async def send_message(
    session_id: UUID,
    request: ChatMessageCreate,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_session(session_id)
    await ensure_session_access(video_session, actor, service, "message in")
    return await service.add_message(
        session_id,
        actor.user_id,
        generate_sender_name(actor.name, actor.role),
        request.message,
        request.message_type
    )

@router.get("/{session_id}/messages", response_model=List[ChatMessageResponse])
async def read_messages(
    session_id: UUID,
    since: Optional[datetime] = None,
    actor: Actor = Depends(get_current_actor),
    service: VideoSessionService = Depends(get_video_session_service)
):
    video_session = await service.get_session(session_id)
    await ensure_session_access(video_session, actor, service, "read messages in")
    return await service.list_messages(session_id, since)
