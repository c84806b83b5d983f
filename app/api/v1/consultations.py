from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_actor
from app.db.models import Consultation
from app.db.session import get_session
from app.schemas.consultation import ConsultationNotesUpdate, ConsultationResponse
from app.schemas.user import Actor
from app.services.consultation_service import ConsultationService

router = APIRouter()

async def get_consultation_service(session: AsyncSession = Depends(get_session)) -> ConsultationService:
    return ConsultationService(session)

def ensure_party(consultation: Consultation, actor: Actor):
    if not actor.is_admin and actor.user_id not in (consultation.pet_owner_id, consultation.veterinarian_id):
        raise HTTPException(status_code=403, detail="Not authorized to access this consultation")

@router.get("/{consultation_id}", response_model=ConsultationResponse)
async def read_consultation(
    consultation_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    consultation = await service.get_consultation(consultation_id)
    ensure_party(consultation, actor)
    return consultation

@router.patch("/{consultation_id}", response_model=ConsultationResponse)
async def update_consultation_notes(
    consultation_id: UUID,
    request: ConsultationNotesUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    consultation = await service.get_consultation(consultation_id)
    if consultation.veterinarian_id != actor.user_id and not actor.is_admin:
        raise HTTPException(status_code=403, detail="Only the veterinarian can edit consultation notes")
    return await service.update_notes(consultation_id, request)
