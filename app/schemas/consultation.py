from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

class ConsultationNotesUpdate(BaseModel):
    diagnosis: Optional[str] = None
    notes: Optional[str] = None

class ConsultationResponse(BaseModel):
    id: UUID
    booking_id: Optional[UUID] = None
    pet_owner_id: UUID
    veterinarian_id: UUID
    status: str
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    class Config:
        from_attributes = True
