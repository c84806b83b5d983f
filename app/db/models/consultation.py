from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4


class Consultation(SQLModel, table=True):
    __tablename__ = "consultations"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    booking_id: Optional[UUID] = Field(default=None, foreign_key="bookings.id", unique=True)
    pet_owner_id: UUID
    veterinarian_id: UUID
    status: str = Field(default="scheduled")  # scheduled, in_progress, completed
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
