from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import JSON, Column
from sqlalchemy.dialects.postgresql import JSONB


class BookingAction:
    CREATED = "BOOKING_CREATED"
    CONFIRMED = "BOOKING_CONFIRMED"
    CANCELLED = "BOOKING_CANCELLED"
    RESCHEDULED = "BOOKING_RESCHEDULED"


class BookingActionLog(SQLModel, table=True):
    """Append-only audit trail of booking transitions. Rows are never updated."""

    __tablename__ = "booking_action_logs"
    # Autoincrement sequence breaks ties between entries stamped in the same instant
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: UUID = Field(default_factory=uuid4, unique=True, index=True)
    booking_id: UUID = Field(foreign_key="bookings.id", index=True)
    action: str
    actor_user_id: Optional[UUID] = None
    actor_role: str
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON().with_variant(JSONB, "postgresql")))
    created_at: datetime = Field(default_factory=datetime.utcnow)
