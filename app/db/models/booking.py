from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import date, datetime
from uuid import UUID, uuid4


class BookingStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    MISSED = "missed"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Legal edges of the booking state machine. A rescheduled booking is archived;
# its successor row carries the new slot.
BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.MISSED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.MISSED: frozenset({BookingStatus.RESCHEDULED}),
    BookingStatus.RESCHEDULED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def allowed_sources(target: str) -> frozenset[str]:
    """Statuses from which ``target`` may be entered."""
    return frozenset(source for source, targets in BOOKING_TRANSITIONS.items() if target in targets)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    pet_owner_id: UUID = Field(index=True)
    veterinarian_id: UUID = Field(index=True)
    animal_id: Optional[UUID] = None
    consultation_id: Optional[UUID] = Field(default=None, index=True)
    rescheduled_from: Optional[UUID] = Field(default=None, foreign_key="bookings.id")
    scheduled_date: date
    time_slot_start: str  # local HH:MM
    time_slot_end: str
    status: str = Field(default=BookingStatus.PENDING, index=True)
    booking_type: str = Field(default="video_call")  # video_call, phone, in_person, chat
    priority: str = Field(default="normal")  # low, normal, high, urgent, emergency
    reason_for_visit: Optional[str] = None
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
