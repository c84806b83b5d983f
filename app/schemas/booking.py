from pydantic import BaseModel, Field, TypeAdapter
from uuid import UUID
from datetime import date, datetime
from typing import Annotated, Literal, Optional, List, Union

SLOT_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

BookingType = Literal["video_call", "phone", "in_person", "chat"]
Priority = Literal["low", "normal", "high", "urgent", "emergency"]

class BookingCreate(BaseModel):
    veterinarian_id: UUID
    animal_id: Optional[UUID] = None
    scheduled_date: date
    time_slot_start: str = Field(pattern=SLOT_PATTERN)
    time_slot_end: str = Field(pattern=SLOT_PATTERN)
    booking_type: BookingType = "video_call"
    priority: Priority = "normal"
    reason_for_visit: str
    symptoms: Optional[str] = None
    notes: Optional[str] = None

class BookingCancel(BaseModel):
    reason: Optional[str] = None

class BookingReschedule(BaseModel):
    scheduled_date: date
    time_slot_start: str = Field(pattern=SLOT_PATTERN)
    time_slot_end: str = Field(pattern=SLOT_PATTERN)

class BookingResponse(BaseModel):
    id: UUID
    pet_owner_id: UUID
    veterinarian_id: UUID
    animal_id: Optional[UUID] = None
    consultation_id: Optional[UUID] = None
    rescheduled_from: Optional[UUID] = None
    scheduled_date: date
    time_slot_start: str
    time_slot_end: str
    status: str
    booking_type: str
    priority: str
    reason_for_visit: Optional[str] = None
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class BookingListResponse(BaseModel):
    items: List[BookingResponse]
    total: int
    limit: int
    offset: int
    has_more: bool

class JoinabilityResponse(BaseModel):
    booking_id: UUID
    joinable: bool
    join_window_minutes: int
    opens_at: Optional[datetime] = None
    minutes_until_join: int = 0

class MissedSweepResponse(BaseModel):
    marked: List[UUID]


# Action log details, one shape per action

class BookingCreatedDetails(BaseModel):
    scheduled_date: date
    time_slot_start: str
    time_slot_end: str
    veterinarian_id: UUID

class BookingConfirmedDetails(BaseModel):
    confirmed_by: Optional[UUID] = None

class BookingCancelledDetails(BaseModel):
    reason: str
    cancelled_by: Optional[UUID] = None

class BookingRescheduledDetails(BaseModel):
    old_booking_id: UUID
    new_date: date
    new_time_slot_start: str
    new_time_slot_end: str
    new_status: str
    rescheduled_by: Optional[UUID] = None

class ActionLogEntryBase(BaseModel):
    id: UUID
    booking_id: UUID
    actor_user_id: Optional[UUID] = None
    actor_role: str
    created_at: datetime

class BookingCreatedEntry(ActionLogEntryBase):
    action: Literal["BOOKING_CREATED"]
    details: BookingCreatedDetails

class BookingConfirmedEntry(ActionLogEntryBase):
    action: Literal["BOOKING_CONFIRMED"]
    details: BookingConfirmedDetails

class BookingCancelledEntry(ActionLogEntryBase):
    action: Literal["BOOKING_CANCELLED"]
    details: BookingCancelledDetails

class BookingRescheduledEntry(ActionLogEntryBase):
    action: Literal["BOOKING_RESCHEDULED"]
    details: BookingRescheduledDetails

ActionLogEntry = Annotated[
    Union[BookingCreatedEntry, BookingConfirmedEntry, BookingCancelledEntry, BookingRescheduledEntry],
    Field(discriminator="action"),
]

action_log_adapter = TypeAdapter(List[ActionLogEntry])
