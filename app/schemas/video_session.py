from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

class VideoSessionCreate(BaseModel):
    consultation_id: UUID
    participant_user_id: UUID

class VideoSessionEnd(BaseModel):
    recording_url: Optional[str] = None

class VideoSessionResponse(BaseModel):
    id: UUID
    consultation_id: UUID
    room_id: str
    host_user_id: UUID
    participant_user_id: UUID
    status: Literal["waiting", "active", "ended"]
    quality: str = "high"
    duration: int = 0
    recording_url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ChatMessageCreate(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    message_type: Literal["text", "system"] = "text"

class ChatMessageResponse(BaseModel):
    id: UUID
    session_id: UUID
    sender_id: UUID
    sender_name: str
    message: str
    message_type: str
    timestamp: datetime

    class Config:
        from_attributes = True
