from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import Index, text


class SessionStatus:
    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


class VideoSession(SQLModel, table=True):
    __tablename__ = "video_sessions"
    # At most one open (waiting/active) session per consultation
    __table_args__ = (
        Index(
            "uq_video_sessions_open_consultation",
            "consultation_id",
            unique=True,
            postgresql_where=text("status <> 'ended'"),
            sqlite_where=text("status <> 'ended'"),
        ),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    consultation_id: UUID = Field(foreign_key="consultations.id", index=True)
    room_id: str = Field(unique=True, index=True)
    host_user_id: UUID
    participant_user_id: UUID
    status: str = Field(default=SessionStatus.WAITING)
    quality: str = Field(default="high")
    duration: int = Field(default=0)  # seconds
    recording_url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: UUID = Field(default_factory=uuid4, unique=True, index=True)
    session_id: UUID = Field(foreign_key="video_sessions.id", index=True)
    sender_id: UUID
    sender_name: str
    message: str
    message_type: str = Field(default="text")  # text, system
    timestamp: datetime = Field(default_factory=datetime.utcnow)
