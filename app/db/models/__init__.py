from sqlmodel import SQLModel
from .booking import Booking, BookingStatus, BOOKING_TRANSITIONS
from .audit_log import BookingActionLog, BookingAction
from .consultation import Consultation
from .video_session import VideoSession, ChatMessage, SessionStatus

__all__ = [
    "SQLModel",
    "Booking",
    "BookingStatus",
    "BOOKING_TRANSITIONS",
    "BookingActionLog",
    "BookingAction",
    "Consultation",
    "VideoSession",
    "ChatMessage",
    "SessionStatus",
]
