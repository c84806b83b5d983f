from fastapi import APIRouter
from app.api.v1 import bookings, consultations, video_sessions, settings

api_router = APIRouter()

api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(consultations.router, prefix="/consultations", tags=["consultations"])
api_router.include_router(video_sessions.router, prefix="/video-sessions", tags=["video-sessions"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
