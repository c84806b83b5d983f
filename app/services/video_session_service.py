from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import InvalidStateError, NotFoundError
from app.core.logger import logger
from app.core.utils import generate_room_id
from app.db.models import ChatMessage, SessionStatus, VideoSession
from app.services.booking_service import BookingService
from app.services.consultation_service import ConsultationService

class VideoSessionService:
    """
    Lifecycle of the live session attached to a consultation:
    waiting -> active -> ended, forward only.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.consultations = ConsultationService(session)
        self.bookings = BookingService(session)

    async def get_session(self, session_id: UUID) -> VideoSession:
        video_session = await self.session.get(VideoSession, session_id)
        if not video_session:
            raise NotFoundError("Video Session", session_id)
        return video_session

    async def _reload(self, session_id: UUID) -> VideoSession:
        video_session = await self.session.get(VideoSession, session_id, populate_existing=True)
        if not video_session:
            raise NotFoundError("Video Session", session_id)
        return video_session

    async def _open_session(self, consultation_id: UUID) -> VideoSession | None:
        stmt = select(VideoSession).where(
            VideoSession.consultation_id == consultation_id,
            VideoSession.status != SessionStatus.ENDED
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_consultation(self, consultation_id: UUID) -> VideoSession | None:
        # Prefer the live session, then the waiting one, then the latest ended
        rank = case(
            (VideoSession.status == SessionStatus.ACTIVE, 0),
            (VideoSession.status == SessionStatus.WAITING, 1),
            else_=2
        )
        stmt = (
            select(VideoSession)
            .where(VideoSession.consultation_id == consultation_id)
            .order_by(rank, VideoSession.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_room(self, room_id: str) -> VideoSession:
        stmt = select(VideoSession).where(VideoSession.room_id == room_id)
        result = await self.session.execute(stmt)
        video_session = result.scalars().first()
        if not video_session:
            raise NotFoundError("Video Session for room", room_id)
        return video_session

    async def get_or_create(self, consultation_id: UUID, host_user_id: UUID,
                            participant_user_id: UUID) -> tuple[VideoSession, bool]:
        """Return the open session for the consultation, creating one if none is open."""
        await self.consultations.get_consultation(consultation_id)

        existing = await self._open_session(consultation_id)
        if existing:
            return existing, False

        video_session = VideoSession(
            consultation_id=consultation_id,
            room_id=generate_room_id(),
            host_user_id=host_user_id,
            participant_user_id=participant_user_id,
            status=SessionStatus.WAITING
        )
        self.session.add(video_session)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost the race against the partial unique index; use the winner
            await self.session.rollback()
            existing = await self._open_session(consultation_id)
            if existing is None:
                raise
            return existing, False
        await self.session.refresh(video_session)

        logger.info(
            f"Video session created | id={video_session.id} room={video_session.room_id} "
            f"consultation={consultation_id}"
        )
        return video_session, True

    async def start_session(self, session_id: UUID) -> VideoSession:
        now = datetime.utcnow()
        stmt = (
            update(VideoSession)
            .where(VideoSession.id == session_id, VideoSession.status == SessionStatus.WAITING)
            .values(status=SessionStatus.ACTIVE, started_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            await self.session.commit()
            current = await self._reload(session_id)
            if current.status == SessionStatus.ACTIVE:
                return current
            raise InvalidStateError("video session", SessionStatus.ACTIVE, current.status)
        await self.session.commit()

        video_session = await self._reload(session_id)
        await self.consultations.mark_in_progress(video_session.consultation_id, now)
        logger.info(f"Video session started | id={session_id}")
        return video_session

    async def end_session(self, session_id: UUID, recording_url: Optional[str] = None) -> VideoSession:
        # Status only moves forward, so retrying on a lost swap terminates
        while True:
            current = await self._reload(session_id)
            if current.status == SessionStatus.ENDED:
                raise InvalidStateError("video session", SessionStatus.ENDED, current.status)

            now = datetime.utcnow()
            duration = 0
            if current.started_at is not None:
                duration = max(0, int((now - current.started_at).total_seconds()))

            stmt = (
                update(VideoSession)
                .where(VideoSession.id == session_id, VideoSession.status == current.status)
                .values(
                    status=SessionStatus.ENDED,
                    ended_at=now,
                    duration=duration,
                    recording_url=recording_url,
                    updated_at=now
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            if result.rowcount:
                break
            await self.session.commit()
        await self.session.commit()

        video_session = await self._reload(session_id)
        await self.consultations.mark_completed(video_session.consultation_id, duration, now)
        await self.bookings.complete_for_consultation(video_session.consultation_id)

        logger.info(f"Video session ended | id={session_id} duration={duration}s recording={recording_url}")
        return video_session

    async def join_room(self, room_id: str) -> VideoSession:
        video_session = await self.get_by_room(room_id)
        if video_session.status == SessionStatus.WAITING:
            return await self.start_session(video_session.id)
        return video_session

    async def list_active_sessions(self) -> List[VideoSession]:
        stmt = (
            select(VideoSession)
            .where(VideoSession.status.in_([SessionStatus.WAITING, SessionStatus.ACTIVE]))
            .order_by(VideoSession.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add_message(self, session_id: UUID, sender_id: UUID, sender_name: str,
                          message: str, message_type: str = "text") -> ChatMessage:
        await self.get_session(session_id)
        chat_message = ChatMessage(
            session_id=session_id,
            sender_id=sender_id,
            sender_name=sender_name,
            message=message,
            message_type=message_type
        )
        self.session.add(chat_message)
        await self.session.commit()
        await self.session.refresh(chat_message)
        return chat_message

    async def list_messages(self, session_id: UUID, since: Optional[datetime] = None) -> List[ChatMessage]:
        stmt = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if since is not None:
            stmt = stmt.where(ChatMessage.timestamp > since)
        stmt = stmt.order_by(ChatMessage.timestamp, ChatMessage.seq)
        result = await self.session.execute(stmt)
        return result.scalars().all()
