from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import InvalidStateError, NotFoundError
from app.core.logger import logger
from app.db.models import Booking, BookingStatus, Consultation
from app.schemas.consultation import ConsultationNotesUpdate

class ConsultationService:
    """
    The consultation record a video session hangs off. Diagnosis and notes are
    stored and returned as given.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_consultation(self, consultation_id: UUID) -> Consultation:
        consultation = await self.session.get(Consultation, consultation_id)
        if not consultation:
            raise NotFoundError("Consultation", consultation_id)
        return consultation

    async def _for_booking(self, booking_id: UUID) -> Consultation | None:
        stmt = select(Consultation).where(Consultation.booking_id == booking_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def open_for_booking(self, booking_id: UUID) -> Consultation:
        booking = await self.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateError(
                "booking", "in_consultation", booking.status,
                message="Only confirmed bookings can start a consultation"
            )

        existing = await self._for_booking(booking_id)
        if existing:
            return existing

        consultation = Consultation(
            booking_id=booking.id,
            pet_owner_id=booking.pet_owner_id,
            veterinarian_id=booking.veterinarian_id
        )
        self.session.add(consultation)
        booking.consultation_id = consultation.id
        self.session.add(booking)
        try:
            await self.session.commit()
        except IntegrityError:
            # The other participant opened it first
            await self.session.rollback()
            existing = await self._for_booking(booking_id)
            if existing is None:
                raise
            return existing
        await self.session.refresh(consultation)

        logger.info(f"Consultation opened | id={consultation.id} booking={booking_id}")
        return consultation

    async def update_notes(self, consultation_id: UUID, data: ConsultationNotesUpdate) -> Consultation:
        consultation = await self.get_consultation(consultation_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(consultation, key, value)
        consultation.updated_at = datetime.utcnow()
        self.session.add(consultation)
        await self.session.commit()
        await self.session.refresh(consultation)
        return consultation

    async def mark_in_progress(self, consultation_id: UUID, started_at: Optional[datetime] = None) -> None:
        started_at = started_at or datetime.utcnow()
        stmt = (
            update(Consultation)
            .where(Consultation.id == consultation_id, Consultation.status == "scheduled")
            .values(status="in_progress", started_at=started_at, updated_at=started_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        if result.rowcount:
            logger.info(f"Consultation in progress | id={consultation_id}")

    async def mark_completed(self, consultation_id: UUID, duration_seconds: int,
                             completed_at: Optional[datetime] = None) -> None:
        completed_at = completed_at or datetime.utcnow()
        stmt = (
            update(Consultation)
            .where(Consultation.id == consultation_id, Consultation.status.in_(["scheduled", "in_progress"]))
            .values(
                status="completed",
                completed_at=completed_at,
                duration_minutes=round(duration_seconds / 60),
                updated_at=completed_at
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        if result.rowcount:
            logger.info(f"Consultation completed | id={consultation_id} duration={duration_seconds}s")
