from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from app.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.core.join_window import combine_slot, slot_has_ended
from app.core.logger import logger
from app.db.models import Booking, BookingAction, BookingActionLog, BookingStatus, VideoSession
from app.db.models.booking import allowed_sources
from app.schemas.booking import (
    ActionLogEntry,
    BookingCancelledDetails,
    BookingConfirmedDetails,
    BookingCreate,
    BookingCreatedDetails,
    BookingRescheduledDetails,
    action_log_adapter,
)
from app.schemas.user import Actor

# Statuses that no longer hold a slot
RELEASED_STATUSES = [BookingStatus.CANCELLED, BookingStatus.RESCHEDULED]

class BookingService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def get_by_consultation(self, consultation_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.consultation_id == consultation_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _slot_taken(self, veterinarian_id: UUID, scheduled_date: date, slot_start: str,
                          exclude_id: Optional[UUID] = None) -> bool:
        stmt = select(Booking.id).where(
            Booking.veterinarian_id == veterinarian_id,
            Booking.scheduled_date == scheduled_date,
            Booking.time_slot_start == slot_start,
            Booking.status.not_in(RELEASED_STATUSES)
        )
        if exclude_id is not None:
            stmt = stmt.where(Booking.id != exclude_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    def _validate_slot(self, scheduled_date: date, slot_start: str, slot_end: str, now: datetime, verb: str):
        start_dt = combine_slot(scheduled_date, slot_start)
        end_dt = combine_slot(scheduled_date, slot_end)
        if end_dt <= start_dt:
            raise ValidationError("The time slot must end after it starts.")
        if start_dt <= now:
            raise ValidationError(f"Cannot {verb} a past date/time. Please select a future time.")

    def append_action_log(self, booking_id: UUID, action: str, actor: Actor, details: BaseModel) -> BookingActionLog:
        """
        Stage an action log entry on the current transaction.

        The entry commits together with the status change it describes, so a
        transition that loses a race never leaves a log entry behind.
        """
        entry = BookingActionLog(
            booking_id=booking_id,
            action=action,
            actor_user_id=actor.user_id,
            actor_role=actor.role,
            details=details.model_dump(mode="json"),
        )
        self.session.add(entry)
        return entry

    async def _transition(self, booking_id: UUID, target: str, **values) -> Booking:
        # Compare-and-swap on status: concurrent callers cannot both act on the
        # same pre-transition state; the loser observes the new one.
        now = datetime.utcnow()
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status.in_(allowed_sources(target)))
            .values(status=target, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            # Nothing to undo; ending the empty transaction keeps held objects loaded
            await self.session.commit()
            current = await self.session.get(Booking, booking_id, populate_existing=True)
            if not current:
                raise NotFoundError("Booking", booking_id)
            raise InvalidStateError("booking", target, current.status)
        return await self.session.get(Booking, booking_id, populate_existing=True)

    async def create_booking(self, owner: Actor, data: BookingCreate, now: Optional[datetime] = None) -> Booking:
        now = now or datetime.now()
        self._validate_slot(data.scheduled_date, data.time_slot_start, data.time_slot_end, now, "book")

        if await self._slot_taken(data.veterinarian_id, data.scheduled_date, data.time_slot_start):
            raise ConflictError("This time slot is already booked")

        booking = Booking(
            pet_owner_id=owner.user_id,
            veterinarian_id=data.veterinarian_id,
            animal_id=data.animal_id,
            scheduled_date=data.scheduled_date,
            time_slot_start=data.time_slot_start,
            time_slot_end=data.time_slot_end,
            status=BookingStatus.PENDING,
            booking_type=data.booking_type,
            priority=data.priority,
            reason_for_visit=data.reason_for_visit,
            symptoms=data.symptoms,
            notes=data.notes
        )
        self.session.add(booking)
        self.append_action_log(booking.id, BookingAction.CREATED, owner, BookingCreatedDetails(
            scheduled_date=data.scheduled_date,
            time_slot_start=data.time_slot_start,
            time_slot_end=data.time_slot_end,
            veterinarian_id=data.veterinarian_id
        ))
        await self.session.commit()
        await self.session.refresh(booking)

        logger.info(f"Booking created | id={booking.id} owner={owner.user_id} vet={data.veterinarian_id}")
        return booking

    async def confirm_booking(self, booking_id: UUID, actor: Actor, now: Optional[datetime] = None) -> Booking:
        booking = await self.get_booking(booking_id)
        if booking.status == BookingStatus.PENDING and slot_has_ended(booking.scheduled_date, booking.time_slot_end, now):
            raise ValidationError("Cannot confirm a booking whose scheduled time has already passed.")

        booking = await self._transition(booking_id, BookingStatus.CONFIRMED, confirmed_at=datetime.utcnow())
        self.append_action_log(booking_id, BookingAction.CONFIRMED, actor, BookingConfirmedDetails(
            confirmed_by=actor.user_id
        ))
        await self.session.commit()
        await self.session.refresh(booking)

        logger.info(f"Booking confirmed | id={booking_id} by={actor.user_id}")
        return booking

    async def cancel_booking(self, booking_id: UUID, actor: Actor, reason: Optional[str] = None) -> Booking:
        reason = reason or "No reason provided"
        booking = await self._transition(booking_id, BookingStatus.CANCELLED, cancellation_reason=reason)
        self.append_action_log(booking_id, BookingAction.CANCELLED, actor, BookingCancelledDetails(
            reason=reason,
            cancelled_by=actor.user_id
        ))
        await self.session.commit()
        await self.session.refresh(booking)

        logger.info(f"Booking cancelled | id={booking_id} by={actor.user_id} reason={reason!r}")
        return booking

    async def _consultation_started(self, booking: Booking) -> bool:
        if booking.consultation_id is None:
            return False
        stmt = select(VideoSession.id).where(
            VideoSession.consultation_id == booking.consultation_id,
            VideoSession.started_at.is_not(None)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def mark_missed(self, booking_id: UUID, now: Optional[datetime] = None) -> Booking:
        booking = await self.get_booking(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateError("booking", BookingStatus.MISSED, booking.status)
        if not slot_has_ended(booking.scheduled_date, booking.time_slot_end, now):
            raise ValidationError("The booking's time slot has not ended yet.")
        if await self._consultation_started(booking):
            raise ValidationError("A consultation was already started for this booking.")

        booking = await self._transition(booking_id, BookingStatus.MISSED)
        await self.session.commit()
        await self.session.refresh(booking)
        logger.info(f"Booking marked missed | id={booking_id}")
        return booking

    async def mark_missed_bookings(self, now: Optional[datetime] = None) -> List[UUID]:
        """Sweep confirmed bookings whose slot ended without the call ever going live."""
        now = now or datetime.now()
        stmt = select(Booking).where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.scheduled_date <= now.date()
        )
        result = await self.session.execute(stmt)
        candidates = result.scalars().all()

        marked = []
        for booking in candidates:
            if not slot_has_ended(booking.scheduled_date, booking.time_slot_end, now):
                continue
            if await self._consultation_started(booking):
                continue
            update_stmt = (
                update(Booking)
                .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED)
                .values(status=BookingStatus.MISSED, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            update_result = await self.session.execute(update_stmt)
            if update_result.rowcount:
                marked.append(booking.id)
        await self.session.commit()

        if marked:
            logger.info(f"Auto-marked {len(marked)} booking(s) as missed | ids={[str(i) for i in marked]}")
        return marked

    async def reschedule_booking(
        self,
        booking_id: UUID,
        actor: Actor,
        new_date: date,
        new_start: str,
        new_end: str,
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Archive the booking as ``rescheduled`` and return its successor.

        A veterinarian's reschedule is confirmed straight away; anyone else's
        goes back to ``pending`` and needs the veterinarian to confirm it.
        """
        now = now or datetime.now()
        self._validate_slot(new_date, new_start, new_end, now, "reschedule to")

        old = await self.get_booking(booking_id)
        if old.status not in allowed_sources(BookingStatus.RESCHEDULED):
            raise InvalidStateError(
                "booking", BookingStatus.RESCHEDULED, old.status,
                message=f"Cannot reschedule a booking with status '{old.status}'. Only missed or confirmed bookings can be rescheduled."
            )
        if await self._slot_taken(old.veterinarian_id, new_date, new_start, exclude_id=old.id):
            raise ConflictError("This time slot is already booked")

        old = await self._transition(booking_id, BookingStatus.RESCHEDULED)

        auto_confirm = actor.role == "veterinarian"
        new_status = BookingStatus.CONFIRMED if auto_confirm else BookingStatus.PENDING
        successor = Booking(
            pet_owner_id=old.pet_owner_id,
            veterinarian_id=old.veterinarian_id,
            animal_id=old.animal_id,
            rescheduled_from=old.id,
            scheduled_date=new_date,
            time_slot_start=new_start,
            time_slot_end=new_end,
            status=new_status,
            booking_type=old.booking_type,
            priority=old.priority,
            reason_for_visit=old.reason_for_visit,
            symptoms=old.symptoms,
            notes=old.notes,
            confirmed_at=datetime.utcnow() if auto_confirm else None
        )
        self.session.add(successor)
        self.append_action_log(successor.id, BookingAction.RESCHEDULED, actor, BookingRescheduledDetails(
            old_booking_id=old.id,
            new_date=new_date,
            new_time_slot_start=new_start,
            new_time_slot_end=new_end,
            new_status=new_status,
            rescheduled_by=actor.user_id
        ))
        await self.session.commit()
        await self.session.refresh(successor)

        logger.info(
            f"Booking rescheduled | old={booking_id} new={successor.id} "
            f"status={new_status} role={actor.role}"
        )
        return successor

    async def complete_booking(self, booking_id: UUID) -> Booking:
        booking = await self._transition(booking_id, BookingStatus.COMPLETED)
        await self.session.commit()
        await self.session.refresh(booking)
        logger.info(f"Booking completed | id={booking_id}")
        return booking

    async def complete_for_consultation(self, consultation_id: UUID) -> Booking | None:
        booking = await self.get_by_consultation(consultation_id)
        if booking is None:
            return None
        if booking.status != BookingStatus.CONFIRMED:
            logger.info(f"Booking {booking.id} left as '{booking.status}' after consultation {consultation_id} ended")
            return booking
        return await self.complete_booking(booking.id)

    async def list_bookings(self, actor: Actor, status: Optional[str] = None,
                            limit: int = 10, offset: int = 0) -> tuple[List[Booking], int]:
        await self.mark_missed_bookings()

        filters = []
        if actor.role == "pet_owner":
            filters.append(Booking.pet_owner_id == actor.user_id)
        elif actor.role == "veterinarian":
            filters.append(Booking.veterinarian_id == actor.user_id)
        if status:
            filters.append(Booking.status == status)

        count_stmt = select(func.count()).select_from(Booking).where(*filters)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Booking)
            .where(*filters)
            .order_by(Booking.scheduled_date.desc(), Booking.time_slot_start.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all(), total

    async def list_action_log(self, booking_id: UUID) -> List[ActionLogEntry]:
        await self.get_booking(booking_id)
        stmt = (
            select(BookingActionLog)
            .where(BookingActionLog.booking_id == booking_id)
            .order_by(BookingActionLog.created_at, BookingActionLog.seq)
        )
        result = await self.session.execute(stmt)
        return action_log_adapter.validate_python([row.model_dump() for row in result.scalars().all()])

    async def list_actor_action_logs(self, actor: Actor, limit: int = 50, offset: int = 0) -> List[ActionLogEntry]:
        stmt = select(BookingActionLog).join(Booking, Booking.id == BookingActionLog.booking_id)
        if not actor.is_admin:
            stmt = stmt.where(or_(
                Booking.pet_owner_id == actor.user_id,
                Booking.veterinarian_id == actor.user_id
            ))
        stmt = stmt.order_by(BookingActionLog.created_at.desc(), BookingActionLog.seq.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return action_log_adapter.validate_python([row.model_dump() for row in result.scalars().all()])
