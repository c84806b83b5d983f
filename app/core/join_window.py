"""
Join-window evaluation for scheduled consultation slots.

A slot is joinable from ``window_minutes`` before its start until its end.
Dates are taken from the local interpretation of the scheduled date so an
ISO timestamp stored as UTC midnight does not shift to the previous day.
Anything that cannot be parsed fails open: letting a participant attempt to
join is preferred over silently blocking them.
"""
import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime, str]
TimeLike = Union[time, str]


def _local_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def _time_of_day(value: TimeLike) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def combine_slot(scheduled_date: DateLike, slot: TimeLike) -> datetime:
    """Naive local datetime for a slot boundary. Raises ValueError/TypeError."""
    return datetime.combine(_local_date(scheduled_date), _time_of_day(slot))


def join_opens_at(scheduled_date: DateLike, slot_start: TimeLike, window_minutes: int) -> Optional[datetime]:
    try:
        start = combine_slot(scheduled_date, slot_start)
    except (ValueError, TypeError):
        return None
    return start - timedelta(minutes=window_minutes)


def _local_now(now: Optional[datetime]) -> datetime:
    # Slots are naive local times
    now = now or datetime.now()
    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    return now


def is_joinable(
    scheduled_date: DateLike,
    slot_start: TimeLike,
    slot_end: TimeLike,
    window_minutes: int,
    now: Optional[datetime] = None,
) -> bool:
    if not window_minutes:
        return True
    try:
        start = combine_slot(scheduled_date, slot_start)
        end = combine_slot(scheduled_date, slot_end)
        opens_at = start - timedelta(minutes=window_minutes)
    except (ValueError, TypeError, OverflowError):
        return True

    now = _local_now(now)
    return opens_at <= now <= end


def minutes_until_join(
    scheduled_date: DateLike,
    slot_start: TimeLike,
    window_minutes: int,
    now: Optional[datetime] = None,
) -> int:
    """Whole minutes left before joining opens; 0 once open or unparsable."""
    opens_at = join_opens_at(scheduled_date, slot_start, window_minutes)
    if opens_at is None:
        return 0
    remaining = (opens_at - _local_now(now)).total_seconds()
    return max(0, math.ceil(remaining / 60))


def slot_has_ended(scheduled_date: DateLike, slot_end: TimeLike, now: Optional[datetime] = None) -> bool:
    try:
        end = combine_slot(scheduled_date, slot_end)
    except (ValueError, TypeError):
        return False
    return end <= _local_now(now)
