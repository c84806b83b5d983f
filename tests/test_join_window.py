from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.join_window import is_joinable, join_opens_at, minutes_until_join, slot_has_ended

DAY = date(2026, 3, 14)
START = datetime(2026, 3, 14, 10, 0)
END = datetime(2026, 3, 14, 10, 30)


def test_closed_before_window_and_open_inside_it():
    assert not is_joinable(DAY, "10:00", "10:30", 5, START - timedelta(minutes=10))
    assert is_joinable(DAY, "10:00", "10:30", 5, START - timedelta(minutes=4))
    assert is_joinable(DAY, "10:00", "10:30", 5, START - timedelta(minutes=5))


def test_open_until_slot_end_inclusive():
    assert is_joinable(DAY, "10:00", "10:30", 5, END)
    assert not is_joinable(DAY, "10:00", "10:30", 5, END + timedelta(seconds=1))


def test_monotonic_between_open_and_end():
    opens = START - timedelta(minutes=15)
    seen_open = False
    moment = opens - timedelta(minutes=30)
    while moment <= END:
        joinable = is_joinable(DAY, "10:00", "10:30", 15, moment)
        if moment < opens:
            assert not joinable
        else:
            assert joinable
        if seen_open:
            assert joinable
        seen_open = seen_open or joinable
        moment += timedelta(minutes=1)
    assert seen_open


@pytest.mark.parametrize("scheduled_date, start, end", [
    ("not-a-date", "10:00", "10:30"),
    (DAY, "ten o'clock", "10:30"),
    (DAY, "10:00", None),
    (None, None, None),
    ("2026-02-30", "10:00", "10:30"),
])
def test_unparsable_input_fails_open(scheduled_date, start, end):
    assert is_joinable(scheduled_date, start, end, 5, START - timedelta(days=30)) is True


def test_zero_window_is_always_open():
    assert is_joinable(DAY, "10:00", "10:30", 0, START - timedelta(days=2))
    assert is_joinable(DAY, "10:00", "10:30", 0, END + timedelta(days=2))


def test_string_and_iso_dates_use_local_calendar_day():
    assert is_joinable("2026-03-14", "10:00", "10:30", 5, START)
    assert is_joinable("2026-03-14T00:00:00", "10:00:00", "10:30:00", 5, START)
    local_midnight = datetime(2026, 3, 14).astimezone()
    assert is_joinable(local_midnight.astimezone(timezone.utc).isoformat(), "10:00", "10:30", 5, START)


def test_join_opens_at_and_wait_minutes():
    assert join_opens_at(DAY, "10:00", 5) == START - timedelta(minutes=5)
    assert join_opens_at("garbage", "10:00", 5) is None
    assert minutes_until_join(DAY, "10:00", 5, START - timedelta(minutes=10)) == 5
    assert minutes_until_join(DAY, "10:00", 5, START - timedelta(minutes=9, seconds=30)) == 5
    assert minutes_until_join(DAY, "10:00", 5, START) == 0


def test_slot_has_ended():
    assert not slot_has_ended(DAY, "10:30", END - timedelta(minutes=1))
    assert slot_has_ended(DAY, "10:30", END)
    assert not slot_has_ended(DAY, "bogus", END)


def test_aware_now_is_read_as_local_time():
    ten_before = (START - timedelta(minutes=10)).astimezone()
    assert minutes_until_join(DAY, "10:00", 5, ten_before) == 5
    assert minutes_until_join(DAY, "10:00", 5, ten_before.astimezone(timezone.utc)) == 5
    assert not is_joinable(DAY, "10:00", "10:30", 5, ten_before.astimezone(timezone.utc))
    assert slot_has_ended(DAY, "10:30", END.astimezone(timezone.utc))
