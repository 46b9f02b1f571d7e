from __future__ import annotations

from datetime import date, datetime, time

import pytest

from models import DayAvailability
from slots import BOOKED, OPEN, PAST, bookable_dates, day_of_week, generate_slots, slot_board

MONDAY = date(2024, 1, 8)
LATER = datetime(2024, 1, 1, 12, 0)


def _day(weekday: int = 1, start: time = time(9, 0), end: time = time(17, 0), available: bool = True) -> DayAvailability:
    return DayAvailability(day_of_week=weekday, start_time=start, end_time=end, is_available=available)


def test_day_of_week_counts_from_sunday() -> None:
    assert day_of_week(date(2024, 1, 7)) == 0  # Sunday
    assert day_of_week(date(2024, 1, 8)) == 1  # Monday
    assert day_of_week(date(2024, 1, 13)) == 6  # Saturday


def test_monday_morning_window_yields_three_slots() -> None:
    config = _day(weekday=1, start=time(9, 0), end=time(12, 0))

    assert generate_slots(MONDAY, [config], [], LATER) == ["09:00", "10:00", "11:00"]


def test_disabled_day_yields_nothing() -> None:
    assert generate_slots(MONDAY, [_day(available=False)], [], LATER) == []


def test_missing_weekday_yields_nothing() -> None:
    tuesday_only = _day(weekday=2)

    assert generate_slots(MONDAY, [tuesday_only], [], LATER) == []
    assert generate_slots(MONDAY, [], [], LATER) == []


@pytest.mark.parametrize(
    ("start", "end"),
    [(time(9, 0), time(17, 0)), (time(8, 0), time(9, 0)), (time(0, 0), time(23, 0)), (time(13, 0), time(20, 0))],
)
def test_aligned_window_is_covered_hour_by_hour(start: time, end: time) -> None:
    slots = generate_slots(MONDAY, [_day(start=start, end=end)], [], LATER)

    assert len(slots) == end.hour - start.hour
    assert slots[0] == start.strftime("%H:%M")
    hours = [int(s[:2]) for s in slots]
    assert all(b - a == 1 for a, b in zip(hours, hours[1:]))
    assert all(s.endswith(":00") for s in slots)


def test_same_inputs_same_output() -> None:
    config = _day()
    booked = [time(11, 0)]

    first = generate_slots(MONDAY, [config], booked, LATER)
    second = generate_slots(MONDAY, [config], booked, LATER)

    assert first == second


def test_booked_slot_is_left_out() -> None:
    slots = generate_slots(MONDAY, [_day()], [time(14, 0)], LATER)

    assert "14:00" not in slots
    assert slots == ["09:00", "10:00", "11:00", "12:00", "13:00", "15:00", "16:00"]


def test_booking_matches_only_on_exact_start() -> None:
    # A booking at 14:30 does not sit on the 14:00 slot
    slots = generate_slots(MONDAY, [_day()], [time(14, 30)], LATER)

    assert "14:00" in slots


def test_today_hides_started_slots() -> None:
    today = date(2024, 1, 8)
    now = datetime(2024, 1, 8, 10, 30)

    slots = generate_slots(today, [_day(end=time(13, 0))], [], now)

    assert slots == ["11:00", "12:00"]
    assert all(s > "10:30" for s in slots)


def test_today_hides_slot_starting_this_very_minute() -> None:
    today = date(2024, 1, 8)
    now = datetime(2024, 1, 8, 10, 0)

    assert generate_slots(today, [_day(end=time(12, 0))], [], now) == ["11:00"]


def test_past_filter_only_applies_to_today() -> None:
    # A late clock on another day does not hide anything
    evening = datetime(2024, 1, 1, 23, 0)

    assert generate_slots(MONDAY, [_day(end=time(12, 0))], [], evening) == ["09:00", "10:00", "11:00"]


def test_unaligned_end_offers_every_start_before_close() -> None:
    config = _day(start=time(9, 0), end=time(11, 30))

    assert generate_slots(MONDAY, [config], [], LATER) == ["09:00", "10:00", "11:00"]


def test_half_hour_start_keeps_its_minutes() -> None:
    config = _day(start=time(9, 30), end=time(12, 0))

    assert generate_slots(MONDAY, [config], [], LATER) == ["09:30", "10:30", "11:30"]


def test_half_hour_start_with_whole_hour_end() -> None:
    config = _day(start=time(9, 30), end=time(11, 0))

    assert generate_slots(MONDAY, [config], [], LATER) == ["09:30", "10:30"]


def test_inverted_window_yields_nothing() -> None:
    assert generate_slots(MONDAY, [_day(start=time(17, 0), end=time(9, 0))], [], LATER) == []


def test_board_marks_every_slot() -> None:
    today = date(2024, 1, 8)
    now = datetime(2024, 1, 8, 10, 15)

    board = slot_board(today, [_day(end=time(13, 0))], [time(12, 0)], now)

    assert [(c.time, c.state) for c in board] == [
        ("09:00", PAST),
        ("10:00", PAST),
        ("11:00", OPEN),
        ("12:00", BOOKED),
    ]


def test_bookable_dates_skip_closed_weekdays_and_the_past() -> None:
    mondays_only = [_day(weekday=1), _day(weekday=2, available=False)]

    dates = bookable_dates(2024, 1, mondays_only, today=date(2024, 1, 10))

    assert dates == [date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]


def test_bookable_dates_include_today() -> None:
    dates = bookable_dates(2024, 1, [_day(weekday=1)], today=date(2024, 1, 29))

    assert dates == [date(2024, 1, 29)]
