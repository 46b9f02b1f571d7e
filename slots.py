"""
Slot generation for the visit booking calendar.

Visits last one hour. For a given date the open hours come from the weekly
configuration row whose ``day_of_week`` matches the date (0 = Sunday), and a
slot is offered unless a live booking already starts at that time or, when the
date is today, the slot has already started.

Everything here is pure: callers read the configuration and the bookings once,
pass them in, and get the same answer for the same inputs.
"""

import calendar
from datetime import date, datetime, time
from typing import Iterable, List, NamedTuple, Optional

from models import DayAvailability

SLOT_MINUTES = 60

OPEN = "open"
BOOKED = "booked"
PAST = "past"


class SlotCell(NamedTuple):
    time: str  # "HH:MM"
    state: str  # OPEN | BOOKED | PAST


def day_of_week(day: date) -> int:
    # date.weekday() is Monday = 0; the stored configuration uses Sunday = 0
    return (day.weekday() + 1) % 7


def find_day_config(
    target_date: date, availability: Iterable[DayAvailability]
) -> Optional[DayAvailability]:
    weekday = day_of_week(target_date)
    for config in availability:
        if config.day_of_week == weekday:
            return config
    return None


def format_slot(hours: int, minutes: int) -> str:
    return f"{hours:02d}:{minutes:02d}"


def slot_board(
    target_date: date,
    availability: Iterable[DayAvailability],
    booked_times: Iterable[time],
    now: datetime,
) -> List[SlotCell]:
    """Every slot of the day, each marked open, booked or past."""
    config = find_day_config(target_date, availability)
    if config is None or not config.is_available:
        return []

    # Stored times carry seconds ("14:00:00"); match at that granularity
    booked = {t.strftime("%H:%M:%S") for t in booked_times}
    is_today = target_date == now.date()
    current = (now.hour, now.minute)

    end = (config.end_time.hour, config.end_time.minute)
    hours, minutes = config.start_time.hour, config.start_time.minute

    cells = []
    # Only whole-hour steps from the opening time; any start before closing is offered
    while (hours, minutes) < end:
        label = format_slot(hours, minutes)

        if f"{label}:00" in booked:
            state = BOOKED
        elif is_today and (hours, minutes) <= current:
            state = PAST
        else:
            state = OPEN
        cells.append(SlotCell(label, state))

        minutes += SLOT_MINUTES
        hours += minutes // 60
        minutes = minutes % 60

    return cells


def generate_slots(
    target_date: date,
    availability: Iterable[DayAvailability],
    booked_times: Iterable[time],
    now: datetime,
) -> List[str]:
    """Bookable one-hour start times for ``target_date``, in order."""
    return [
        cell.time
        for cell in slot_board(target_date, availability, booked_times, now)
        if cell.state == OPEN
    ]


def bookable_dates(
    year: int,
    month: int,
    availability: Iterable[DayAvailability],
    today: date,
) -> List[date]:
    open_days = {c.day_of_week for c in availability if c.is_available}
    _, last_day = calendar.monthrange(year, month)

    days = (date(year, month, d) for d in range(1, last_day + 1))
    return [d for d in days if d >= today and day_of_week(d) in open_days]
