import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from errors import (
    AppointmentNotFound,
    FavoriteNotFound,
    InvalidSelection,
    InvalidTransition,
    NotAuthenticated,
    NotReschedulable,
    ProjectNotFound,
    SlotAlreadyTaken,
    TransientBackendError,
    VisitAlreadyScheduled,
)
from ledger import Ledger
from models import ALLOWED_TRANSITIONS, Appointment, AppointmentStatus, Favorite, User
from slots import SLOT_MINUTES, SlotCell, bookable_dates, generate_slots, slot_board

logger = logging.getLogger(__name__)

# A visit can still be moved to another time while it is in one of these
RESCHEDULABLE = {AppointmentStatus.scheduled, AppointmentStatus.confirmed}


@dataclass
class FieldResult:
    field: str
    ok: bool
    error: Optional[str] = None


async def day_slots(ledger: Ledger, target_date: date, now: datetime) -> Tuple[List[str], List[SlotCell]]:
    """Open start times and the marked board for one date, from one read pass.

    Staleness between this read and a later submit is settled by the unique index.
    """
    availability = await ledger.list_availability(enabled_only=True)
    booked = await ledger.list_booked_times(target_date)
    return (
        generate_slots(target_date, availability, booked, now),
        slot_board(target_date, availability, booked, now),
    )


async def open_dates(ledger: Ledger, year: int, month: int, today: date) -> List[date]:
    availability = await ledger.list_availability(enabled_only=True)
    return bookable_dates(year, month, availability, today)


def slot_end(target_date: date, start: time) -> time:
    return (datetime.combine(target_date, start) + timedelta(minutes=SLOT_MINUTES)).time()


async def submit_booking(
    ledger: Ledger,
    user: Optional[User],
    project_id: int,
    target_date: Optional[date],
    start_time: Optional[time],
    notes: Optional[str] = None,
    replace_existing: bool = False,
) -> Appointment:
    """Book one slot for a signed-in visitor.

    A visitor holds at most one live visit per project and day. A second pick
    that day is refused unless ``replace_existing`` is set, in which case the
    new slot is taken first and the old visit is cancelled only once it is held.
    """
    if user is None:
        raise NotAuthenticated()
    # Read before any write; a rollback expires loaded instances
    user_id = user.id

    if target_date is None or start_time is None:
        raise InvalidSelection()

    project = await ledger.get_project(project_id)
    if project is None:
        raise ProjectNotFound()

    start = start_time.replace(second=0, microsecond=0)

    existing = await ledger.find_active_visit(user_id, project_id, target_date)
    if existing is not None:
        existing_id, existing_start = existing.id, existing.start_time
        if not replace_existing:
            raise VisitAlreadyScheduled(existing_id, existing_start.strftime("%H:%M"))
        if existing_start == start:
            return existing

    booking = Appointment(
        user_id=user_id,
        project_id=project_id,
        appointment_date=target_date,
        start_time=start,
        end_time=slot_end(target_date, start),
        status=AppointmentStatus.scheduled.value,
        notes=notes,
    )

    try:
        booking = await ledger.insert_booking(booking)
    except SlotAlreadyTaken:
        logger.info("Slot %s %s already taken (user %s)", target_date, start.strftime("%H:%M"), user_id)
        raise

    logger.info(
        "Appointment %s scheduled: project %s on %s at %s for user %s",
        booking.id, project_id, target_date, start.strftime("%H:%M"), user_id,
    )

    if existing is not None:
        await ledger.update_booking_status(existing, AppointmentStatus.cancelled)
        logger.info("Appointment %s replaced by %s", existing_id, booking.id)
    return booking


async def reschedule_booking(
    ledger: Ledger,
    user: Optional[User],
    appointment_id: int,
    target_date: Optional[date],
    start_time: Optional[time],
) -> Appointment:
    if user is None:
        raise NotAuthenticated()
    user_id = user.id

    if target_date is None or start_time is None:
        raise InvalidSelection()

    booking = await ledger.get_booking(appointment_id)
    if booking is None or booking.user_id != user_id:
        raise AppointmentNotFound()
    if AppointmentStatus(booking.status) not in RESCHEDULABLE:
        raise NotReschedulable()

    start = start_time.replace(second=0, microsecond=0)
    if booking.appointment_date == target_date and booking.start_time == start:
        return booking

    previous = (booking.appointment_date, booking.start_time.strftime("%H:%M"))
    try:
        booking = await ledger.move_booking(booking, target_date, start, slot_end(target_date, start))
    except SlotAlreadyTaken:
        logger.info("Slot %s %s already taken (move of %s)", target_date, start.strftime("%H:%M"), appointment_id)
        raise

    logger.info(
        "Appointment %s moved from %s %s to %s %s",
        appointment_id, previous[0], previous[1], target_date, start.strftime("%H:%M"),
    )
    return booking


async def edit_availability(ledger: Ledger, weekday: int, changes: Dict[str, object]) -> List[FieldResult]:
    """Apply each changed field as its own write and report every field separately."""
    if not changes:
        raise InvalidSelection("Nothing to update.")

    results = []
    window = None
    for field, value in changes.items():
        try:
            config = await ledger.update_availability_field(weekday, field, value)
            window = (config.start_time, config.end_time, config.is_available)
        except TransientBackendError as e:
            results.append(FieldResult(field=field, ok=False, error=e.message))
            continue
        logger.info("Availability for day %s: %s set to %s", weekday, field, value)
        results.append(FieldResult(field=field, ok=True))

    # Inverted windows are accepted; they simply produce no slots
    if window is not None and window[2] and window[0] >= window[1]:
        logger.warning(
            "Availability for day %s opens at %s but closes at %s",
            weekday, window[0], window[1],
        )
    return results


async def change_status(
    ledger: Ledger,
    appointment_id: int,
    new_status: AppointmentStatus,
    owner_id: Optional[int] = None,
) -> Appointment:
    booking = await ledger.get_booking(appointment_id)
    # Someone else's appointment looks the same as a missing one
    if booking is None or (owner_id is not None and booking.user_id != owner_id):
        raise AppointmentNotFound()

    current = AppointmentStatus(booking.status)
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current.value, new_status.value)

    booking = await ledger.update_booking_status(booking, new_status)
    logger.info("Appointment %s moved from %s to %s", appointment_id, current.value, new_status.value)
    return booking


async def save_favorite(ledger: Ledger, user: User, project_id: int) -> Tuple[Favorite, str]:
    """Save a project to the visitor's favorites; saving it again is a no-op."""
    user_id = user.id
    project = await ledger.get_project(project_id)
    if project is None:
        raise ProjectNotFound()
    project_name = project.name

    favorite = await ledger.add_favorite(Favorite(user_id=user_id, project_id=project_id))
    logger.info("Project %s saved to favorites of user %s", project_id, user_id)
    return favorite, project_name


async def drop_favorite(ledger: Ledger, user: User, project_id: int) -> None:
    favorite = await ledger.get_favorite(user.id, project_id)
    if favorite is None:
        raise FavoriteNotFound()
    await ledger.remove_favorite(favorite)
