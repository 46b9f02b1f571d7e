import logging
from datetime import date, time
from typing import Any, List, Optional, Tuple

from sqlmodel import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AvailabilityNotFound, SlotAlreadyTaken, TransientBackendError
from models import Appointment, AppointmentStatus, DayAvailability, Favorite, Project, User

logger = logging.getLogger(__name__)

# SQLSTATE for unique_violation on PostgreSQL
UNIQUE_VIOLATION = "23505"

EDITABLE_AVAILABILITY_FIELDS = ("start_time", "end_time", "is_available")


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == UNIQUE_VIOLATION:
            return True
    # sqlite3 has no error codes on the exception, only the message
    return "UNIQUE constraint failed" in str(orig)


class Ledger:
    """Every read and write the scheduling code makes against the store.

    Failures other than a double booking come back as TransientBackendError,
    so callers never see driver exceptions.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _all(self, statement) -> List[Any]:
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as e:
            logger.error("Read failed: %s", e, exc_info=True)
            raise TransientBackendError() from e
        return list(result.all())

    async def _get(self, model, ident):
        try:
            return await self.session.get(model, ident)
        except SQLAlchemyError as e:
            logger.error("Lookup of %s %s failed: %s", model.__name__, ident, e, exc_info=True)
            raise TransientBackendError() from e

    async def _commit(self, obj) -> None:
        try:
            await self.session.commit()
            await self.session.refresh(obj)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Write failed: %s", e, exc_info=True)
            raise TransientBackendError() from e

    # --- Reads ---

    async def list_availability(self, enabled_only: bool = False) -> List[DayAvailability]:
        statement = select(DayAvailability).order_by(DayAvailability.day_of_week)
        if enabled_only:
            statement = statement.where(DayAvailability.is_available == True)  # noqa: E712
        return [row[0] for row in await self._all(statement)]

    async def list_booked_times(self, target_date: date) -> List[time]:
        statement = select(Appointment.start_time).where(
            Appointment.appointment_date == target_date,
            Appointment.status != AppointmentStatus.cancelled.value,
        )
        return [row[0] for row in await self._all(statement)]

    async def get_project(self, project_id: int) -> Optional[Project]:
        return await self._get(Project, project_id)

    async def get_booking(self, appointment_id: int) -> Optional[Appointment]:
        return await self._get(Appointment, appointment_id)

    async def list_projects(self) -> List[Project]:
        statement = select(Project).order_by(Project.is_featured.desc(), Project.name)
        return [row[0] for row in await self._all(statement)]

    async def list_upcoming(self, today: date) -> List[Tuple[Appointment, Optional[str], Optional[str]]]:
        statement = (
            select(Appointment, Project.name, User.email)
            .join(Project, Project.id == Appointment.project_id, isouter=True)
            .join(User, User.id == Appointment.user_id, isouter=True)
            .where(Appointment.appointment_date >= today)
            .order_by(Appointment.appointment_date, Appointment.start_time)
        )
        return [tuple(row) for row in await self._all(statement)]

    async def list_for_user(self, user_id: int) -> List[Tuple[Appointment, Optional[str]]]:
        statement = (
            select(Appointment, Project.name)
            .join(Project, Project.id == Appointment.project_id, isouter=True)
            .where(Appointment.user_id == user_id)
            .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        )
        return [tuple(row) for row in await self._all(statement)]

    async def get_booking_details(
        self, appointment_id: int
    ) -> Optional[Tuple[Appointment, Optional[str], Optional[str]]]:
        statement = (
            select(Appointment, Project.name, User.email)
            .join(Project, Project.id == Appointment.project_id, isouter=True)
            .join(User, User.id == Appointment.user_id, isouter=True)
            .where(Appointment.id == appointment_id)
        )
        rows = await self._all(statement)
        return tuple(rows[0]) if rows else None

    async def find_active_visit(self, user_id: int, project_id: int, target_date: date) -> Optional[Appointment]:
        statement = select(Appointment).where(
            Appointment.user_id == user_id,
            Appointment.project_id == project_id,
            Appointment.appointment_date == target_date,
            Appointment.status != AppointmentStatus.cancelled.value,
        )
        rows = await self._all(statement)
        return rows[0][0] if rows else None

    async def list_favorites(self, user_id: int) -> List[Tuple[Favorite, Project]]:
        statement = (
            select(Favorite, Project)
            .join(Project, Project.id == Favorite.project_id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        )
        return [tuple(row) for row in await self._all(statement)]

    async def get_favorite(self, user_id: int, project_id: int) -> Optional[Favorite]:
        statement = select(Favorite).where(Favorite.user_id == user_id, Favorite.project_id == project_id)
        rows = await self._all(statement)
        return rows[0][0] if rows else None

    # --- Writes ---

    async def add_favorite(self, favorite: Favorite) -> Favorite:
        user_id, project_id = favorite.user_id, favorite.project_id
        try:
            self.session.add(favorite)
            await self.session.commit()
            await self.session.refresh(favorite)
            return favorite
        except IntegrityError as e:
            await self.session.rollback()
            if not is_unique_violation(e):
                logger.error("Favorite insert rejected: %s", e, exc_info=True)
                raise TransientBackendError() from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Favorite insert failed: %s", e, exc_info=True)
            raise TransientBackendError() from e

        # Saved twice (double click, second tab): keep the first one
        return await self.get_favorite(user_id, project_id)

    async def remove_favorite(self, favorite: Favorite) -> None:
        try:
            await self.session.delete(favorite)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Favorite delete failed: %s", e, exc_info=True)
            raise TransientBackendError() from e

    async def add_project(self, project: Project) -> Project:
        self.session.add(project)
        await self._commit(project)
        return project

    async def _write_booking(self, booking: Appointment, action: str) -> Appointment:
        try:
            self.session.add(booking)
            await self.session.commit()
            await self.session.refresh(booking)
            return booking

        except IntegrityError as e:
            # The unique index on (date, start_time) is the only double booking guard
            await self.session.rollback()
            if is_unique_violation(e):
                raise SlotAlreadyTaken() from e
            logger.error("Booking %s rejected: %s", action, e, exc_info=True)
            raise TransientBackendError() from e

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Booking %s failed: %s", action, e, exc_info=True)
            raise TransientBackendError() from e

    async def insert_booking(self, booking: Appointment) -> Appointment:
        return await self._write_booking(booking, "insert")

    async def move_booking(self, booking: Appointment, target_date: date, start: time, end: time) -> Appointment:
        booking.appointment_date = target_date
        booking.start_time = start
        booking.end_time = end
        return await self._write_booking(booking, "move")

    async def update_booking_status(self, booking: Appointment, new_status: AppointmentStatus) -> Appointment:
        booking.status = new_status.value
        self.session.add(booking)
        await self._commit(booking)
        return booking

    async def update_availability_field(self, weekday: int, field: str, value) -> DayAvailability:
        if field not in EDITABLE_AVAILABILITY_FIELDS:
            raise ValueError(f"Unknown availability field: {field}")

        rows = await self._all(select(DayAvailability).where(DayAvailability.day_of_week == weekday))
        if not rows:
            raise AvailabilityNotFound()

        config = rows[0][0]
        setattr(config, field, value)
        self.session.add(config)
        await self._commit(config)
        return config
