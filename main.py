import logging
from datetime import date, datetime, time
from typing import List, Optional

from fastapi import FastAPI, Depends, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

import appointments
from auth import get_current_user, require_admin, require_user
from config import CORS_ORIGINS, LOG_LEVEL, SITE_TIMEZONE
from database import init_db, get_session
from errors import AppointmentError
from ledger import Ledger
from models import Appointment, AppointmentStatus, DayAvailability, Project, User

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Development Visits")


# Pydantic Schemas for Request/Response
class ProjectCreate(BaseModel):
    name: str
    location: str = ""
    is_featured: bool = False


class ProjectRead(BaseModel):
    id: int
    name: str
    location: str
    is_featured: bool


class AvailabilityRead(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool


class AvailabilityUpdate(BaseModel):
    # Omit a field to leave it alone; an explicit null is not a value
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_available: Optional[bool] = None

    @field_validator("start_time", "end_time", "is_available")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


class FieldUpdateStatus(BaseModel):
    field: str
    ok: bool
    error: Optional[str] = None


class AvailabilityUpdateResult(BaseModel):
    day_of_week: int
    results: List[FieldUpdateStatus]


class SlotStatus(BaseModel):
    time: str
    state: str


class DaySlots(BaseModel):
    target_date: date
    slots: List[str]
    board: List[SlotStatus]


class BookingCreate(BaseModel):
    project_id: int
    # Left optional so a missing pick is answered as an invalid selection
    appointment_date: Optional[date] = None
    start_time: Optional[time] = None
    notes: Optional[str] = None
    # Set once the visitor confirms swapping their visit that day for this one
    replace_existing: bool = False


class BookingMove(BaseModel):
    appointment_date: Optional[date] = None
    start_time: Optional[time] = None


class FavoriteCreate(BaseModel):
    project_id: int


class FavoriteRead(BaseModel):
    project_id: int
    project_name: str
    created_at: datetime


class StatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentRead(BaseModel):
    id: int
    project_id: int
    project_name: Optional[str] = None
    user_id: int
    user_email: Optional[str] = None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    notes: Optional[str] = None


def get_now() -> datetime:
    # Wall clock of the site; "today" and past slots are judged against it
    return datetime.now(SITE_TIMEZONE)


def get_ledger(session: AsyncSession = Depends(get_session)) -> Ledger:
    return Ledger(session)


def _availability(config: DayAvailability) -> AvailabilityRead:
    return AvailabilityRead(
        day_of_week=config.day_of_week,
        start_time=config.start_time,
        end_time=config.end_time,
        is_available=config.is_available,
    )


def _appointment(
    booking: Appointment,
    project_name: Optional[str] = None,
    user_email: Optional[str] = None,
) -> AppointmentRead:
    return AppointmentRead(
        id=booking.id,
        project_id=booking.project_id,
        project_name=project_name,
        user_id=booking.user_id,
        user_email=user_email,
        appointment_date=booking.appointment_date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=booking.status,
        notes=booking.notes,
    )


async def _appointment_details(ledger: Ledger, appointment_id: int) -> AppointmentRead:
    booking, project_name, user_email = await ledger.get_booking_details(appointment_id)
    return _appointment(booking, project_name, user_email)


@app.on_event("startup")
async def on_startup():
    await init_db()


@app.exception_handler(AppointmentError)
async def appointment_error_handler(request: Request, exc: AppointmentError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- Projects ---
@app.get("/projects", response_model=List[ProjectRead])
async def list_projects(ledger: Ledger = Depends(get_ledger)):
    projects = await ledger.list_projects()
    return [ProjectRead(**p.model_dump()) for p in projects]


@app.post("/admin/projects", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    admin: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
):
    project = await ledger.add_project(Project(**data.model_dump()))
    logger.info("Project %s created by %s", project.id, admin.email)
    return ProjectRead(**project.model_dump())


# --- Public availability ---
@app.get("/availability", response_model=List[AvailabilityRead])
async def list_open_days(ledger: Ledger = Depends(get_ledger)):
    configs = await ledger.list_availability(enabled_only=True)
    return [_availability(c) for c in configs]


@app.get("/availability/dates", response_model=List[date])
async def list_open_dates(
    year: int = Query(ge=1, le=9999),
    month: int = Query(ge=1, le=12),
    ledger: Ledger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    return await appointments.open_dates(ledger, year, month, now.date())


@app.get("/availability/slots", response_model=DaySlots)
async def list_slots(
    target_date: date,
    ledger: Ledger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    slots, board = await appointments.day_slots(ledger, target_date, now)
    return DaySlots(
        target_date=target_date,
        slots=slots,
        board=[SlotStatus(time=cell.time, state=cell.state) for cell in board],
    )


# --- Booking ---
@app.post("/appointments", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
async def book_visit(
    booking_data: BookingCreate,
    user: Optional[User] = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
):
    booking = await appointments.submit_booking(
        ledger,
        user,
        booking_data.project_id,
        booking_data.appointment_date,
        booking_data.start_time,
        notes=booking_data.notes,
        replace_existing=booking_data.replace_existing,
    )
    return await _appointment_details(ledger, booking.id)


# --- Profile ---
@app.get("/me/appointments", response_model=List[AppointmentRead])
async def my_appointments(
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    rows = await ledger.list_for_user(user.id)
    return [_appointment(booking, project_name, user.email) for booking, project_name in rows]


@app.post("/me/appointments/{appointment_id}/cancel", response_model=AppointmentRead)
async def cancel_my_appointment(
    appointment_id: int,
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    booking = await appointments.change_status(
        ledger, appointment_id, AppointmentStatus.cancelled, owner_id=user.id
    )
    return await _appointment_details(ledger, booking.id)


@app.patch("/me/appointments/{appointment_id}", response_model=AppointmentRead)
async def reschedule_my_appointment(
    appointment_id: int,
    move: BookingMove,
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    booking = await appointments.reschedule_booking(
        ledger, user, appointment_id, move.appointment_date, move.start_time
    )
    return await _appointment_details(ledger, booking.id)


# --- Favorites ---
@app.get("/me/favorites", response_model=List[FavoriteRead])
async def my_favorites(
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    rows = await ledger.list_favorites(user.id)
    return [
        FavoriteRead(project_id=project.id, project_name=project.name, created_at=favorite.created_at)
        for favorite, project in rows
    ]


@app.post("/me/favorites", response_model=FavoriteRead, status_code=status.HTTP_201_CREATED)
async def add_favorite(
    data: FavoriteCreate,
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    favorite, project_name = await appointments.save_favorite(ledger, user, data.project_id)
    return FavoriteRead(project_id=favorite.project_id, project_name=project_name, created_at=favorite.created_at)


@app.delete("/me/favorites/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(
    project_id: int,
    user: User = Depends(require_user),
    ledger: Ledger = Depends(get_ledger),
):
    await appointments.drop_favorite(ledger, user, project_id)


# --- Admin: availability ---
@app.get("/admin/availability", response_model=List[AvailabilityRead])
async def list_all_days(
    admin: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
):
    configs = await ledger.list_availability()
    return [_availability(c) for c in configs]


@app.patch("/admin/availability/{day_of_week}", response_model=AvailabilityUpdateResult)
async def update_day(
    changes: AvailabilityUpdate,
    day_of_week: int = Path(ge=0, le=6),
    admin: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
):
    results = await appointments.edit_availability(
        ledger, day_of_week, changes.model_dump(exclude_unset=True)
    )
    return AvailabilityUpdateResult(
        day_of_week=day_of_week,
        results=[FieldUpdateStatus(field=r.field, ok=r.ok, error=r.error) for r in results],
    )


# --- Admin: appointments ---
@app.get("/admin/appointments", response_model=List[AppointmentRead])
async def list_upcoming_appointments(
    admin: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    rows = await ledger.list_upcoming(now.date())
    return [_appointment(booking, project_name, email) for booking, project_name, email in rows]


@app.patch("/admin/appointments/{appointment_id}", response_model=AppointmentRead)
async def update_appointment_status(
    appointment_id: int,
    update: StatusUpdate,
    admin: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
):
    booking = await appointments.change_status(ledger, appointment_id, update.status)
    logger.info("Appointment %s set to %s by %s", appointment_id, update.status.value, admin.email)
    return await _appointment_details(ledger, booking.id)


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
