from enum import Enum
from typing import Optional
from datetime import date, datetime, time, timezone

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, text


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# completed and cancelled are terminal
ALLOWED_TRANSITIONS = {
    AppointmentStatus.scheduled: {AppointmentStatus.confirmed, AppointmentStatus.cancelled},
    AppointmentStatus.confirmed: {AppointmentStatus.completed, AppointmentStatus.cancelled},
    AppointmentStatus.completed: set(),
    AppointmentStatus.cancelled: set(),
}


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    role: str = Field(default="user")  # "user" | "admin"
    access_token: str = Field(index=True, unique=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    location: str = ""
    is_featured: bool = False


class DayAvailability(SQLModel, table=True):
    __tablename__ = "availability_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    day_of_week: int = Field(unique=True, index=True)  # 0 = Sunday
    start_time: time
    end_time: time
    is_available: bool = True


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # Database-level protection against double booking.
        # Cancelled rows are left out so they free their slot.
        Index(
            "unique_active_appointment_slot",
            "appointment_date",
            "start_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    appointment_date: date = Field(index=True)
    start_time: time
    end_time: time
    status: str = Field(
        default=AppointmentStatus.scheduled.value,
        sa_column=Column(String(16), nullable=False, index=True),
    )
    notes: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Favorite(SQLModel, table=True):
    __tablename__ = "user_favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="unique_user_favorite"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
