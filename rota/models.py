from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rota.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DayFieldsMixin:
    """Seven published day columns plus their ``draft_`` counterparts."""

    sunday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    monday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tuesday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    wednesday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    thursday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    friday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    saturday: Mapped[str | None] = mapped_column(String(64), nullable=True)

    draft_sunday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_monday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_tuesday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_wednesday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_thursday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_friday: Mapped[str | None] = mapped_column(String(64), nullable=True)
    draft_saturday: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("role IN ('manager', 'staff')", name="ck_profiles_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="staff")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    sessions = relationship("SessionRecord", back_populates="profile", cascade="all, delete-orphan")


class SessionRecord(Base):
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    profile = relationship("Profile", back_populates="sessions")


class StaffMember(DayFieldsMixin, Base):
    """A staff row; its day columns always hold the live current week."""

    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str | None] = mapped_column(String(120), nullable=True)
    terminal: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    display_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class WeeklySchedule(DayFieldsMixin, Base):
    """Any week other than the live one, pre-staged or archived.

    ``staff_id`` carries no foreign key. Rows of a removed staff member stay
    behind and reads skip them by joining against ``staff``.
    """

    __tablename__ = "weekly_schedules"
    __table_args__ = (
        UniqueConstraint("staff_id", "week_starting_date", name="uq_weekly_schedules_staff_week"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    staff_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    week_starting_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class MigrationRun(Base):
    __tablename__ = "migration_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    current_week_start: Mapped[date] = mapped_column(Date, nullable=False, unique=True, index=True)
    next_week_start: Mapped[date] = mapped_column(Date, nullable=False)
    staff_count: Mapped[int] = mapped_column(Integer, nullable=False)
    next_week_data_count: Mapped[int] = mapped_column(Integer, nullable=False)
    row_errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
