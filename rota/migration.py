from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rota import weeks
from rota.models import MigrationRun, StaffMember, WeeklySchedule
from rota.shifts import day_fields_of, empty_day_fields
from rota.store import upsert_weekly_schedule

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Weekly migration completed successfully"
ALREADY_COMPLETED_MESSAGE = "Weekly migration already completed for this week"


class MigrationError(Exception):
    """The rollover could not run at all (not a single-row failure)."""


@dataclass
class MigrationResult:
    current_week_start: date
    next_week_start: date
    staff_count: int
    next_week_data_count: int
    row_errors: int = 0
    already_completed: bool = False
    message: str = COMPLETED_MESSAGE

    def as_payload(self) -> dict:
        return {
            "success": True,
            "message": self.message,
            "currentWeekStart": self.current_week_start.isoformat(),
            "nextWeekStart": self.next_week_start.isoformat(),
            "staffCount": self.staff_count,
            "nextWeekDataCount": self.next_week_data_count,
        }


@dataclass
class WeekSummary:
    week_starting_date: date
    staff_count: int


@dataclass
class MigrationStatus:
    current_week_start: date
    next_week_start: date
    staff_count: int
    next_week_data_count: int
    weeks: list[WeekSummary] = field(default_factory=list)
    runs: list[MigrationRun] = field(default_factory=list)


def _result_from_run(run: MigrationRun) -> MigrationResult:
    return MigrationResult(
        current_week_start=run.current_week_start,
        next_week_start=run.next_week_start,
        staff_count=run.staff_count,
        next_week_data_count=run.next_week_data_count,
        row_errors=run.row_errors,
        already_completed=True,
        message=ALREADY_COMPLETED_MESSAGE,
    )


def run_migration(db: Session, as_of: date | None = None) -> MigrationResult:
    """Roll the live week over.

    1. archive every staff row's day columns into ``weekly_schedules`` at the
       current week start (upsert, so a re-run overwrites),
    2. copy next week's staged rows onto the staff rows, blanking staff with
       nothing staged,
    3. delete the staged rows for next week.

    Single-row failures are logged and skipped. Failing to read the staff
    list or the staged week raises ``MigrationError``. A week that already
    has a recorded run is not rolled again.
    """
    current_week_start = weeks.week_start_of(as_of or weeks.today())
    next_week_start = current_week_start + timedelta(days=7)
    logger.info("Starting weekly migration: current week %s, next week %s", current_week_start, next_week_start)

    try:
        previous = db.scalar(select(MigrationRun).where(MigrationRun.current_week_start == current_week_start))
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationError(f"Error reading migration history: {exc}") from exc
    if previous is not None:
        logger.info("Weekly migration for %s already ran at %s", current_week_start, previous.created_at)
        return _result_from_run(previous)

    try:
        staff = db.scalars(
            select(StaffMember).order_by(StaffMember.id).execution_options(populate_existing=True)
        ).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationError(f"Error fetching staff: {exc}") from exc
    snapshots = [(member.id, day_fields_of(member)) for member in staff]
    row_errors = 0

    logger.info("Step 1: archiving %s staff rows into week %s", len(snapshots), current_week_start)
    for staff_id, values in snapshots:
        try:
            upsert_weekly_schedule(db, staff_id, current_week_start, values)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            row_errors += 1
            logger.exception("Error archiving data for staff %s", staff_id)

    logger.info("Step 2: moving week %s into the live slot", next_week_start)
    try:
        staged_rows = db.scalars(
            select(WeeklySchedule)
            .where(WeeklySchedule.week_starting_date == next_week_start)
            .execution_options(populate_existing=True)
        ).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationError(f"Error fetching next week data: {exc}") from exc
    staged = {row.staff_id: day_fields_of(row) for row in staged_rows}

    for staff_id, _ in snapshots:
        values = staged.get(staff_id) or empty_day_fields()
        try:
            db.execute(update(StaffMember).where(StaffMember.id == staff_id).values(**values))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            row_errors += 1
            logger.exception("Error updating staff %s", staff_id)

    logger.info("Step 3: removing %s staged rows for week %s", len(staged_rows), next_week_start)
    try:
        db.execute(delete(WeeklySchedule).where(WeeklySchedule.week_starting_date == next_week_start))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        row_errors += 1
        logger.exception("Error deleting next week data from weekly_schedules")

    result = MigrationResult(
        current_week_start=current_week_start,
        next_week_start=next_week_start,
        staff_count=len(snapshots),
        next_week_data_count=len(staged_rows),
        row_errors=row_errors,
    )
    try:
        db.add(
            MigrationRun(
                current_week_start=current_week_start,
                next_week_start=next_week_start,
                staff_count=result.staff_count,
                next_week_data_count=result.next_week_data_count,
                row_errors=row_errors,
                message=result.message,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise MigrationError(f"Error recording migration run: {exc}") from exc

    logger.info(
        "Weekly migration completed: %s staff, %s staged rows, %s row errors",
        result.staff_count,
        result.next_week_data_count,
        row_errors,
    )
    return result


def migration_status(db: Session, as_of: date | None = None, run_limit: int = 10) -> MigrationStatus:
    current_week_start = weeks.week_start_of(as_of or weeks.today())
    next_week_start = current_week_start + timedelta(days=7)
    live_staff = select(StaffMember.id)

    staff_count = db.scalar(select(func.count(StaffMember.id))) or 0
    next_week_data_count = (
        db.scalar(
            select(func.count(WeeklySchedule.id)).where(
                WeeklySchedule.week_starting_date == next_week_start,
                WeeklySchedule.staff_id.in_(live_staff),
            )
        )
        or 0
    )
    week_rows = db.execute(
        select(WeeklySchedule.week_starting_date, func.count(WeeklySchedule.id))
        .where(WeeklySchedule.staff_id.in_(live_staff))
        .group_by(WeeklySchedule.week_starting_date)
        .order_by(WeeklySchedule.week_starting_date)
    ).all()
    runs = db.scalars(
        select(MigrationRun).order_by(MigrationRun.created_at.desc(), MigrationRun.id.desc()).limit(run_limit)
    ).all()
    return MigrationStatus(
        current_week_start=current_week_start,
        next_week_start=next_week_start,
        staff_count=int(staff_count),
        next_week_data_count=int(next_week_data_count),
        weeks=[WeekSummary(week_starting_date=week, staff_count=int(count)) for week, count in week_rows],
        runs=list(runs),
    )
