from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from functools import cmp_to_key
from typing import Iterable, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rota import weeks
from rota.models import StaffMember, WeeklySchedule, utcnow
from rota.shifts import (
    DAY_NAMES,
    draft_fields_for,
    draft_values,
    effective_shifts,
    empty_day_fields,
    has_pending_draft,
    published_fields_for,
    published_values,
    total_hours,
)

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ScheduleWriteError(Exception):
    """A single write against the row store failed and was rolled back."""

    def __init__(self, message: str, staff_id: int | None = None, week_start: date | None = None):
        super().__init__(message)
        self.message = message
        self.staff_id = staff_id
        self.week_start = week_start


class StaffNotFoundError(LookupError):
    def __init__(self, staff_id: int):
        super().__init__(f"Staff member {staff_id} not found")
        self.staff_id = staff_id


@dataclass
class CommitFailure:
    staff_id: int | None
    week_start: date | None
    message: str


@dataclass
class WeekRow:
    staff_id: int
    name: str
    role: str | None
    display_order: int | None
    shifts: list[str]
    published: list[str]
    loaded: list[str]

    @property
    def hours(self) -> float:
        return total_hours(self.shifts)

    @property
    def dirty(self) -> bool:
        return any(shift != published for shift, published in zip(self.shifts, self.published))

    @property
    def edited(self) -> bool:
        """Changed since it was read, even if back to the published value."""
        return self.shifts != self.loaded

    def copy(self) -> WeekRow:
        return replace(self, shifts=list(self.shifts), published=list(self.published), loaded=list(self.loaded))


def _compare_staff(a: StaffMember, b: StaffMember) -> int:
    if a.display_order is not None and b.display_order is not None:
        return a.display_order - b.display_order
    return a.id - b.id


def sort_staff(members: Iterable[StaffMember]) -> list[StaffMember]:
    return sorted(members, key=cmp_to_key(_compare_staff))


def upsert_weekly_schedule(db: Session, staff_id: int, week_start: date, values: dict[str, str | None]) -> None:
    """Insert or update the ``weekly_schedules`` row for ``(staff_id, week_start)``.

    Only the columns in ``values`` are written on conflict, so a draft-only
    upsert leaves the published columns untouched. Does not commit.
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upsert is not supported for the {dialect} dialect")
    stmt = insert(WeeklySchedule).values(staff_id=staff_id, week_starting_date=week_start, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["staff_id", "week_starting_date"],
        set_={**values, "updated_at": utcnow()},
    )
    db.execute(stmt)


class ScheduleStore:
    """Draft and published shifts per staff member per week.

    The live week is held on the ``staff`` rows themselves, every other week
    in ``weekly_schedules``. Which week is live is recomputed from the clock
    on each call; ``as_of`` pins the date for callers that need to.
    """

    def __init__(self, db: Session):
        self.db = db

    def _is_live(self, week_start: date, as_of: date | None) -> bool:
        return weeks.is_current_week(week_start, as_of)

    def list_staff(self, terminal: int) -> list[StaffMember]:
        members = self.db.scalars(
            select(StaffMember)
            .where(StaffMember.terminal == terminal)
            .execution_options(populate_existing=True)
        ).all()
        return sort_staff(members)

    def get_staff(self, staff_id: int) -> StaffMember:
        member = self.db.get(StaffMember, staff_id)
        if member is None:
            raise StaffNotFoundError(staff_id)
        return member

    def add_staff(self, name: str, terminal: int, role: str | None = None) -> StaffMember:
        member = StaffMember(name=name.strip(), role=role, terminal=terminal)
        self.db.add(member)
        self.db.commit()
        self.db.refresh(member)
        logger.info("Added staff %s to terminal %s", member.id, terminal)
        return member

    def update_staff(
        self,
        staff_id: int,
        name: str | None = None,
        role: str | None = None,
        terminal: int | None = None,
    ) -> StaffMember:
        member = self.get_staff(staff_id)
        if name is not None:
            member.name = name.strip()
        if role is not None:
            member.role = role
        if terminal is not None:
            member.terminal = terminal
        self.db.commit()
        self.db.refresh(member)
        return member

    def remove_staff(self, staff_id: int) -> None:
        member = self.get_staff(staff_id)
        self.db.delete(member)
        self.db.commit()
        logger.info("Removed staff %s", staff_id)

    def purge_orphans(self) -> int:
        result = self.db.execute(
            delete(WeeklySchedule).where(WeeklySchedule.staff_id.not_in(select(StaffMember.id)))
        )
        self.db.commit()
        removed = int(result.rowcount or 0)
        if removed:
            logger.info("Purged %s orphaned weekly schedule rows", removed)
        return removed

    def _records_for_week(self, week_start: date, staff_ids: Sequence[int]) -> list[WeeklySchedule]:
        if not staff_ids:
            return []
        return list(
            self.db.scalars(
                select(WeeklySchedule).where(
                    WeeklySchedule.week_starting_date == week_start,
                    WeeklySchedule.staff_id.in_(staff_ids),
                )
                .execution_options(populate_existing=True)
            ).all()
        )

    def load_week(
        self,
        terminal: int,
        week_start: date,
        manager_view: bool = True,
        as_of: date | None = None,
    ) -> list[WeekRow]:
        week_start = weeks.week_start_of(week_start)
        members = self.list_staff(terminal)
        if self._is_live(week_start, as_of):
            sources = {member.id: member for member in members}
        else:
            records = self._records_for_week(week_start, [member.id for member in members])
            sources = {record.staff_id: record for record in records}

        rows = []
        for member in members:
            source = sources.get(member.id)
            if source is None:
                published = [None] * len(DAY_NAMES)
                draft = [None] * len(DAY_NAMES)
            else:
                published = published_values(source)
                draft = draft_values(source)
            shifts = effective_shifts(published, draft, manager_view=manager_view)
            rows.append(
                WeekRow(
                    staff_id=member.id,
                    name=member.name,
                    role=member.role,
                    display_order=member.display_order,
                    shifts=shifts,
                    published=[value or "" for value in published],
                    loaded=list(shifts),
                )
            )
        return rows

    def _write_week(self, staff_id: int, week_start: date, values: dict[str, str | None], as_of: date | None) -> None:
        week_start = weeks.week_start_of(week_start)
        member = self.get_staff(staff_id)
        try:
            if self._is_live(week_start, as_of):
                for column, value in values.items():
                    setattr(member, column, value)
            else:
                upsert_weekly_schedule(self.db, staff_id, week_start, values)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ScheduleWriteError(str(exc), staff_id=staff_id, week_start=week_start) from exc

    def save_draft(self, staff_id: int, week_start: date, shifts: Sequence[str | None], as_of: date | None = None) -> None:
        self._write_week(staff_id, week_start, draft_fields_for(shifts), as_of)

    def publish(self, staff_id: int, week_start: date, shifts: Sequence[str | None], as_of: date | None = None) -> None:
        values = {**draft_fields_for(shifts), **published_fields_for(shifts)}
        self._write_week(staff_id, week_start, values, as_of)

    def clear_week(self, terminal: int, week_start: date, as_of: date | None = None) -> int:
        """Blank every shift of ``terminal`` for the week.

        The live week keeps its ``staff`` rows and nulls their day columns;
        any other week has its ``weekly_schedules`` rows deleted.
        """
        week_start = weeks.week_start_of(week_start)
        terminal_staff = select(StaffMember.id).where(StaffMember.terminal == terminal)
        try:
            if self._is_live(week_start, as_of):
                result = self.db.execute(
                    update(StaffMember).where(StaffMember.terminal == terminal).values(**empty_day_fields())
                )
            else:
                result = self.db.execute(
                    delete(WeeklySchedule).where(
                        WeeklySchedule.week_starting_date == week_start,
                        WeeklySchedule.staff_id.in_(terminal_staff),
                    )
                )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ScheduleWriteError(str(exc), week_start=week_start) from exc
        cleared = int(result.rowcount or 0)
        logger.info("Cleared %s rows for terminal %s week %s", cleared, terminal, week_start)
        return cleared

    def reorder(self, terminal: int, staff_ids: Sequence[int]) -> list[CommitFailure]:
        # Row by row; a failure leaves the list partially reordered.
        failures = []
        for position, staff_id in enumerate(staff_ids):
            try:
                self.db.execute(
                    update(StaffMember)
                    .where(StaffMember.id == staff_id, StaffMember.terminal == terminal)
                    .values(display_order=position)
                )
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Error updating display order for staff %s", staff_id)
                failures.append(CommitFailure(staff_id=staff_id, week_start=None, message=str(exc)))
        return failures

    def unpublished_weeks(self, terminal: int, as_of: date | None = None) -> set[date]:
        """Weeks of ``terminal`` holding a saved draft that differs from what is published."""
        live_week = weeks.week_start_of(as_of or weeks.today())
        members = self.list_staff(terminal)
        found: set[date] = set()
        if any(has_pending_draft(published_values(m), draft_values(m)) for m in members):
            found.add(live_week)

        staff_ids = [member.id for member in members]
        if not staff_ids:
            return found
        records = self.db.scalars(
            select(WeeklySchedule)
            .where(WeeklySchedule.staff_id.in_(staff_ids))
            .execution_options(populate_existing=True)
        ).all()
        for record in records:
            # A row keyed at the live week is an archive copy; the staff rows win.
            if record.week_starting_date == live_week:
                continue
            if has_pending_draft(published_values(record), draft_values(record)):
                found.add(record.week_starting_date)
        return found
