from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from rota import weeks
from rota.shifts import DAY_NAMES
from rota.store import CommitFailure, ScheduleStore, ScheduleWriteError, StaffNotFoundError, WeekRow

logger = logging.getLogger(__name__)


@dataclass
class CommitReport:
    weeks: list[date] = field(default_factory=list)
    rows_written: int = 0
    failures: list[CommitFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _clone(rows: list[WeekRow]) -> list[WeekRow]:
    return [row.copy() for row in rows]


class EditBuffer:
    """A manager's unsaved shift edits for one terminal, across weeks.

    ``rows`` is the week on screen. Leaving a week with unsaved changes parks
    a copy in ``pending`` and coming back shows that copy instead of a fresh
    read, so edits survive browsing other weeks. Nothing here is persisted
    until ``save_all`` or ``publish_all`` runs.
    """

    def __init__(self, terminal: int):
        self.terminal = terminal
        self.week_start: date | None = None
        self.rows: list[WeekRow] = []
        self.pending: dict[date, list[WeekRow]] = {}

    @property
    def has_unsaved_changes(self) -> bool:
        return any(row.dirty for row in self.rows)

    @property
    def has_local_edits(self) -> bool:
        return any(row.edited for row in self.rows)

    @property
    def pending_weeks(self) -> list[date]:
        return sorted(self.pending)

    def open(self, store: ScheduleStore, week_start: date | None = None, as_of: date | None = None) -> list[WeekRow]:
        target = weeks.week_start_of(week_start or as_of or weeks.today())
        self.week_start = target
        snapshot = self.pending.get(target)
        if snapshot is not None:
            self.rows = _clone(snapshot)
        else:
            self.rows = store.load_week(self.terminal, target, manager_view=True, as_of=as_of)
        return self.rows

    def _stash(self) -> None:
        if self.week_start is None:
            return
        if self.has_local_edits:
            self.pending[self.week_start] = _clone(self.rows)
        else:
            self.pending.pop(self.week_start, None)

    def navigate(self, store: ScheduleStore, week_start: date, as_of: date | None = None) -> list[WeekRow]:
        self._stash()
        return self.open(store, week_start, as_of=as_of)

    def previous_week(self, store: ScheduleStore, as_of: date | None = None) -> list[WeekRow]:
        anchor = self.week_start or weeks.week_start_of(as_of or weeks.today())
        return self.navigate(store, anchor - timedelta(days=7), as_of=as_of)

    def next_week(self, store: ScheduleStore, as_of: date | None = None) -> list[WeekRow]:
        anchor = self.week_start or weeks.week_start_of(as_of or weeks.today())
        return self.navigate(store, anchor + timedelta(days=7), as_of=as_of)

    def current_week(self, store: ScheduleStore, as_of: date | None = None) -> list[WeekRow]:
        return self.navigate(store, as_of or weeks.today(), as_of=as_of)

    def set_shift(self, staff_id: int, day_index: int, value: str | None) -> WeekRow:
        if self.week_start is None:
            raise RuntimeError("No week is open")
        if not 0 <= day_index < len(DAY_NAMES):
            raise ValueError(f"day_index must be between 0 and {len(DAY_NAMES) - 1}")
        for row in self.rows:
            if row.staff_id == staff_id:
                row.shifts[day_index] = (value or "").strip()
                return row
        raise StaffNotFoundError(staff_id)

    def refresh(self, store: ScheduleStore, as_of: date | None = None) -> bool:
        """Re-read the week on screen unless there are local edits."""
        if self.week_start is None or self.has_local_edits:
            return False
        self.rows = store.load_week(self.terminal, self.week_start, manager_view=True, as_of=as_of)
        return True

    def poll(self, store: ScheduleStore, as_of: date | None = None) -> bool:
        if self.week_start is None or not weeks.is_current_week(self.week_start, as_of):
            return False
        return self.refresh(store, as_of=as_of)

    def _weeks_to_commit(self) -> dict[date, list[WeekRow]]:
        commit = {week_start: rows for week_start, rows in self.pending.items()}
        if self.week_start is not None and (self.has_unsaved_changes or self.has_local_edits):
            commit[self.week_start] = self.rows
        return commit

    def _commit(self, store: ScheduleStore, batches: dict[date, list[WeekRow]], publish: bool, as_of: date | None) -> CommitReport:
        write = store.publish if publish else store.save_draft
        report = CommitReport()
        for week_start in sorted(batches):
            report.weeks.append(week_start)
            for row in batches[week_start]:
                try:
                    write(row.staff_id, week_start, row.shifts, as_of=as_of)
                except (ScheduleWriteError, StaffNotFoundError) as exc:
                    logger.warning("Could not write shifts for staff %s week %s: %s", row.staff_id, week_start, exc)
                    report.failures.append(CommitFailure(staff_id=row.staff_id, week_start=week_start, message=str(exc)))
                    continue
                row.loaded = list(row.shifts)
                report.rows_written += 1
        return report

    def _reload_keeping_failures(
        self,
        store: ScheduleStore,
        week_start: date,
        rows: list[WeekRow],
        failed_ids: set[int],
        as_of: date | None,
    ) -> list[WeekRow]:
        fresh = store.load_week(self.terminal, week_start, manager_view=True, as_of=as_of)
        unwritten = {row.staff_id: row.shifts for row in rows if row.staff_id in failed_ids}
        for row in fresh:
            if row.staff_id in unwritten:
                row.shifts = list(unwritten[row.staff_id])
        return fresh

    def save_all(self, store: ScheduleStore, as_of: date | None = None) -> CommitReport:
        """Write every buffered week into the draft columns.

        ``pending`` is kept: the drafts still have to be published.
        """
        report = self._commit(store, self._weeks_to_commit(), publish=False, as_of=as_of)
        logger.info(
            "Saved drafts for terminal %s: %s rows over %s weeks, %s failures",
            self.terminal,
            report.rows_written,
            len(report.weeks),
            len(report.failures),
        )
        return report

    def publish_all(self, store: ScheduleStore, as_of: date | None = None) -> CommitReport:
        """Publish every buffered week plus any week with a saved draft.

        Weeks that were fully written are reloaded from the store. A week
        with failed rows keeps those rows' edits so the publish can be
        retried.
        """
        batches = self._weeks_to_commit()
        # Pick up drafts saved earlier from another session or device.
        for week_start in store.unpublished_weeks(self.terminal, as_of=as_of):
            if week_start in batches:
                continue
            if week_start == self.week_start:
                batches[week_start] = self.rows
            else:
                batches[week_start] = store.load_week(self.terminal, week_start, manager_view=True, as_of=as_of)

        report = self._commit(store, batches, publish=True, as_of=as_of)
        failed: dict[date, set[int]] = {}
        for failure in report.failures:
            failed.setdefault(failure.week_start, set()).add(failure.staff_id)

        self.pending.clear()
        for week_start, staff_ids in failed.items():
            if week_start != self.week_start:
                self.pending[week_start] = self._reload_keeping_failures(
                    store, week_start, batches[week_start], staff_ids, as_of
                )
        if self.week_start is not None:
            self.rows = self._reload_keeping_failures(
                store, self.week_start, batches.get(self.week_start, []), failed.get(self.week_start, set()), as_of
            )
        logger.info(
            "Published terminal %s: %s rows over %s weeks, %s failures",
            self.terminal,
            report.rows_written,
            len(report.weeks),
            len(report.failures),
        )
        return report
