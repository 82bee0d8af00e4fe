from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

import rota.db as app_db
import rota.migration as migration
from rota.migration import MigrationError, migration_status, run_migration
from rota.models import MigrationRun, StaffMember, WeeklySchedule
from rota.shifts import ALL_DAY_FIELDS
from rota.store import ScheduleStore, upsert_weekly_schedule

AS_OF = date(2026, 10, 24)
CURRENT = date(2026, 10, 18)
NEXT = date(2026, 10, 25)
TERMINAL = 4


def week(**days):
    names = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
    return [days.get(name, "") for name in names]


def staged_record(db, staff_id, week_start):
    return db.scalar(
        select(WeeklySchedule)
        .where(WeeklySchedule.staff_id == staff_id, WeeklySchedule.week_starting_date == week_start)
        .execution_options(populate_existing=True)
    )


def day_state(db):
    members = db.scalars(select(StaffMember).order_by(StaffMember.id).execution_options(populate_existing=True)).all()
    records = db.scalars(
        select(WeeklySchedule)
        .order_by(WeeklySchedule.week_starting_date, WeeklySchedule.staff_id)
        .execution_options(populate_existing=True)
    ).all()
    return (
        [tuple(getattr(m, field) for field in ALL_DAY_FIELDS) for m in members],
        [(r.staff_id, r.week_starting_date, tuple(getattr(r, field) for field in ALL_DAY_FIELDS)) for r in records],
    )


@pytest.fixture
def seeded(db):
    store = ScheduleStore(db)
    alice = store.add_staff("Alice", TERMINAL)
    bob = store.add_staff("Bob", TERMINAL)
    store.publish(alice.id, CURRENT, week(monday="09:00-17:00"), as_of=AS_OF)
    store.save_draft(bob.id, CURRENT, week(tuesday="12:00-20:00"), as_of=AS_OF)
    store.publish(alice.id, NEXT, week(monday="08:00-16:00"), as_of=AS_OF)
    return store, alice, bob


def test_rollover_promotes_staged_week_and_archives_live_week(db, seeded):
    _, alice, bob = seeded

    result = run_migration(db, as_of=AS_OF)

    assert result.current_week_start == CURRENT
    assert result.next_week_start == NEXT
    assert result.staff_count == 2
    assert result.next_week_data_count == 1
    assert result.row_errors == 0

    alice_row = db.get(StaffMember, alice.id)
    bob_row = db.get(StaffMember, bob.id)
    db.refresh(alice_row)
    db.refresh(bob_row)
    assert alice_row.monday == "08:00-16:00"
    assert alice_row.draft_monday == "08:00-16:00"
    assert all(getattr(bob_row, field) is None for field in ALL_DAY_FIELDS)

    assert staged_record(db, alice.id, NEXT) is None
    archived_alice = staged_record(db, alice.id, CURRENT)
    archived_bob = staged_record(db, bob.id, CURRENT)
    assert archived_alice.monday == "09:00-17:00"
    assert archived_alice.draft_monday == "09:00-17:00"
    assert archived_bob.tuesday is None
    assert archived_bob.draft_tuesday == "12:00-20:00"


def test_result_payload_uses_wire_keys(db, seeded):
    payload = run_migration(db, as_of=AS_OF).as_payload()
    assert payload == {
        "success": True,
        "message": "Weekly migration completed successfully",
        "currentWeekStart": "2026-10-18",
        "nextWeekStart": "2026-10-25",
        "staffCount": 2,
        "nextWeekDataCount": 1,
    }


def test_second_run_on_same_day_changes_nothing(db, seeded):
    run_migration(db, as_of=AS_OF)
    after_first = day_state(db)

    second = run_migration(db, as_of=AS_OF)

    assert second.already_completed is True
    assert second.staff_count == 2
    assert second.next_week_data_count == 1
    assert day_state(db) == after_first
    assert db.scalar(select(func.count(MigrationRun.id))) == 1


def test_rollover_with_nothing_staged_blanks_every_staff_row(db):
    store = ScheduleStore(db)
    alice = store.add_staff("Alice", TERMINAL)
    store.publish(alice.id, CURRENT, week(monday="09:00-17:00"), as_of=AS_OF)

    result = run_migration(db, as_of=AS_OF)

    assert result.next_week_data_count == 0
    member = db.get(StaffMember, alice.id)
    db.refresh(member)
    assert member.monday is None
    assert staged_record(db, alice.id, CURRENT).monday == "09:00-17:00"


def test_archive_overwrites_an_existing_row_for_the_week(db, seeded):
    _, alice, _ = seeded

    upsert_weekly_schedule(db, alice.id, CURRENT, {"monday": "stale", "draft_monday": "stale"})
    db.commit()

    run_migration(db, as_of=AS_OF)

    count = db.scalar(
        select(func.count(WeeklySchedule.id)).where(
            WeeklySchedule.staff_id == alice.id, WeeklySchedule.week_starting_date == CURRENT
        )
    )
    assert count == 1
    assert staged_record(db, alice.id, CURRENT).monday == "09:00-17:00"


def test_row_failure_is_logged_and_skipped(db, seeded, monkeypatch, caplog):
    _, alice, bob = seeded
    original = migration.upsert_weekly_schedule

    def flaky_upsert(session, staff_id, week_start, values):
        if staff_id == alice.id:
            raise SQLAlchemyError("disk I/O error")
        return original(session, staff_id, week_start, values)

    monkeypatch.setattr(migration, "upsert_weekly_schedule", flaky_upsert)
    with caplog.at_level("ERROR", logger="rota.migration"):
        result = run_migration(db, as_of=AS_OF)

    assert result.row_errors == 1
    assert f"Error archiving data for staff {alice.id}" in caplog.text
    assert staged_record(db, alice.id, CURRENT) is None
    assert staged_record(db, bob.id, CURRENT) is not None
    member = db.get(StaffMember, alice.id)
    db.refresh(member)
    assert member.monday == "08:00-16:00"


def test_unreadable_staff_table_fails_the_whole_job(db, seeded):
    StaffMember.__table__.drop(bind=app_db.engine)

    with pytest.raises(MigrationError, match="Error fetching staff"):
        run_migration(db, as_of=AS_OF)
    assert db.scalar(select(func.count(MigrationRun.id))) == 0


def test_status_reports_weeks_and_runs(db, seeded):
    before = migration_status(db, as_of=AS_OF)
    assert before.current_week_start == CURRENT
    assert before.staff_count == 2
    assert before.next_week_data_count == 1
    assert [(w.week_starting_date, w.staff_count) for w in before.weeks] == [(NEXT, 1)]
    assert before.runs == []

    run_migration(db, as_of=AS_OF)

    after = migration_status(db, as_of=AS_OF)
    assert after.next_week_data_count == 0
    assert [(w.week_starting_date, w.staff_count) for w in after.weeks] == [(CURRENT, 2)]
    assert [run.current_week_start for run in after.runs] == [CURRENT]
