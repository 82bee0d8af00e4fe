from datetime import date, timedelta

from rota.weeks import (
    is_current_week,
    parse_week_key,
    previous_week_start,
    next_week_start,
    today,
    week_dates,
    week_key,
    week_number,
    week_start_of,
)

ANCHOR_SUNDAY = date(2025, 6, 22)


def test_week_starts_on_sunday():
    assert week_start_of(date(2026, 10, 18)) == date(2026, 10, 18)
    assert week_start_of(date(2026, 10, 19)) == date(2026, 10, 18)
    assert week_start_of(date(2026, 10, 24)) == date(2026, 10, 18)
    assert week_start_of(date(2026, 10, 25)) == date(2026, 10, 25)


def test_week_key_is_iso_date_of_sunday():
    assert week_key(date(2026, 1, 1)) == "2025-12-28"
    assert parse_week_key("2026-01-01") == date(2025, 12, 28)


def test_adjacent_weeks():
    assert next_week_start(date(2026, 10, 21)) == date(2026, 10, 25)
    assert previous_week_start(date(2026, 10, 21)) == date(2026, 10, 11)
    days = week_dates(date(2026, 10, 21))
    assert days[0] == date(2026, 10, 18)
    assert days[-1] == date(2026, 10, 24)


def test_current_week_flips_at_sunday_boundary():
    week = date(2026, 10, 18)
    assert is_current_week(week, as_of=date(2026, 10, 18)) is True
    assert is_current_week(week, as_of=date(2026, 10, 24)) is True
    assert is_current_week(week, as_of=date(2026, 10, 25)) is False
    assert is_current_week(week, as_of=date(2026, 10, 17)) is False


def test_current_week_defaults_to_wall_clock():
    assert is_current_week(today()) is True
    assert is_current_week(today() + timedelta(days=7)) is False


def test_week_number_counts_from_anchor():
    assert week_number(date(2025, 6, 26)) == 43
    assert week_number(ANCHOR_SUNDAY) == 43
    assert week_number(date(2025, 6, 28)) == 43
    assert week_number(date(2025, 6, 29)) == 44
    assert week_number(date(2025, 6, 15)) == 42


def test_week_number_wraps_into_one_to_fifty_three():
    assert week_number(ANCHOR_SUNDAY + timedelta(weeks=10)) == 53
    assert week_number(ANCHOR_SUNDAY + timedelta(weeks=11)) == 1
    assert week_number(ANCHOR_SUNDAY - timedelta(weeks=42)) == 1
    assert week_number(ANCHOR_SUNDAY - timedelta(weeks=43)) == 53


def test_week_number_anchor_is_configurable(monkeypatch):
    monkeypatch.setenv("ROTA_WEEK_ANCHOR_DATE", "2026-01-04")
    monkeypatch.setenv("ROTA_WEEK_ANCHOR_NUMBER", "1")
    assert week_number(date(2026, 1, 7)) == 1
    assert week_number(date(2026, 1, 11)) == 2
    assert week_number(date(2026, 1, 11), anchor_date=date(2026, 1, 4), anchor_week=10) == 11
