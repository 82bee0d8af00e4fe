from __future__ import annotations

import os
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

DEFAULT_ANCHOR_DATE = date(2025, 6, 26)
DEFAULT_ANCHOR_WEEK = 43
WEEKS_PER_CYCLE = 53


def today() -> date:
    tz_name = os.getenv("ROTA_TIMEZONE", "").strip()
    if tz_name:
        return datetime.now(ZoneInfo(tz_name)).date()
    return date.today()


def week_start_of(d: date) -> date:
    # date.weekday() is Monday=0; the rota week runs Sunday..Saturday.
    return d - timedelta(days=(d.weekday() + 1) % 7)


def next_week_start(d: date) -> date:
    return week_start_of(d) + timedelta(days=7)


def previous_week_start(d: date) -> date:
    return week_start_of(d) - timedelta(days=7)


def week_dates(d: date) -> list[date]:
    start = week_start_of(d)
    return [start + timedelta(days=i) for i in range(7)]


def week_key(d: date) -> str:
    return week_start_of(d).isoformat()


def parse_week_key(value: str) -> date:
    return week_start_of(date.fromisoformat(value.strip()))


def is_current_week(d: date, as_of: date | None = None) -> bool:
    reference = as_of if as_of is not None else today()
    return week_start_of(d) == week_start_of(reference)


def _anchor() -> tuple[date, int]:
    raw_date = os.getenv("ROTA_WEEK_ANCHOR_DATE", "").strip()
    raw_week = os.getenv("ROTA_WEEK_ANCHOR_NUMBER", "").strip()
    anchor_date = date.fromisoformat(raw_date) if raw_date else DEFAULT_ANCHOR_DATE
    anchor_week = int(raw_week) if raw_week else DEFAULT_ANCHOR_WEEK
    return anchor_date, anchor_week


def week_number(d: date, anchor_date: date | None = None, anchor_week: int | None = None) -> int:
    """Operational week number for the week containing ``d``.

    Counts whole weeks from a configured anchor (the week containing
    ``anchor_date`` is ``anchor_week``) and wraps into 1..53. It is a display
    label only; rows are keyed by week start date.
    """
    if anchor_date is None or anchor_week is None:
        configured_date, configured_week = _anchor()
        anchor_date = anchor_date or configured_date
        anchor_week = anchor_week if anchor_week is not None else configured_week
    days_diff = (week_start_of(d) - week_start_of(anchor_date)).days
    weeks_diff = round(days_diff / 7)
    return ((anchor_week + weeks_diff - 1) % WEEKS_PER_CYCLE) + 1
