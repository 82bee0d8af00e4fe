from __future__ import annotations

import re
from typing import Iterable, Sequence

DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
PUBLISHED_FIELDS = DAY_NAMES
DRAFT_FIELDS = tuple(f"draft_{day}" for day in DAY_NAMES)
ALL_DAY_FIELDS = PUBLISHED_FIELDS + DRAFT_FIELDS

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
MINUTES_PER_DAY = 24 * 60


def _clock_to_minutes(value: str) -> int | None:
    match = _CLOCK_RE.match(value.strip())
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def _break_deduction(raw_hours: float) -> float:
    # 6.5h shifts get a half-hour break, anything else over 6h a full hour.
    if raw_hours == 6.5:
        return 0.5
    if raw_hours > 6:
        return 1.0
    return 0.0


def parse_shift(value: str | None) -> float:
    """Paid hours for an ``HH:MM-HH:MM`` shift string.

    Anything that does not parse (``D/O``, blanks, typos) counts as zero
    hours. End times earlier than the start wrap past midnight.
    """
    if not value or "-" not in value:
        return 0.0
    start_text, end_text = value.split("-", 1)
    start = _clock_to_minutes(start_text)
    end = _clock_to_minutes(end_text)
    if start is None or end is None:
        return 0.0
    if end < start:
        end += MINUTES_PER_DAY
    raw_hours = (end - start) / 60.0
    return max(0.0, raw_hours - _break_deduction(raw_hours))


def total_hours(shifts: Iterable[str | None]) -> float:
    return sum(parse_shift(shift) for shift in shifts)


def format_hours(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def normalize_shift(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def resolve_shift(published: str | None, draft: str | None) -> str:
    return draft or published or ""


def effective_shifts(
    published: Sequence[str | None],
    draft: Sequence[str | None],
    manager_view: bool = True,
) -> list[str]:
    if not manager_view:
        return [value or "" for value in published]
    return [resolve_shift(p, d) for p, d in zip(published, draft)]


def published_values(row) -> list[str | None]:
    return [getattr(row, field) for field in PUBLISHED_FIELDS]


def draft_values(row) -> list[str | None]:
    return [getattr(row, field) for field in DRAFT_FIELDS]


def empty_day_fields() -> dict[str, None]:
    return {field: None for field in ALL_DAY_FIELDS}


def draft_fields_for(shifts: Sequence[str | None]) -> dict[str, str | None]:
    _ensure_week_length(shifts)
    return {field: normalize_shift(value) for field, value in zip(DRAFT_FIELDS, shifts)}


def published_fields_for(shifts: Sequence[str | None]) -> dict[str, str | None]:
    _ensure_week_length(shifts)
    return {field: normalize_shift(value) for field, value in zip(PUBLISHED_FIELDS, shifts)}


def day_fields_of(row) -> dict[str, str | None]:
    # Empty strings are stored as NULL when a week is copied between tables.
    return {field: getattr(row, field) or None for field in ALL_DAY_FIELDS}


def has_pending_draft(published: Sequence[str | None], draft: Sequence[str | None]) -> bool:
    return any(d and d != p for p, d in zip(published, draft))


def _ensure_week_length(shifts: Sequence[str | None]) -> None:
    if len(shifts) != len(DAY_NAMES):
        raise ValueError(f"Expected {len(DAY_NAMES)} day values, got {len(shifts)}")
