import pytest

from rota.shifts import (
    DRAFT_FIELDS,
    PUBLISHED_FIELDS,
    draft_fields_for,
    effective_shifts,
    format_hours,
    has_pending_draft,
    normalize_shift,
    parse_shift,
    total_hours,
)


def test_full_day_loses_one_hour_break():
    assert parse_shift("09:00-17:00") == 7


def test_six_and_a_half_hours_loses_half_hour_break():
    assert parse_shift("09:00-15:30") == 6


def test_six_hours_or_less_has_no_break():
    assert parse_shift("09:00-15:00") == 6
    assert parse_shift("10:00-14:30") == 4.5


def test_just_over_six_hours_loses_full_hour():
    assert parse_shift("09:00-15:15") == 5.25


def test_overnight_shift_wraps_past_midnight():
    assert parse_shift("22:00-06:00") == 7


def test_whitespace_around_times_is_ignored():
    assert parse_shift(" 05:30 - 14:30 ") == 8
    assert parse_shift("5:30-14:30") == 8


@pytest.mark.parametrize("value", ["", None, "garbage", "D/O", "09:00", "9-17", "25:00-26:00", "09:75-17:00", "ab:cd-ef:gh"])
def test_unparseable_values_count_as_zero(value):
    assert parse_shift(value) == 0


def test_equal_start_and_end_is_zero_hours():
    assert parse_shift("09:00-09:00") == 0


def test_total_hours_skips_free_text():
    week = ["D/O", "05:30-14:30", "05:30-14:30", "D/O", "05:30-14:30", "05:30-14:30", "05:30-14:30"]
    assert total_hours(week) == 40


def test_format_hours_drops_trailing_zeros():
    assert format_hours(7.0) == "7"
    assert format_hours(6.5) == "6.5"
    assert format_hours(5.25) == "5.25"


def test_manager_view_prefers_draft_and_staff_view_sees_published():
    published = ["09:00-17:00", None, "D/O", None, None, None, None]
    draft = ["10:00-18:00", "12:00-20:00", None, None, None, None, None]
    assert effective_shifts(published, draft, manager_view=True)[:3] == ["10:00-18:00", "12:00-20:00", "D/O"]
    assert effective_shifts(published, draft, manager_view=False)[:3] == ["09:00-17:00", "", "D/O"]


def test_pending_draft_needs_a_non_empty_differing_value():
    assert has_pending_draft(["09:00-17:00"], ["10:00-18:00"]) is True
    assert has_pending_draft(["09:00-17:00"], ["09:00-17:00"]) is False
    assert has_pending_draft(["09:00-17:00"], [None]) is False


def test_draft_fields_use_prefixed_day_names():
    fields = draft_fields_for(["", " 09:00-17:00 ", None, "D/O", "", "", ""])
    assert list(fields) == list(DRAFT_FIELDS)
    assert fields["draft_sunday"] is None
    assert fields["draft_monday"] == "09:00-17:00"
    assert fields["draft_wednesday"] == "D/O"
    assert PUBLISHED_FIELDS[0] == "sunday"


def test_draft_fields_require_seven_days():
    with pytest.raises(ValueError):
        draft_fields_for(["09:00-17:00"])


def test_normalize_shift_blanks_to_none():
    assert normalize_shift("   ") is None
    assert normalize_shift(None) is None
    assert normalize_shift(" D/O ") == "D/O"
