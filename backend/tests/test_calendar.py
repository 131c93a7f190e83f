from datetime import date

import pytest

from schedule_engine.services.calendar import (
    DatedSlot,
    PeriodPreset,
    RecurringSlot,
    build_time_slots,
    canonical_slot,
    current_quarter,
    intervals_overlap,
    normalize_time,
    parse_day,
    parse_time_to_minutes,
    resolve_period,
    same_parity,
    week_number,
    week_start,
)
from schedule_engine.schemas.occurrence import StoredOccurrence


@pytest.mark.parametrize(
    "value, expected",
    [(1, 1), ("7", 7), ("monday", 1), ("Sunday", 7), ("wed", 3), ("Пятница", 5), ("сб", 6)],
)
def test_parse_day_accepts_numbers_and_names(value, expected):
    assert parse_day(value) == expected


@pytest.mark.parametrize("value", [0, 8, "funday", True, ""])
def test_parse_day_rejects_out_of_range_and_unknown_values(value):
    with pytest.raises(ValueError):
        parse_day(value)


def test_time_parsing_is_strict_but_normalization_is_lenient():
    assert parse_time_to_minutes("09:30") == 570
    for bad in ("9:30", "24:00", "09:60", "0930", None):
        with pytest.raises(ValueError):
            parse_time_to_minutes(bad)

    assert normalize_time("9:05") == "09:05"
    assert normalize_time("14.30") == "14:30"
    assert normalize_time("08:00:00") == "08:00"
    with pytest.raises(ValueError):
        normalize_time("25:00")


def test_week_number_counts_from_epoch_monday():
    assert week_number(date(1970, 1, 5)) == 0
    assert week_number(date(1970, 1, 11)) == 0
    assert week_number(date(1970, 1, 12)) == 1
    assert week_start(date(2026, 9, 10)) == date(2026, 9, 7)


def test_parity_is_shared_by_every_other_week():
    anchor = date(2026, 9, 7)
    assert same_parity(anchor, date(2026, 9, 9))
    assert not same_parity(anchor, date(2026, 9, 14))
    assert same_parity(anchor, date(2026, 9, 21))
    assert same_parity(date(2026, 9, 21), anchor)


def test_intervals_are_half_open():
    assert intervals_overlap(540, 600, 570, 630)
    assert not intervals_overlap(540, 600, 600, 660)
    assert not intervals_overlap(600, 660, 540, 600)


def test_canonical_slot_prefers_the_date():
    dated = StoredOccurrence(
        id="a",
        date=date(2026, 9, 9),
        day_of_week=1,
        start_time="09:00",
        end_time="10:00",
        group_id=1,
        teacher_id=1,
        subject={"name": "Mathematics"},
    )
    slot = canonical_slot(dated)
    assert slot == DatedSlot(date(2026, 9, 9))
    assert slot.day_of_week == 3

    recurring = dated.model_copy(update={"date": None})
    assert canonical_slot(recurring) == RecurringSlot(1)


def test_period_presets_resolve_against_the_academic_year():
    autumn = date(2026, 10, 1)
    assert resolve_period(PeriodPreset.quarter_1, autumn).start == date(2026, 9, 2)
    assert resolve_period(PeriodPreset.quarter_3, autumn).end == date(2027, 3, 18)
    half = resolve_period("half_year_2", date(2027, 2, 1))
    assert (half.start, half.end) == (date(2027, 1, 8), date(2027, 5, 25))
    year = resolve_period(PeriodPreset.academic_year, autumn)
    assert (year.start, year.end) == (date(2026, 9, 2), date(2027, 5, 25))


def test_current_quarter_during_vacation_is_the_one_just_finished():
    assert current_quarter(date(2026, 10, 30)).label == "quarter_1"
    assert current_quarter(date(2026, 11, 10)).label == "quarter_2"
    assert current_quarter(date(2027, 7, 1)).label == "quarter_4"


def test_time_slots_follow_lesson_and_break_durations():
    slots = build_time_slots("08:00", "10:00", 45, 10)
    assert slots == [("08:00", "08:45"), ("08:55", "09:40")]
