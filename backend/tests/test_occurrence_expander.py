from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from schedule_engine.core.exceptions import ScheduleValidationError
from schedule_engine.models.schedule import OccurrenceStatus
from schedule_engine.schemas.occurrence import LessonOccurrence, StoredOccurrence
from schedule_engine.services.occurrence_expander import derive_status, expand, occurs_on

ALMATY = ZoneInfo("Asia/Almaty")
MONDAY = date(2026, 9, 7)


def template(**overrides) -> LessonOccurrence:
    fields = {
        "day_of_week": 1,
        "start_time": "09:00",
        "end_time": "10:00",
        "group_id": 1,
        "teacher_id": 1,
        "subject": {"study_plan_id": 1, "name": "Mathematics"},
        "recurrence": "weekly",
        "start_date": MONDAY,
        "end_date": MONDAY + timedelta(days=60),
    }
    fields.update(overrides)
    return LessonOccurrence(**fields)


def test_weekly_template_yields_every_matching_weekday():
    dates = list(expand(template(), MONDAY, MONDAY + timedelta(days=27)))
    assert dates == [MONDAY + timedelta(weeks=week) for week in range(4)]


def test_biweekly_template_only_hits_even_weeks_from_anchor():
    biweekly = template(recurrence="biweekly", anchor_date=MONDAY)
    dates = list(expand(biweekly, MONDAY, MONDAY + timedelta(weeks=4) - timedelta(days=1)))
    assert dates == [MONDAY, MONDAY + timedelta(weeks=2)]


def test_biweekly_anchor_is_honoured_when_window_starts_on_odd_week():
    biweekly = template(recurrence="biweekly", anchor_date=MONDAY)
    window_start = MONDAY + timedelta(weeks=1)
    dates = list(expand(biweekly, window_start, window_start + timedelta(days=20)))
    assert dates == [MONDAY + timedelta(weeks=2)]


def test_expansion_is_restartable_and_deterministic():
    biweekly = template(recurrence="biweekly", anchor_date=MONDAY)
    expanded = expand(biweekly, MONDAY, MONDAY + timedelta(days=55))
    assert list(expanded) == list(expanded)
    assert list(expanded) == list(expand(biweekly, MONDAY, MONDAY + timedelta(days=55)))


def test_expansion_does_not_mutate_template():
    original = template(recurrence="biweekly", excluded_dates=[MONDAY + timedelta(weeks=2)])
    snapshot = original.model_dump()
    list(expand(original, MONDAY, MONDAY + timedelta(days=40)))
    assert original.model_dump() == snapshot


def test_template_bounds_clip_the_window():
    bounded = template(start_date=MONDAY + timedelta(weeks=1), end_date=MONDAY + timedelta(weeks=2))
    dates = list(expand(bounded, MONDAY, MONDAY + timedelta(days=60)))
    assert dates == [MONDAY + timedelta(weeks=1), MONDAY + timedelta(weeks=2)]


def test_period_preset_bounds_the_template():
    preset = template(start_date=None, end_date=None, period_preset="quarter_1")
    dates = list(expand(preset, date(2026, 10, 1), date(2026, 11, 30)))
    assert dates[-1] == date(2026, 10, 26)
    assert all(day <= date(2026, 10, 26) for day in dates)


def test_excluded_dates_are_skipped():
    holiday = MONDAY + timedelta(weeks=1)
    dates = list(expand(template(excluded_dates=[holiday]), MONDAY, MONDAY + timedelta(days=20)))
    assert holiday not in dates
    assert len(dates) == 2


def test_once_occurrence_yields_its_date_only_inside_window():
    once = template(recurrence="once", date=MONDAY + timedelta(days=2), day_of_week=None, start_date=None, end_date=None)
    assert list(expand(once, MONDAY, MONDAY + timedelta(days=6))) == [MONDAY + timedelta(days=2)]
    assert list(expand(once, MONDAY + timedelta(days=7), MONDAY + timedelta(days=13))) == []


def test_reversed_window_is_a_validation_error():
    with pytest.raises(ScheduleValidationError):
        expand(template(), MONDAY, MONDAY - timedelta(days=1))


def test_unanchored_biweekly_falls_back_to_the_window_or_epoch():
    stored = StoredOccurrence(
        id="s1",
        day_of_week=1,
        start_time="09:00",
        end_time="10:00",
        group_id=1,
        teacher_id=1,
        subject={"name": "Mathematics"},
        recurrence="biweekly",
    )
    window_start = MONDAY + timedelta(weeks=1)
    from_window = list(expand(stored, window_start, window_start + timedelta(days=13)))
    assert from_window == [window_start]

    from_epoch = list(expand(stored, window_start, window_start + timedelta(days=13), anchor_fallback="epoch"))
    assert len(from_epoch) == 1
    assert (from_epoch[0] - date(1970, 1, 5)).days // 7 % 2 == 0


def test_occurs_on_matches_expansion():
    biweekly = template(recurrence="biweekly", anchor_date=MONDAY)
    assert occurs_on(biweekly, MONDAY + timedelta(weeks=2))
    assert not occurs_on(biweekly, MONDAY + timedelta(weeks=1))
    assert not occurs_on(biweekly, MONDAY + timedelta(days=1))


def test_derived_status_uses_wall_clock_and_explicit_status():
    once = template(recurrence="once", date=MONDAY, day_of_week=None, start_date=None, end_date=None)
    before = datetime(2026, 9, 7, 9, 30, tzinfo=ALMATY)
    after = datetime(2026, 9, 7, 10, 0, tzinfo=ALMATY)
    assert derive_status(once, before) is OccurrenceStatus.upcoming
    assert derive_status(once, after) is OccurrenceStatus.completed

    cancelled = once.model_copy(update={"status": OccurrenceStatus.cancelled})
    assert derive_status(cancelled, before) is OccurrenceStatus.cancelled

    finished_template = template(end_date=MONDAY + timedelta(days=7))
    assert derive_status(finished_template, datetime(2026, 12, 1, tzinfo=ALMATY)) is OccurrenceStatus.completed
    assert derive_status(finished_template, before) is OccurrenceStatus.upcoming
