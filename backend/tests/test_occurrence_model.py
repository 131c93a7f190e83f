from datetime import date

import pytest
from pydantic import ValidationError

from schedule_engine.models.schedule import Recurrence
from schedule_engine.schemas.occurrence import DraftItem, LessonOccurrence


def _payload(**overrides):
    payload = {
        "dayOfWeek": 1,
        "startTime": "09:00",
        "endTime": "10:00",
        "groupId": 1,
        "teacherId": 1,
        "subject": {"studyPlanId": 1, "name": "Mathematics"},
        "recurrence": "weekly",
        "startDate": "2026-09-07",
        "endDate": "2026-10-26",
    }
    payload.update(overrides)
    return payload


def test_weekly_occurrence_accepts_camel_case_payload():
    occurrence = LessonOccurrence.model_validate(_payload())
    assert occurrence.day_of_week == 1
    assert occurrence.recurrence is Recurrence.weekly
    assert occurrence.classroom_id is None
    assert occurrence.start_date == date(2026, 9, 7)


def test_day_names_are_canonicalized_to_numbers():
    occurrence = LessonOccurrence.model_validate(_payload(dayOfWeek="Wednesday"))
    assert occurrence.day_of_week == 3


def test_end_time_must_follow_start_time():
    with pytest.raises(ValidationError, match="endTime must be after startTime"):
        LessonOccurrence.model_validate(_payload(startTime="10:00", endTime="10:00"))


def test_malformed_time_is_rejected_not_coerced():
    with pytest.raises(ValidationError):
        LessonOccurrence.model_validate(_payload(startTime="9:00"))


def test_once_with_start_date_is_rejected():
    with pytest.raises(ValidationError, match="cannot carry startDate"):
        LessonOccurrence.model_validate(
            _payload(recurrence="once", date="2026-09-07", endDate=None, dayOfWeek=None)
        )


def test_weekly_with_date_is_rejected():
    with pytest.raises(ValidationError, match="cannot carry date"):
        LessonOccurrence.model_validate(_payload(date="2026-09-07"))


def test_once_derives_day_of_week_from_date():
    occurrence = LessonOccurrence.model_validate(
        _payload(recurrence="once", date="2026-09-09", dayOfWeek=None, startDate=None, endDate=None)
    )
    assert occurrence.day_of_week == 3

    with pytest.raises(ValidationError, match="dayOfWeek does not match date"):
        LessonOccurrence.model_validate(
            _payload(recurrence="once", date="2026-09-09", dayOfWeek=1, startDate=None, endDate=None)
        )


def test_recurring_needs_a_preset_or_a_full_range():
    with pytest.raises(ValidationError, match="periodPreset or both"):
        LessonOccurrence.model_validate(_payload(startDate=None, endDate=None))

    with pytest.raises(ValidationError, match="provided together"):
        LessonOccurrence.model_validate(_payload(endDate=None, periodPreset="quarter_1"))

    occurrence = LessonOccurrence.model_validate(_payload(startDate=None, endDate=None, periodPreset="quarter_1"))
    assert occurrence.period_preset.value == "quarter_1"


def test_draft_item_requires_temp_id_and_uses_it_as_reference():
    with pytest.raises(ValidationError):
        DraftItem.model_validate(_payload())
    item = DraftItem.model_validate(_payload(tempId="1-1-1"))
    assert item.ref == "1-1-1"
    assert item.model_dump(by_alias=True)["tempId"] == "1-1-1"
