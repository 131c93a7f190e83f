import json
from datetime import date

import pytest

from schedule_engine.core.exceptions import ReasoningServiceError
from schedule_engine.models.classroom import ClassroomType
from schedule_engine.schemas.catalog import ClassroomOut, GroupOut, StudyPlanOut, TeacherOut
from schedule_engine.schemas.generation import GenerationParams
from schedule_engine.schemas.occurrence import DraftItem
from schedule_engine.services.catalog import Catalogs
from schedule_engine.services.optimizer_adapter import SYSTEM_PROMPT, OptimizerAdapter, clamp_confidence

PERIOD_START = date(2026, 9, 7)
PERIOD_END = date(2026, 12, 25)


class FakeReasoner:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.answer if isinstance(self.answer, str) else json.dumps(self.answer)


@pytest.fixture
def catalogs():
    return Catalogs(
        groups=(GroupOut(id=7, name="10А", student_count=24), GroupOut(id=8, name="11Б", student_count=20)),
        teachers=(TeacherOut(id=1, name="Ivanova A."), TeacherOut(id=2, name="Petrov B.")),
        classrooms=(
            ClassroomOut(id=1, name="101", type=ClassroomType.auditorium, capacity=30),
            ClassroomOut(id=2, name="Lab 2", type=ClassroomType.computer_lab, capacity=30),
        ),
        study_plans=(
            StudyPlanOut(id=1, name="Mathematics", teacher_id=1, hours_per_week=3, group_ids=(7, 8)),
            StudyPlanOut(id=2, name="Programming", teacher_id=2, hours_per_week=2, group_ids=(7,)),
        ),
    )


@pytest.fixture
def params():
    return GenerationParams(group_ids=[7], start_date=PERIOD_START, end_date=PERIOD_END)


@pytest.fixture
def draft():
    return [
        DraftItem(
            temp_id="1-7-1",
            day_of_week=1,
            start_time="08:00",
            end_time="08:45",
            group_id=7,
            teacher_id=1,
            classroom_id=1,
            subject={"study_plan_id": 1, "name": "Mathematics"},
            start_date=PERIOD_START,
            end_date=PERIOD_END,
        )
    ]


def lesson(**fields):
    raw = {"subject": "Mathematics", "dayOfWeek": 1, "startTime": "09:00", "endTime": "09:45"}
    raw.update(fields)
    return raw


def normalize(catalogs, params, *items, **payload):
    adapter = OptimizerAdapter(FakeReasoner())
    return adapter.normalize({"generatedSchedule": list(items), **payload}, params, catalogs)


def test_group_name_resolves_to_catalog_id(catalogs, params):
    result = normalize(catalogs, params, lesson(groupName="10А", dayOfWeek="Monday", startTime="9:00", classroom="101"))

    assert result.errors == []
    item = result.generated_schedule[0]
    assert item.group_id == 7
    assert item.teacher_id == 1
    assert item.classroom_id == 1
    assert item.start_time == "09:00"
    assert item.day_of_week == 1
    assert item.temp_id == "ai-1"
    assert item.recurrence.value == "weekly"
    assert (item.start_date, item.end_date) == (PERIOD_START, PERIOD_END)


def test_partial_names_resolve_case_insensitively(catalogs, params):
    result = normalize(
        catalogs, params, lesson(group="10", subject="program", teacher="petrov", room="lab", tempId="x-1")
    )

    assert result.errors == []
    item = result.generated_schedule[0]
    assert (item.group_id, item.subject.study_plan_id, item.teacher_id, item.classroom_id) == (7, 2, 2, 2)
    assert item.temp_id == "x-1"


def test_unresolvable_items_become_item_errors(catalogs, params):
    result = normalize(
        catalogs,
        params,
        lesson(groupId=7, tempId="ok"),
        lesson(groupName="Nonexistent", tempId="bad"),
        lesson(groupId=7, startTime="10:00", endTime="09:00"),
    )

    assert [item.temp_id for item in result.generated_schedule] == ["ok"]
    assert [(error.index, error.temp_id) for error in result.errors] == [(1, "bad"), (2, "ai-3")]
    assert "Nonexistent" in result.errors[0].message
    assert "endTime must be after startTime" in result.errors[1].message


def test_dated_repeating_item_becomes_anchored_template(catalogs, params):
    result = normalize(catalogs, params, lesson(groupId=7, date="2026-09-16", recurrence="biweekly", dayOfWeek=None))

    item = result.generated_schedule[0]
    assert item.date is None
    assert item.recurrence.value == "biweekly"
    assert item.anchor_date == date(2026, 9, 16)
    assert item.day_of_week == 3


def test_dated_item_without_repeat_becomes_single_lesson(catalogs, params):
    result = normalize(catalogs, params, lesson(groupId=7, date="2026-09-16T00:00:00", dayOfWeek=None))

    item = result.generated_schedule[0]
    assert item.recurrence.value == "once"
    assert item.date == date(2026, 9, 16)
    assert item.day_of_week == 3
    assert item.start_date is None


def test_single_lesson_without_date_is_rejected(catalogs, params):
    result = normalize(catalogs, params, lesson(groupId=7, recurrence="once"))

    assert result.generated_schedule == []
    assert "requires a date" in result.errors[0].message


def test_online_classroom_markers_mean_no_room(catalogs, params):
    result = normalize(catalogs, params, lesson(groupId=7, classroom="online"))
    assert result.generated_schedule[0].classroom_id is None


def test_holidays_are_attached_to_templates(catalogs):
    params = GenerationParams(
        group_ids=[7],
        start_date=PERIOD_START,
        end_date=PERIOD_END,
        constraints={"customHolidays": ["2026-09-14", "2026-09-15"]},
    )
    result = normalize(catalogs, params, lesson(groupId=7))
    assert result.generated_schedule[0].excluded_dates == [date(2026, 9, 14)]


def test_advisory_data_is_parsed_leniently(catalogs, params):
    result = normalize(
        catalogs,
        params,
        lesson(groupId=7),
        conflicts=[{"type": "teacher", "description": "Busy", "affectedItems": [0, "1"]}, "junk"],
        suggestions=[{"description": "Move PE to Friday", "priority": "low"}],
        statistics={"totalLessons": 1},
        confidence=85,
    )

    assert len(result.conflicts) == 1
    assert result.conflicts[0].affected_items == [0]
    assert result.suggestions[0].type == "general"
    assert result.statistics == {"totalLessons": 1}
    assert result.confidence == pytest.approx(0.85)


@pytest.mark.parametrize("raw, expected", [(0.7, 0.7), ("0.5", 0.5), (92, 0.92), (250, 1.0), (-1, 0.0), ("n/a", 0.0)])
def test_clamp_confidence(raw, expected):
    assert clamp_confidence(raw) == pytest.approx(expected)


def test_optimize_sends_catalogs_and_draft(catalogs, params, draft):
    reasoner = FakeReasoner(
        {"generatedSchedule": [lesson(tempId="1-7-1", groupId=7, classroomId=2)], "confidence": 0.8}
    )
    result = OptimizerAdapter(reasoner).optimize(draft, params, catalogs)

    system_prompt, user_prompt = reasoner.calls[0]
    assert system_prompt == SYSTEM_PROMPT
    sent = json.loads(user_prompt)
    assert [group["name"] for group in sent["groups"]] == ["10А"]
    assert sent["draft"][0]["tempId"] == "1-7-1"
    assert sent["period"] == {"startDate": "2026-09-07", "endDate": "2026-12-25"}
    assert result.generated_schedule[0].classroom_id == 2
    assert result.confidence == pytest.approx(0.8)


@pytest.mark.parametrize(
    "reasoner",
    [
        FakeReasoner("this is not json"),
        FakeReasoner("[1, 2, 3]"),
        FakeReasoner(error=ReasoningServiceError("timeout")),
    ],
)
def test_optimize_falls_back_to_draft(catalogs, params, draft, reasoner):
    result = OptimizerAdapter(reasoner).optimize(draft, params, catalogs)

    assert result.generated_schedule == draft
    assert result.confidence == 0.0
    assert len(result.errors) == 1
    assert "rebalanced locally" in result.errors[0].message


def test_fallback_spreads_a_crowded_day(catalogs, params, draft):
    second = draft[0].model_copy(update={"temp_id": "1-7-2", "start_time": "08:55", "end_time": "09:40"})
    reasoner = FakeReasoner(error=ReasoningServiceError("timeout"))

    result = OptimizerAdapter(reasoner).optimize([draft[0], second], params, catalogs)

    placed = sorted((item.day_of_week, item.start_time, item.temp_id) for item in result.generated_schedule)
    assert placed == [(1, "08:00", "1-7-1"), (2, "08:00", "1-7-2")]
    assert {item.classroom_id for item in result.generated_schedule} == {1}
