from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

from pydantic import ValidationError

from schedule_engine.core.exceptions import ReasoningServiceError, ResolutionError
from schedule_engine.models.schedule import Recurrence
from schedule_engine.schemas.generation import (
    AdvisoryConflict,
    GenerationParams,
    ItemError,
    OptimizedScheduleResponse,
    Suggestion,
)
from schedule_engine.schemas.occurrence import DraftItem, SubjectRef
from schedule_engine.services.calendar import normalize_time, parse_day
from schedule_engine.services.catalog import Catalogs
from schedule_engine.services.draft_builder import DraftBuilder, holidays_on_weekday
from schedule_engine.services.reasoning_client import Reasoner

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a timetable optimiser for an educational institution. "
    "You receive reference data (groups, teachers, classrooms, study plans), generation constraints "
    "and a draft timetable of weekly lesson templates. Improve the draft: remove teacher, classroom "
    "and group double bookings, respect working hours, the lunch break and the consecutive-lesson "
    "limit, spread each subject across the week and put lessons into fitting classrooms. "
    "Keep every lesson of the draft. Answer with a single JSON object with the keys "
    '"generatedSchedule" (list of lessons with tempId, groupId, teacherId, classroomId, studyPlanId, '
    'subject, dayOfWeek, startTime, endTime, recurrence), "conflicts" (list of {type, description, '
    'severity, affectedItems}), "suggestions" (list of {type, description, priority}), '
    '"statistics" (object) and "confidence" (number between 0 and 1).'
)

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "temp_id": ("tempId", "temp_id", "id"),
    "group": ("groupId", "group_id", "group", "groupName"),
    "teacher": ("teacherId", "teacher_id", "teacher", "teacherName"),
    "classroom": ("classroomId", "classroom_id", "classroom", "roomId", "room_id", "room", "roomName"),
    "subject": ("studyPlanId", "study_plan_id", "subjectId", "subject", "subjectName"),
    "day": ("dayOfWeek", "day_of_week", "day", "weekday"),
    "date": ("date",),
    "start_time": ("startTime", "start_time", "start"),
    "end_time": ("endTime", "end_time", "end"),
    "recurrence": ("recurrence", "repeat", "frequency"),
}

RECURRENCE_ALIASES = {
    "weekly": Recurrence.weekly,
    "every_week": Recurrence.weekly,
    "biweekly": Recurrence.biweekly,
    "bi-weekly": Recurrence.biweekly,
    "fortnightly": Recurrence.biweekly,
    "every_other_week": Recurrence.biweekly,
    "once": Recurrence.once,
    "single": Recurrence.once,
    "none": Recurrence.once,
}

ONLINE_MARKERS = {"", "online", "none", "null", "-"}


def pick(raw: dict, field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def clamp_confidence(value) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence > 1:
        confidence /= 100
    return max(0.0, min(1.0, confidence))


def parse_recurrence(value) -> Recurrence | None:
    if value is None:
        return None
    key = str(value).strip().lower().replace(" ", "_")
    if key not in RECURRENCE_ALIASES:
        raise ValueError(f"Unknown recurrence {value!r}")
    return RECURRENCE_ALIASES[key]


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


class OptimizerAdapter:
    """Sends a draft to the reasoning service and turns its loose answer into validated items."""

    def __init__(
        self,
        reasoner: Reasoner,
        *,
        reference: date | None = None,
        live: Iterable = (),
        anchor_fallback: str = "window_start",
    ):
        self.reasoner = reasoner
        self.reference = reference or date.today()
        self.live = list(live)
        self.anchor_fallback = anchor_fallback

    def build_prompt(self, draft: Sequence[DraftItem], params: GenerationParams, catalogs: Catalogs) -> str:
        period_start, period_end = params.period(self.reference)
        payload = {
            "period": {"startDate": period_start.isoformat(), "endDate": period_end.isoformat()},
            "constraints": params.constraints.model_dump(mode="json", by_alias=True),
            "groups": [group.model_dump(mode="json") for group in catalogs.groups if group.id in params.group_ids],
            "teachers": [teacher.model_dump(mode="json", exclude={"email"}) for teacher in catalogs.teachers],
            "classrooms": [room.model_dump(mode="json") for room in catalogs.classrooms],
            "studyPlans": [plan.model_dump(mode="json") for plan in catalogs.study_plans],
            "draft": [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in draft],
        }
        return json.dumps(payload, ensure_ascii=False)

    def optimize(
        self, draft: Sequence[DraftItem], params: GenerationParams, catalogs: Catalogs
    ) -> OptimizedScheduleResponse:
        prompt = self.build_prompt(draft, params, catalogs)
        try:
            answer = self.reasoner.complete(SYSTEM_PROMPT, prompt)
            payload = json.loads(answer)
            if not isinstance(payload, dict):
                raise ValueError("answer is not a JSON object")
        except ReasoningServiceError as exc:
            logger.warning("Optimizer falling back to local refinement: %s", exc.message)
            return self._fallback(draft, params, catalogs, exc.message)
        except ValueError as exc:
            logger.warning("Optimizer falling back to local refinement: unparsable answer (%s)", exc)
            return self._fallback(draft, params, catalogs, f"Reasoning service returned invalid JSON: {exc}")

        result = self.normalize(payload, params, catalogs)
        logger.info(
            "Optimizer returned %d items, %d rejected, confidence %.2f",
            len(result.generated_schedule),
            len(result.errors),
            result.confidence,
        )
        return result

    def normalize(self, payload: dict, params: GenerationParams, catalogs: Catalogs) -> OptimizedScheduleResponse:
        raw_items = payload.get("generatedSchedule", payload.get("generated_schedule", payload.get("schedule")))
        errors: list[ItemError] = []
        items: list[DraftItem] = []
        if not isinstance(raw_items, list):
            errors.append(ItemError(message="Reasoning service answer has no generatedSchedule list"))
            raw_items = []

        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                errors.append(ItemError(index=index, message="Schedule item is not an object"))
                continue
            temp_id = str(pick(raw, "temp_id") or f"ai-{index + 1}")
            try:
                items.append(self._normalize_item(raw, temp_id, params, catalogs))
            except ResolutionError as exc:
                errors.append(ItemError(index=index, temp_id=temp_id, message=exc.message))
            except ValidationError as exc:
                errors.append(ItemError(index=index, temp_id=temp_id, message=_first_error(exc)))
            except ValueError as exc:
                errors.append(ItemError(index=index, temp_id=temp_id, message=str(exc)))

        statistics = payload.get("statistics")
        return OptimizedScheduleResponse(
            generated_schedule=items,
            conflicts=self._advisory_conflicts(payload.get("conflicts")),
            suggestions=self._suggestions(payload.get("suggestions")),
            statistics=statistics if isinstance(statistics, dict) else {},
            confidence=clamp_confidence(payload.get("confidence")),
            errors=errors,
        )

    def _normalize_item(self, raw: dict, temp_id: str, params: GenerationParams, catalogs: Catalogs) -> DraftItem:
        group = catalogs.resolve_group(pick(raw, "group"))

        subject_value = pick(raw, "subject")
        if isinstance(subject_value, dict):
            subject_value = subject_value.get("studyPlanId") or subject_value.get("name")
        plan = catalogs.resolve_study_plan(subject_value)

        teacher_value = pick(raw, "teacher")
        teacher = catalogs.resolve_teacher(plan.teacher_id if teacher_value is None else teacher_value)

        classroom_value = pick(raw, "classroom")
        classroom = None
        if classroom_value is not None and str(classroom_value).strip().lower() not in ONLINE_MARKERS:
            classroom = catalogs.resolve_classroom(classroom_value)

        start_time = normalize_time(pick(raw, "start_time"))
        end_time = normalize_time(pick(raw, "end_time"))
        recurrence = parse_recurrence(pick(raw, "recurrence"))
        raw_date = pick(raw, "date")
        lesson_date = date.fromisoformat(str(raw_date)[:10]) if raw_date is not None else None
        raw_day = pick(raw, "day")
        day = parse_day(raw_day) if raw_day is not None else None

        fields: dict[str, Any] = {}
        if lesson_date is not None and recurrence in (Recurrence.weekly, Recurrence.biweekly):
            # A dated answer with a repeat becomes a template anchored on that date.
            day = lesson_date.isoweekday()
            fields["anchor_date"] = lesson_date
        elif lesson_date is not None:
            recurrence = Recurrence.once
            fields["date"] = lesson_date
            fields["day_of_week"] = lesson_date.isoweekday()
        else:
            recurrence = recurrence or Recurrence.weekly
            if recurrence is Recurrence.once:
                raise ValueError("A 'once' lesson requires a date")

        if recurrence is not Recurrence.once:
            if day is None:
                raise ValueError("Lesson has neither a date nor a day of week")
            period_start, period_end = params.period(self.reference)
            fields.update(
                day_of_week=day,
                start_date=period_start,
                end_date=period_end,
                period_preset=params.period_preset,
                excluded_dates=holidays_on_weekday(params.constraints.custom_holidays, day, period_start, period_end),
            )

        return DraftItem(
            temp_id=temp_id,
            start_time=start_time,
            end_time=end_time,
            group_id=group.id,
            teacher_id=teacher.id,
            classroom_id=classroom.id if classroom else None,
            subject=SubjectRef(study_plan_id=plan.id, name=plan.name),
            recurrence=recurrence,
            group_name=group.name,
            teacher_name=teacher.name,
            classroom_name=classroom.name if classroom else None,
            group_size=group.student_count,
            **fields,
        )

    @staticmethod
    def _advisory_conflicts(raw) -> list[AdvisoryConflict]:
        if not isinstance(raw, list):
            return []
        conflicts: list[AdvisoryConflict] = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            affected = entry.get("affectedItems") or entry.get("affected_items") or []
            conflicts.append(
                AdvisoryConflict(
                    type=str(entry.get("type") or "unknown"),
                    description=str(entry.get("description") or ""),
                    severity=str(entry["severity"]) if entry.get("severity") is not None else None,
                    affected_items=[int(value) for value in affected if isinstance(value, int)],
                )
            )
        return conflicts

    @staticmethod
    def _suggestions(raw) -> list[Suggestion]:
        if not isinstance(raw, list):
            return []
        return [
            Suggestion(
                type=str(entry.get("type") or "general"),
                description=str(entry.get("description") or ""),
                priority=str(entry["priority"]) if entry.get("priority") is not None else None,
            )
            for entry in raw
            if isinstance(entry, dict)
        ]

    def _fallback(
        self, draft: Sequence[DraftItem], params: GenerationParams, catalogs: Catalogs, reason: str
    ) -> OptimizedScheduleResponse:
        builder = DraftBuilder(catalogs, live=self.live, reference=self.reference, anchor_fallback=self.anchor_fallback)
        return OptimizedScheduleResponse(
            generated_schedule=builder.refine(draft, params),
            confidence=0.0,
            errors=[ItemError(message=f"{reason}; the draft was rebalanced locally instead")],
        )
