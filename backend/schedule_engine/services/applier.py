from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date

from pydantic import ValidationError

from schedule_engine.core.exceptions import PersistenceError, ResolutionError
from schedule_engine.models.schedule import Recurrence
from schedule_engine.schemas.generation import ApplyError, ApplyResult
from schedule_engine.schemas.occurrence import DraftItem, LessonOccurrence, SubjectRef
from schedule_engine.schemas.schedule import ScheduleCreate
from schedule_engine.services.catalog import Catalogs
from schedule_engine.services.conflict_service import ConflictService
from schedule_engine.services.occurrence_expander import effective_bounds
from schedule_engine.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class Applier:
    """Persists a generated batch item by item.

    The batch is not atomic: every item that passes is committed before the
    next one is checked, so later items see earlier ones as live bookings.
    """

    def __init__(
        self,
        store: ScheduleStore,
        catalogs: Catalogs,
        *,
        conflicts: ConflictService | None = None,
        reference: date | None = None,
    ):
        self.store = store
        self.catalogs = catalogs
        self.conflicts = conflicts or ConflictService.for_catalogs(catalogs)
        self.reference = reference or date.today()

    def apply(
        self,
        generated: Sequence[LessonOccurrence],
        *,
        live: Iterable,
        confidence: float | None = None,
    ) -> ApplyResult:
        corpus = list(live)
        result = ApplyResult()
        for index, item in enumerate(generated):
            temp_id = item.temp_id
            try:
                dto = self._to_create(item, confidence)
            except ResolutionError as exc:
                self._fail(result, index, temp_id, exc.message)
                continue
            except ValidationError as exc:
                self._fail(result, index, temp_id, f"Invalid lesson: {exc.errors()[0]['msg']}")
                continue

            found = self.conflicts.detect(dto, corpus)
            if found:
                self._fail(result, index, temp_id, f"{len(found)} conflict(s) with booked lessons", found)
                continue

            try:
                created = self.store.create(dto, check_conflicts=False)
            except PersistenceError as exc:
                self._fail(result, index, temp_id, exc.message)
                continue
            except ResolutionError as exc:
                self._fail(result, index, temp_id, exc.message)
                continue
            corpus.append(created)
            result.created.append(created)

        result.created_count = len(result.created)
        result.failed_count = len(result.errors)
        self.store.log(
            "schedule.apply",
            {
                "created": result.created_count,
                "failed": result.failed_count,
                "confidence": confidence,
                "ids": [item.id for item in result.created],
            },
        )
        logger.info("Applied generated schedule: %d created, %d failed", result.created_count, result.failed_count)
        return result

    def _to_create(self, item: LessonOccurrence, confidence: float | None) -> ScheduleCreate:
        group = self.catalogs.resolve_group(item.group_id)
        teacher = self.catalogs.resolve_teacher(item.teacher_id)
        classroom = self.catalogs.resolve_classroom(item.classroom_id) if item.classroom_id is not None else None
        plan_ref = item.subject.study_plan_id if item.subject.study_plan_id is not None else item.subject.name
        plan = self.catalogs.resolve_study_plan(plan_ref)

        fields = {
            "temp_id": item.temp_id,
            "start_time": item.start_time,
            "end_time": item.end_time,
            "group_id": group.id,
            "teacher_id": teacher.id,
            "classroom_id": classroom.id if classroom else None,
            "subject": SubjectRef(study_plan_id=plan.id, name=plan.name),
            "recurrence": item.recurrence,
            "excluded_dates": item.excluded_dates,
            "is_ai_generated": True,
            "ai_confidence": confidence,
        }
        if item.recurrence is Recurrence.once:
            fields.update(date=item.date, day_of_week=item.date.isoweekday())
        else:
            # Templates are stored with concrete bounds so they survive preset re-resolution.
            start, end = effective_bounds(item, self.reference)
            fields.update(
                day_of_week=item.day_of_week,
                start_date=start,
                end_date=end,
                anchor_date=item.anchor_date or start,
                period_preset=item.period_preset,
            )
        return ScheduleCreate(**fields)

    @staticmethod
    def _fail(result: ApplyResult, index: int, temp_id: str | None, reason: str, conflicts=()) -> None:
        logger.warning("Apply item %d (%s) failed: %s", index, temp_id, reason)
        result.errors.append(ApplyError(index=index, temp_id=temp_id, reason=reason, conflicts=list(conflicts)))


def apply(
    generated: Sequence[DraftItem],
    *,
    store: ScheduleStore,
    catalogs: Catalogs,
    live: Iterable,
    confidence: float | None = None,
    reference: date | None = None,
) -> ApplyResult:
    return Applier(store, catalogs, reference=reference).apply(generated, live=live, confidence=confidence)
