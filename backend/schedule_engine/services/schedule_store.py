from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schedule_engine.core.exceptions import (
    PersistenceError,
    ResolutionError,
    ResourceNotFoundError,
    ScheduleConflictError,
    ScheduleValidationError,
)
from schedule_engine.models.classroom import Classroom
from schedule_engine.models.group import Group
from schedule_engine.models.schedule import Recurrence, ScheduleRecord
from schedule_engine.models.study_plan import StudyPlan
from schedule_engine.models.teacher import Teacher
from schedule_engine.schemas.conflict import ConflictDescriptor
from schedule_engine.schemas.occurrence import StoredOccurrence
from schedule_engine.schemas.schedule import ScheduleCreate, ScheduleMove, ScheduleUpdate
from schedule_engine.services.audit import log_activity
from schedule_engine.services.calendar import canonical_slot, week_start
from schedule_engine.services.conflict_service import ConflictService
from schedule_engine.services.occurrence_expander import effective_bounds, occurs_on

logger = logging.getLogger(__name__)

READ_ONLY_FIELDS = {"id", "is_ai_generated", "ai_confidence", "created_at", "updated_at"}


def conflicts_payload(conflicts: list[ConflictDescriptor]) -> list[dict]:
    return [conflict.model_dump(mode="json", by_alias=True) for conflict in conflicts]


class ScheduleStore:
    """Persisted lesson placements. Deleted rows are kept with ``deleted_at`` set."""

    def __init__(self, db: Session, *, conflicts: ConflictService | None = None, reference: date | None = None):
        self.db = db
        self.conflicts = conflicts or ConflictService()
        # Period presets of new templates are resolved against this day.
        self.reference = reference or date.today()

    def find_all(
        self,
        *,
        group_id: int | None = None,
        teacher_id: int | None = None,
        classroom_id: int | None = None,
        day_of_week: int | None = None,
    ) -> list[StoredOccurrence]:
        query = select(ScheduleRecord).where(ScheduleRecord.deleted_at.is_(None))
        if group_id is not None:
            query = query.where(ScheduleRecord.group_id == group_id)
        if teacher_id is not None:
            query = query.where(ScheduleRecord.teacher_id == teacher_id)
        if classroom_id is not None:
            query = query.where(ScheduleRecord.classroom_id == classroom_id)
        if day_of_week is not None:
            query = query.where(ScheduleRecord.day_of_week == day_of_week)
        query = query.order_by(ScheduleRecord.day_of_week, ScheduleRecord.start_time, ScheduleRecord.created_at)
        return [StoredOccurrence.from_record(record) for record in self.db.execute(query).scalars()]

    def find_by_group(self, group_id: int) -> list[StoredOccurrence]:
        return self.find_all(group_id=group_id)

    def find_by_teacher(self, teacher_id: int) -> list[StoredOccurrence]:
        return self.find_all(teacher_id=teacher_id)

    def find_by_classroom(self, classroom_id: int) -> list[StoredOccurrence]:
        return self.find_all(classroom_id=classroom_id)

    def find_by_day_of_week(self, day_of_week: int) -> list[StoredOccurrence]:
        return self.find_all(day_of_week=day_of_week)

    def get(self, schedule_id: str) -> StoredOccurrence:
        return StoredOccurrence.from_record(self._record(schedule_id))

    def check_conflicts(self, candidate, *, exclude_id: str | None = None) -> list[ConflictDescriptor]:
        corpus = [
            item
            for item in self.find_by_day_of_week(canonical_slot(candidate).day_of_week)
            if item.id != exclude_id
        ]
        return self.conflicts.detect(candidate, corpus)

    def create(self, dto: ScheduleCreate, *, check_conflicts: bool = True) -> StoredOccurrence:
        dto = self._pin_period(dto)
        study_plan_id = self._check_references(dto)
        if check_conflicts:
            self._raise_on_conflicts(dto)

        record = ScheduleRecord(study_plan_id=study_plan_id, **self._columns(dto))
        record.is_ai_generated = dto.is_ai_generated
        record.ai_confidence = dto.ai_confidence
        self.db.add(record)
        self._flush("create")
        log_activity(
            self.db,
            action="schedule.create",
            entity_type="schedule",
            entity_id=record.id,
            details={"subject": record.subject_name, "day_of_week": record.day_of_week, "start": record.start_time},
        )
        self._commit(record)
        return StoredOccurrence.from_record(record)

    def update(self, schedule_id: str, dto: ScheduleUpdate) -> StoredOccurrence:
        record = self._record(schedule_id)
        current = StoredOccurrence.from_record(record).model_dump(exclude=READ_ONLY_FIELDS)
        changes = dto.model_dump(exclude_unset=True)
        if "period_preset" in changes and not {"start_date", "end_date"} & changes.keys():
            # A new preset replaces the dates pinned from the old one.
            current.update(start_date=None, end_date=None)
        try:
            candidate = ScheduleCreate.model_validate({**current, **changes})
        except ValidationError as exc:
            messages = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
            raise ScheduleValidationError("Updated schedule is invalid", details={"errors": messages}) from exc
        candidate = self._pin_period(candidate)

        study_plan_id = self._check_references(candidate)
        self._raise_on_conflicts(candidate, exclude_id=schedule_id)

        record.study_plan_id = study_plan_id
        for key, value in self._columns(candidate).items():
            setattr(record, key, value)
        log_activity(
            self.db,
            action="schedule.update",
            entity_type="schedule",
            entity_id=schedule_id,
            details={"fields": sorted(changes)},
        )
        self._commit(record)
        return StoredOccurrence.from_record(record)

    def move(self, schedule_id: str, move: ScheduleMove) -> StoredOccurrence:
        """Drag-and-reschedule: only day, date and times change.

        Moving a recurring lesson to a date detaches that single week: the series skips the
        week's occurrence and a dated lesson is created on the target date instead.
        """
        record = self._record(schedule_id)
        stored = StoredOccurrence.from_record(record)

        new_date = stored.date
        if move.date is not None:
            if move.day_of_week is not None and move.day_of_week != move.date.isoweekday():
                raise ScheduleValidationError("dayOfWeek does not match date")
            if stored.date is None and stored.recurrence is not Recurrence.once:
                return self._detach(record, stored, move)
            new_date = move.date
            new_day = move.date.isoweekday()
        else:
            new_day = move.day_of_week
            if stored.date is not None:
                # Keep a dated lesson inside its week when only the weekday changes.
                new_date = stored.date + timedelta(days=new_day - stored.date.isoweekday())

        candidate = stored.model_copy(
            update={
                "date": new_date,
                "day_of_week": new_day,
                "start_time": move.start_time,
                "end_time": move.end_time,
            }
        )
        self._raise_on_conflicts(candidate, exclude_id=schedule_id)

        previous = {
            "date": stored.date.isoformat() if stored.date else None,
            "day_of_week": stored.day_of_week,
            "start": stored.start_time,
            "end": stored.end_time,
        }
        target = {
            "date": new_date.isoformat() if new_date else None,
            "day_of_week": new_day,
            "start": move.start_time,
            "end": move.end_time,
        }
        record.date = new_date
        record.day_of_week = new_day
        record.start_time = move.start_time
        record.end_time = move.end_time
        log_activity(
            self.db,
            action="schedule.move",
            entity_type="schedule",
            entity_id=schedule_id,
            details={"from": previous, "to": target},
        )
        self._commit(record)
        return StoredOccurrence.from_record(record)

    def _detach(self, record: ScheduleRecord, stored: StoredOccurrence, move: ScheduleMove) -> StoredOccurrence:
        skipped = week_start(move.date) + timedelta(days=stored.day_of_week - 1)
        single = ScheduleCreate(
            date=move.date,
            recurrence=Recurrence.once,
            start_time=move.start_time,
            end_time=move.end_time,
            group_id=stored.group_id,
            teacher_id=stored.teacher_id,
            classroom_id=stored.classroom_id,
            subject=stored.subject,
            is_ai_generated=stored.is_ai_generated,
            ai_confidence=stored.ai_confidence,
        )
        # On the target date the series can only clash through the week being skipped.
        self._raise_on_conflicts(single, exclude_id=record.id)

        if skipped not in stored.excluded_dates and occurs_on(
            stored, skipped, reference=self.reference, anchor_fallback=self.conflicts.anchor_fallback
        ):
            record.excluded_dates = sorted(value.isoformat() for value in [*stored.excluded_dates, skipped])
        detached = ScheduleRecord(study_plan_id=record.study_plan_id, **self._columns(single))
        detached.is_ai_generated = single.is_ai_generated
        detached.ai_confidence = single.ai_confidence
        self.db.add(detached)
        self._flush("move")
        log_activity(
            self.db,
            action="schedule.move",
            entity_type="schedule",
            entity_id=record.id,
            details={"skipped": skipped.isoformat(), "detached_id": detached.id, "date": move.date.isoformat()},
        )
        self._commit(detached)
        self.db.refresh(record)
        return StoredOccurrence.from_record(detached)

    def remove(self, schedule_id: str) -> None:
        record = self._record(schedule_id)
        record.deleted_at = datetime.now(timezone.utc)
        log_activity(
            self.db,
            action="schedule.delete",
            entity_type="schedule",
            entity_id=schedule_id,
            details={"subject": record.subject_name},
        )
        self._commit(record)

    def log(self, action: str, details: dict) -> None:
        log_activity(self.db, action=action, entity_type="schedule", details=details)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f"Could not record activity {action}: {exc}") from exc

    def _record(self, schedule_id: str) -> ScheduleRecord:
        record = self.db.get(ScheduleRecord, schedule_id)
        if record is None or record.deleted_at is not None:
            raise ResourceNotFoundError("Schedule", schedule_id)
        return record

    def _check_references(self, dto) -> int:
        if self.db.get(Group, dto.group_id) is None:
            raise ResolutionError("group", dto.group_id)
        if self.db.get(Teacher, dto.teacher_id) is None:
            raise ResolutionError("teacher", dto.teacher_id)
        if dto.classroom_id is not None and self.db.get(Classroom, dto.classroom_id) is None:
            raise ResolutionError("classroom", dto.classroom_id)

        if dto.subject.study_plan_id is not None:
            if self.db.get(StudyPlan, dto.subject.study_plan_id) is None:
                raise ResolutionError("study plan", dto.subject.study_plan_id)
            return dto.subject.study_plan_id
        plan = self.db.execute(
            select(StudyPlan).where(StudyPlan.name == dto.subject.name, StudyPlan.teacher_id == dto.teacher_id)
        ).scalars().first()
        if plan is None:
            raise ResolutionError("study plan", dto.subject.name)
        return plan.id

    def _raise_on_conflicts(self, candidate, *, exclude_id: str | None = None) -> None:
        found = self.check_conflicts(candidate, exclude_id=exclude_id)
        if found:
            raise ScheduleConflictError(
                f"Schedule conflicts with {len(found)} existing booking(s)", conflicts_payload(found)
            )

    def _pin_period(self, dto: ScheduleCreate) -> ScheduleCreate:
        """Stores a preset-only template with the dates the preset resolves to today."""
        if dto.recurrence is Recurrence.once or dto.period_preset is None or dto.start_date is not None:
            return dto
        start, end = effective_bounds(dto, self.reference)
        return dto.model_copy(update={"start_date": start, "end_date": end})

    @staticmethod
    def _columns(dto) -> dict:
        return {
            "subject_name": dto.subject.name,
            "group_id": dto.group_id,
            "teacher_id": dto.teacher_id,
            "classroom_id": dto.classroom_id,
            "date": dto.date,
            "day_of_week": dto.day_of_week,
            "start_time": dto.start_time,
            "end_time": dto.end_time,
            "recurrence": dto.recurrence,
            "status": dto.status,
            "anchor_date": dto.anchor_date,
            "start_date": dto.start_date,
            "end_date": dto.end_date,
            "period_preset": dto.period_preset.value if dto.period_preset else None,
            "excluded_dates": [value.isoformat() for value in dto.excluded_dates],
        }

    def _flush(self, operation: str) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Schedule %s failed: %s", operation, exc)
            raise PersistenceError(f"Could not {operation} schedule: {exc.__class__.__name__}") from exc

    def _commit(self, record: ScheduleRecord) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Schedule write failed: %s", exc)
            raise PersistenceError(f"Could not save schedule: {exc.__class__.__name__}") from exc
        self.db.refresh(record)
