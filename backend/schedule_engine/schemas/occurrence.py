from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from schedule_engine.models.schedule import OccurrenceStatus, Recurrence
from schedule_engine.services.calendar import PeriodPreset, parse_day, parse_time_to_minutes


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubjectRef(CamelModel):
    study_plan_id: int | None = None
    name: str = Field(min_length=1, max_length=200)


class OccurrenceBase(CamelModel):
    id: str | None = None
    temp_id: str | None = Field(default=None, max_length=100)
    date: dt.date | None = None
    day_of_week: int | None = None
    start_time: str
    end_time: str
    group_id: int
    teacher_id: int
    classroom_id: int | None = None
    subject: SubjectRef
    recurrence: Recurrence = Recurrence.weekly
    status: OccurrenceStatus | None = None
    anchor_date: dt.date | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    period_preset: PeriodPreset | None = None
    excluded_dates: list[dt.date] = Field(default_factory=list)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def validate_day(cls, value):
        if value is None:
            return None
        return parse_day(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "OccurrenceBase":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self

    @property
    def ref(self) -> str:
        return self.id or self.temp_id or f"{self.subject.name}@{self.start_time}"


class LessonOccurrence(OccurrenceBase):
    """A lesson placement whose recurrence fields are mutually consistent."""

    @model_validator(mode="after")
    def validate_recurrence(self) -> "LessonOccurrence":
        if self.recurrence is Recurrence.once:
            if self.date is None:
                raise ValueError("A 'once' occurrence requires date")
            if self.start_date is not None or self.end_date is not None:
                raise ValueError("A 'once' occurrence cannot carry startDate/endDate")
            if self.period_preset is not None:
                raise ValueError("A 'once' occurrence cannot carry periodPreset")
            derived = self.date.isoweekday()
            if self.day_of_week is not None and self.day_of_week != derived:
                raise ValueError("dayOfWeek does not match date")
            self.day_of_week = derived
            return self

        if self.date is not None:
            raise ValueError(f"A '{self.recurrence.value}' occurrence cannot carry date")
        if self.day_of_week is None:
            raise ValueError(f"A '{self.recurrence.value}' occurrence requires dayOfWeek")
        has_range = self.start_date is not None and self.end_date is not None
        if self.period_preset is None and not has_range:
            raise ValueError("Recurring occurrences require periodPreset or both startDate and endDate")
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("startDate and endDate must be provided together")
        if has_range and self.end_date < self.start_date:
            raise ValueError("endDate must not precede startDate")
        return self


class DraftItem(LessonOccurrence):
    temp_id: str = Field(min_length=1, max_length=100)
    group_name: str | None = None
    teacher_name: str | None = None
    classroom_name: str | None = None
    group_size: int | None = None


class StoredOccurrence(OccurrenceBase):
    """Read model of a persisted schedule row; recurrence rules are not re-checked."""

    id: str
    day_of_week: int
    is_ai_generated: bool = False
    ai_confidence: float | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @classmethod
    def from_record(cls, record) -> "StoredOccurrence":
        return cls(
            id=record.id,
            date=record.date,
            day_of_week=record.day_of_week,
            start_time=record.start_time,
            end_time=record.end_time,
            group_id=record.group_id,
            teacher_id=record.teacher_id,
            classroom_id=record.classroom_id,
            subject=SubjectRef(study_plan_id=record.study_plan_id, name=record.subject_name),
            recurrence=record.recurrence,
            status=record.status,
            anchor_date=record.anchor_date,
            start_date=record.start_date,
            end_date=record.end_date,
            period_preset=record.period_preset,
            excluded_dates=record.excluded_dates or [],
            is_ai_generated=record.is_ai_generated,
            ai_confidence=record.ai_confidence,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ProjectedOccurrence(StoredOccurrence):
    occurrence_date: dt.date
    derived_status: OccurrenceStatus
