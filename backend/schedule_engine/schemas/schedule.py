from __future__ import annotations

import datetime as dt

from pydantic import Field, field_validator, model_validator

from schedule_engine.models.schedule import OccurrenceStatus, Recurrence
from schedule_engine.schemas.occurrence import CamelModel, LessonOccurrence, ProjectedOccurrence, SubjectRef
from schedule_engine.services.calendar import PeriodPreset, parse_day, parse_time_to_minutes


class ScheduleCreate(LessonOccurrence):
    is_ai_generated: bool = False
    ai_confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class ScheduleUpdate(CamelModel):
    date: dt.date | None = None
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    group_id: int | None = None
    teacher_id: int | None = None
    classroom_id: int | None = None
    subject: SubjectRef | None = None
    recurrence: Recurrence | None = None
    status: OccurrenceStatus | None = None
    anchor_date: dt.date | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    period_preset: PeriodPreset | None = None
    excluded_dates: list[dt.date] | None = None


class ScheduleMove(CamelModel):
    """Drag-and-reschedule: only the placement in time may change."""

    day_of_week: int | None = None
    date: dt.date | None = None
    start_time: str
    end_time: str

    @field_validator("day_of_week", mode="before")
    @classmethod
    def validate_day(cls, value):
        return None if value is None else parse_day(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_target(self) -> "ScheduleMove":
        if self.day_of_week is None and self.date is None:
            raise ValueError("Provide dayOfWeek or date")
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self


class GridResponse(CamelModel):
    week_start: dt.date
    week_end: dt.date
    days: dict[int, list[ProjectedOccurrence]] = Field(default_factory=dict)


class CalendarResponse(CamelModel):
    year: int
    month: int
    days: dict[str, list[ProjectedOccurrence]] = Field(default_factory=dict)
