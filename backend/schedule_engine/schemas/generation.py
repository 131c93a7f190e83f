from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from schedule_engine.models.classroom import ClassroomType
from schedule_engine.schemas.conflict import ConflictDescriptor
from schedule_engine.schemas.occurrence import CamelModel, DraftItem, StoredOccurrence
from schedule_engine.services.calendar import PeriodPreset, parse_day, parse_time_to_minutes, resolve_period


class TimeWindow(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "TimeWindow":
        if parse_time_to_minutes(self.end) <= parse_time_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self


class GenerationConstraints(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    working_hours: TimeWindow = TimeWindow(start="08:00", end="17:00")
    max_consecutive_hours: int = Field(default=4, ge=1, le=12)
    exclude_weekends: bool = True
    # A gap at least this long between two lessons resets the consecutive-lesson counter.
    min_break_duration: int = Field(default=15, ge=0, le=240)
    room_preferences: dict[ClassroomType, float] = Field(default_factory=dict)
    lesson_duration: int = Field(default=45, ge=10, le=240)
    # Recess between generated time slots.
    break_duration: int = Field(default=10, ge=0, le=120)
    max_lessons_per_day: int = Field(default=8, ge=1, le=16)
    lunch_break: TimeWindow | None = None
    custom_holidays: tuple[dt.date, ...] = ()
    # Subject names below are matched case-insensitively.
    no_first_lesson_subjects: tuple[str, ...] = ()
    no_last_lesson_subjects: tuple[str, ...] = ()
    preferred_days: dict[str, tuple[int, ...]] = Field(default_factory=dict)

    @field_validator("preferred_days", mode="before")
    @classmethod
    def parse_preferred_days(cls, value):
        if not isinstance(value, dict):
            return value
        return {subject: tuple(parse_day(day) for day in days) for subject, days in value.items()}

    def avoids_first_slot(self, subject: str) -> bool:
        return subject.casefold() in {name.casefold() for name in self.no_first_lesson_subjects}

    def avoids_last_slot(self, subject: str) -> bool:
        return subject.casefold() in {name.casefold() for name in self.no_last_lesson_subjects}

    def allowed_days(self, subject: str) -> tuple[int, ...]:
        """Weekdays the subject is restricted to; empty means any day."""
        for name, days in self.preferred_days.items():
            if name.casefold() == subject.casefold():
                return days
        return ()


class GenerationParams(CamelModel):
    group_ids: list[int] = Field(min_length=1)
    study_plan_ids: list[int] = Field(default_factory=list)
    subject_hours: dict[int, int] = Field(default_factory=dict)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    period_preset: PeriodPreset | None = None
    biweekly_study_plan_ids: list[int] = Field(default_factory=list)
    constraints: GenerationConstraints = Field(default_factory=GenerationConstraints)

    @model_validator(mode="after")
    def validate_period(self) -> "GenerationParams":
        if self.period_preset is None and (self.start_date is None or self.end_date is None):
            raise ValueError("Provide periodPreset or both startDate and endDate")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not precede startDate")
        return self

    def period(self, reference: dt.date) -> tuple[dt.date, dt.date]:
        if self.start_date is not None and self.end_date is not None:
            return self.start_date, self.end_date
        resolved = resolve_period(self.period_preset, self.start_date or reference)
        return resolved.start, resolved.end


class MissedPlacement(CamelModel):
    study_plan_id: int
    group_id: int
    subject: str
    reason: str


class DraftStats(CamelModel):
    draft_count: int = 0
    classrooms_assigned: int = 0
    missed_count: int = 0
    expected_by_group: dict[int, int] = Field(default_factory=dict)
    placed_by_group: dict[int, int] = Field(default_factory=dict)


class DraftResponse(CamelModel):
    draft: list[DraftItem] = Field(default_factory=list)
    stats: DraftStats = Field(default_factory=DraftStats)
    missed: list[MissedPlacement] = Field(default_factory=list)


class OptimizeRequest(CamelModel):
    draft: list[DraftItem]
    params: GenerationParams


class AdvisoryConflict(CamelModel):
    type: str
    description: str
    severity: str | None = None
    affected_items: list[int] = Field(default_factory=list)


class Suggestion(CamelModel):
    type: str
    description: str
    priority: str | None = None


class ItemError(CamelModel):
    index: int | None = None
    temp_id: str | None = None
    message: str


class OptimizedScheduleResponse(CamelModel):
    generated_schedule: list[DraftItem] = Field(default_factory=list)
    conflicts: list[AdvisoryConflict] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    statistics: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    errors: list[ItemError] = Field(default_factory=list)


class ValidateRequest(CamelModel):
    generated: list[DraftItem]


class ValidationResult(CamelModel):
    conflicts: list[ConflictDescriptor] = Field(default_factory=list)
    is_ok: bool = True


class ApplyRequest(CamelModel):
    generated: list[DraftItem]
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class ApplyError(CamelModel):
    index: int
    temp_id: str | None = None
    reason: str
    conflicts: list[ConflictDescriptor] = Field(default_factory=list)


class ApplyResult(CamelModel):
    created_count: int = 0
    failed_count: int = 0
    created: list[StoredOccurrence] = Field(default_factory=list)
    errors: list[ApplyError] = Field(default_factory=list)
