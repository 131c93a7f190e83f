from typing import Literal

from pydantic import Field

from schedule_engine.schemas.occurrence import CamelModel, LessonOccurrence

ConflictType = Literal["teacher", "room", "group"]
ConflictSeverity = Literal["high", "medium", "low"]


class ConflictDescriptor(CamelModel):
    type: ConflictType
    description: str
    severity: ConflictSeverity
    candidate_ref: str | None = None
    existing_ref: str | None = None


class ConflictCheckRequest(CamelModel):
    candidate: LessonOccurrence
    exclude_id: str | None = None


class ConflictCheckResponse(CamelModel):
    conflicts: list[ConflictDescriptor] = Field(default_factory=list)
    has_conflicts: bool = False
