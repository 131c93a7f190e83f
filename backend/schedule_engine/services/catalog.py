from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from schedule_engine.core.exceptions import ResolutionError
from schedule_engine.models.classroom import Classroom
from schedule_engine.models.group import Group
from schedule_engine.models.study_plan import StudyPlan, study_plan_groups
from schedule_engine.models.teacher import Teacher
from schedule_engine.schemas.catalog import ClassroomOut, GroupOut, StudyPlanOut, TeacherOut

Entry = TypeVar("Entry", GroupOut, TeacherOut, ClassroomOut, StudyPlanOut)


def _resolve(entity: str, entries: Sequence[Entry], value) -> Entry:
    """Match ``value`` by id, then exact name, then case-insensitive substring."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ResolutionError(entity, value)

    if isinstance(value, bool):
        raise ResolutionError(entity, value)
    if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
        wanted = int(value)
        for entry in entries:
            if entry.id == wanted:
                return entry
        if isinstance(value, int):
            raise ResolutionError(entity, value)

    text = str(value).strip()
    for entry in entries:
        if entry.name == text:
            return entry
    lowered = text.casefold()
    for entry in entries:
        if lowered in entry.name.casefold():
            return entry
    raise ResolutionError(entity, value)


@dataclass(frozen=True)
class Catalogs:
    """Immutable snapshot of the reference data one pipeline run works against."""

    groups: tuple[GroupOut, ...] = ()
    teachers: tuple[TeacherOut, ...] = ()
    classrooms: tuple[ClassroomOut, ...] = ()
    study_plans: tuple[StudyPlanOut, ...] = ()
    _index: dict = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_index",
            {
                "group": {item.id: item for item in self.groups},
                "teacher": {item.id: item for item in self.teachers},
                "classroom": {item.id: item for item in self.classrooms},
                "study_plan": {item.id: item for item in self.study_plans},
            },
        )

    def group(self, group_id: int) -> GroupOut | None:
        return self._index["group"].get(group_id)

    def teacher(self, teacher_id: int) -> TeacherOut | None:
        return self._index["teacher"].get(teacher_id)

    def classroom(self, classroom_id: int | None) -> ClassroomOut | None:
        return self._index["classroom"].get(classroom_id)

    def study_plan(self, study_plan_id: int | None) -> StudyPlanOut | None:
        return self._index["study_plan"].get(study_plan_id)

    def resolve_group(self, value) -> GroupOut:
        return _resolve("group", self.groups, value)

    def resolve_teacher(self, value) -> TeacherOut:
        return _resolve("teacher", self.teachers, value)

    def resolve_classroom(self, value) -> ClassroomOut:
        return _resolve("classroom", self.classrooms, value)

    def resolve_study_plan(self, value) -> StudyPlanOut:
        return _resolve("study plan", self.study_plans, value)

    def plans_for_group(self, group_id: int) -> list[StudyPlanOut]:
        return [plan for plan in self.study_plans if group_id in plan.group_ids]


def _study_plan_out(plan: StudyPlan) -> StudyPlanOut:
    return StudyPlanOut(
        id=plan.id,
        name=plan.name,
        teacher_id=plan.teacher_id,
        hours_per_week=plan.hours_per_week,
        room_type=plan.room_type,
        group_ids=tuple(sorted(group.id for group in plan.groups)),
    )


class CatalogSource:
    def __init__(self, db: Session):
        self.db = db

    def get_groups(self) -> list[GroupOut]:
        rows = self.db.execute(select(Group).order_by(Group.name)).scalars()
        return [GroupOut.model_validate(row) for row in rows]

    def get_teachers(self) -> list[TeacherOut]:
        rows = self.db.execute(select(Teacher).order_by(Teacher.name)).scalars()
        return [TeacherOut.model_validate(row) for row in rows]

    def get_classrooms(self) -> list[ClassroomOut]:
        rows = self.db.execute(select(Classroom).order_by(Classroom.name)).scalars()
        return [ClassroomOut.model_validate(row) for row in rows]

    def get_study_plans(
        self,
        *,
        group_id: int | None = None,
        teacher_id: int | None = None,
        ids: Sequence[int] | None = None,
    ) -> list[StudyPlanOut]:
        query = select(StudyPlan).order_by(StudyPlan.id)
        if group_id is not None:
            query = query.join(study_plan_groups).where(study_plan_groups.c.group_id == group_id)
        if teacher_id is not None:
            query = query.where(StudyPlan.teacher_id == teacher_id)
        if ids:
            query = query.where(StudyPlan.id.in_(list(ids)))
        return [_study_plan_out(plan) for plan in self.db.execute(query).unique().scalars()]

    def snapshot(self) -> Catalogs:
        return Catalogs(
            groups=tuple(self.get_groups()),
            teachers=tuple(self.get_teachers()),
            classrooms=tuple(self.get_classrooms()),
            study_plans=tuple(self.get_study_plans()),
        )
