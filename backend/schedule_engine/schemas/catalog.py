from pydantic import BaseModel, ConfigDict

from schedule_engine.models.classroom import ClassroomType


class CatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class GroupOut(CatalogEntry):
    id: int
    name: str
    student_count: int = 0


class TeacherOut(CatalogEntry):
    id: int
    name: str
    email: str | None = None


class ClassroomOut(CatalogEntry):
    id: int
    name: str
    type: ClassroomType
    capacity: int


class StudyPlanOut(CatalogEntry):
    id: int
    name: str
    teacher_id: int
    hours_per_week: int
    room_type: ClassroomType | None = None
    group_ids: tuple[int, ...] = ()
