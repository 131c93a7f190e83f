from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schedule_engine.api.deps import get_db
from schedule_engine.schemas.catalog import ClassroomOut, GroupOut, StudyPlanOut, TeacherOut
from schedule_engine.services.catalog import CatalogSource

router = APIRouter()


@router.get("/groups", response_model=list[GroupOut])
def list_groups(db: Session = Depends(get_db)) -> list[GroupOut]:
    return CatalogSource(db).get_groups()


@router.get("/teachers", response_model=list[TeacherOut])
def list_teachers(db: Session = Depends(get_db)) -> list[TeacherOut]:
    return CatalogSource(db).get_teachers()


@router.get("/classrooms", response_model=list[ClassroomOut])
def list_classrooms(db: Session = Depends(get_db)) -> list[ClassroomOut]:
    return CatalogSource(db).get_classrooms()


@router.get("/study-plans", response_model=list[StudyPlanOut])
def list_study_plans(
    group_id: int | None = Query(default=None),
    teacher_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[StudyPlanOut]:
    return CatalogSource(db).get_study_plans(group_id=group_id, teacher_id=teacher_id)
