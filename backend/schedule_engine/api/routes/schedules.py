from __future__ import annotations

from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status

from schedule_engine.api.deps import get_schedule_store
from schedule_engine.core.config import Settings, get_settings
from schedule_engine.schemas.conflict import ConflictCheckRequest, ConflictCheckResponse
from schedule_engine.schemas.occurrence import StoredOccurrence
from schedule_engine.schemas.schedule import (
    CalendarResponse,
    GridResponse,
    ScheduleCreate,
    ScheduleMove,
    ScheduleUpdate,
)
from schedule_engine.services.calendar import week_start as monday_of
from schedule_engine.services.occurrence_expander import schedule_now
from schedule_engine.services.projector import project_month, project_week
from schedule_engine.services.schedule_store import ScheduleStore

router = APIRouter()


@router.get("/", response_model=list[StoredOccurrence])
def list_schedules(
    group_id: int | None = Query(default=None),
    teacher_id: int | None = Query(default=None),
    classroom_id: int | None = Query(default=None),
    day_of_week: int | None = Query(default=None, ge=1, le=7),
    store: ScheduleStore = Depends(get_schedule_store),
) -> list[StoredOccurrence]:
    return store.find_all(
        group_id=group_id,
        teacher_id=teacher_id,
        classroom_id=classroom_id,
        day_of_week=day_of_week,
    )


@router.post("/", response_model=StoredOccurrence, status_code=status.HTTP_201_CREATED)
def create_schedule(payload: ScheduleCreate, store: ScheduleStore = Depends(get_schedule_store)) -> StoredOccurrence:
    return store.create(payload)


@router.post("/conflicts/check", response_model=ConflictCheckResponse)
def check_conflicts(
    payload: ConflictCheckRequest, store: ScheduleStore = Depends(get_schedule_store)
) -> ConflictCheckResponse:
    conflicts = store.check_conflicts(payload.candidate, exclude_id=payload.exclude_id)
    return ConflictCheckResponse(conflicts=conflicts, has_conflicts=bool(conflicts))


@router.get("/grid", response_model=GridResponse)
def weekly_grid(
    week_start: date | None = Query(default=None),
    store: ScheduleStore = Depends(get_schedule_store),
    settings: Settings = Depends(get_settings),
) -> GridResponse:
    now = schedule_now(settings.schedule_timezone)
    monday = monday_of(week_start or now.date())
    days = project_week(store.find_all(), monday, now=now, anchor_fallback=settings.biweekly_anchor_fallback)
    return GridResponse(week_start=monday, week_end=monday + timedelta(days=6), days=days)


@router.get("/calendar", response_model=CalendarResponse)
def monthly_calendar(
    year: int = Query(ge=1970, le=2100),
    month: int = Query(ge=1, le=12),
    store: ScheduleStore = Depends(get_schedule_store),
    settings: Settings = Depends(get_settings),
) -> CalendarResponse:
    now = schedule_now(settings.schedule_timezone)
    days = project_month(store.find_all(), year, month, now=now, anchor_fallback=settings.biweekly_anchor_fallback)
    return CalendarResponse(year=year, month=month, days=days)


@router.get("/{schedule_id}", response_model=StoredOccurrence)
def get_schedule(schedule_id: str, store: ScheduleStore = Depends(get_schedule_store)) -> StoredOccurrence:
    return store.get(schedule_id)


@router.put("/{schedule_id}", response_model=StoredOccurrence)
def update_schedule(
    schedule_id: str, payload: ScheduleUpdate, store: ScheduleStore = Depends(get_schedule_store)
) -> StoredOccurrence:
    return store.update(schedule_id, payload)


@router.patch("/{schedule_id}/move", response_model=StoredOccurrence)
def move_schedule(
    schedule_id: str, payload: ScheduleMove, store: ScheduleStore = Depends(get_schedule_store)
) -> StoredOccurrence:
    return store.move(schedule_id, payload)


@router.delete("/{schedule_id}")
def delete_schedule(schedule_id: str, store: ScheduleStore = Depends(get_schedule_store)) -> dict:
    store.remove(schedule_id)
    return {"success": True}
