from __future__ import annotations

import calendar
from collections.abc import Sequence
from datetime import date, datetime, timedelta

from schedule_engine.schemas.occurrence import ProjectedOccurrence, StoredOccurrence
from schedule_engine.services.calendar import parse_time_to_minutes, week_start
from schedule_engine.services.occurrence_expander import derive_status, expand

DATED, BOUNDED, UNBOUNDED = 0, 1, 2


def dedupe_key(occurrence: StoredOccurrence) -> tuple:
    return (
        occurrence.day_of_week,
        occurrence.start_time,
        occurrence.subject.study_plan_id,
        occurrence.group_id,
        occurrence.teacher_id,
        occurrence.classroom_id,
        occurrence.recurrence,
    )


def specificity(occurrence: StoredOccurrence) -> int:
    """Lower is more specific: a dated row beats a bounded template beats an open one."""
    if occurrence.date is not None:
        return DATED
    if occurrence.start_date or occurrence.end_date or occurrence.period_preset:
        return BOUNDED
    return UNBOUNDED


def project(
    stored: Sequence[StoredOccurrence],
    window_start: date,
    window_end: date,
    *,
    now: datetime,
    anchor_fallback: str = "window_start",
) -> list[ProjectedOccurrence]:
    chosen: dict[tuple, tuple[int, int, StoredOccurrence, date]] = {}
    for order, occurrence in enumerate(stored):
        rank = specificity(occurrence)
        for day in expand(occurrence, window_start, window_end, anchor_fallback=anchor_fallback):
            key = (day, *dedupe_key(occurrence))
            current = chosen.get(key)
            if current is None or (rank, order) < current[:2]:
                chosen[key] = (rank, order, occurrence, day)

    projected = [
        ProjectedOccurrence(
            **occurrence.model_dump(),
            occurrence_date=day,
            derived_status=derive_status(occurrence, now, on=day),
        )
        for _, _, occurrence, day in chosen.values()
    ]
    projected.sort(key=lambda item: (item.occurrence_date, parse_time_to_minutes(item.start_time), item.group_id))
    return projected


def project_week(
    stored: Sequence[StoredOccurrence], monday: date, *, now: datetime, anchor_fallback: str = "window_start"
) -> dict[int, list[ProjectedOccurrence]]:
    monday = week_start(monday)
    grid: dict[int, list[ProjectedOccurrence]] = {day: [] for day in range(1, 8)}
    for item in project(stored, monday, monday + timedelta(days=6), now=now, anchor_fallback=anchor_fallback):
        grid[item.occurrence_date.isoweekday()].append(item)
    return grid


def project_month(
    stored: Sequence[StoredOccurrence], year: int, month: int, *, now: datetime, anchor_fallback: str = "window_start"
) -> dict[str, list[ProjectedOccurrence]]:
    last_day = calendar.monthrange(year, month)[1]
    first, last = date(year, month, 1), date(year, month, last_day)
    days: dict[str, list[ProjectedOccurrence]] = {}
    for item in project(stored, first, last, now=now, anchor_fallback=anchor_fallback):
        days.setdefault(item.occurrence_date.isoformat(), []).append(item)
    return days
