from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date

from schedule_engine.core.exceptions import ResolutionError
from schedule_engine.models.classroom import ClassroomType
from schedule_engine.models.schedule import OccurrenceStatus, Recurrence
from schedule_engine.schemas.catalog import ClassroomOut, GroupOut, StudyPlanOut
from schedule_engine.schemas.generation import (
    DraftResponse,
    DraftStats,
    GenerationConstraints,
    GenerationParams,
    MissedPlacement,
)
from schedule_engine.schemas.occurrence import DraftItem, SubjectRef
from schedule_engine.services.calendar import build_time_slots, intervals_overlap, parse_time_to_minutes
from schedule_engine.services.catalog import Catalogs
from schedule_engine.services.conflict_service import ConflictService, share_a_day

logger = logging.getLogger(__name__)

WEEKDAYS = (1, 2, 3, 4, 5)
WEEKDAYS_WITH_SATURDAY = (1, 2, 3, 4, 5, 6)

SUBJECT_ROOM_RULES: tuple[tuple[re.Pattern, tuple[ClassroomType, ...]], ...] = (
    (re.compile(r"ИНФОРМ|ПРОГРАМ|PROGRAM|COMPUT|\bIT\b", re.IGNORECASE), (ClassroomType.computer_lab,)),
    (re.compile(r"ФИЗИКА|ХИМИ|LAB|ЛАБ|PHYSICS|CHEMI", re.IGNORECASE), (ClassroomType.laboratory,)),
    (re.compile(r"ЛЕКЦ|THEOR|ТЕОР|LECTURE", re.IGNORECASE), (ClassroomType.lecture_hall,)),
    (re.compile(r"СЕМИН|ДИСК|SEMINAR", re.IGNORECASE), (ClassroomType.seminar_room,)),
    (re.compile(r"СПОРТ|ФИЗКУЛ|\bPE\b|GYM|SPORT|PHYSICAL EDUCATION", re.IGNORECASE), (ClassroomType.gymnasium,)),
    (re.compile(r"ПРАКТИК|WORK|МАСТЕР", re.IGNORECASE), (ClassroomType.workshop,)),
)


def infer_room_types(subject: str) -> tuple[ClassroomType, ...]:
    preferred: list[ClassroomType] = []
    for pattern, room_types in SUBJECT_ROOM_RULES:
        if pattern.search(subject):
            preferred.extend(room_types)
    return tuple(preferred) or (ClassroomType.auditorium,)


def room_score(
    room: ClassroomOut,
    *,
    preferred: tuple[ClassroomType, ...],
    group_size: int,
    room_preferences: dict[ClassroomType, float],
) -> float:
    if room.type in preferred:
        type_score = 2
    elif room.type is ClassroomType.auditorium:
        type_score = 1
    else:
        type_score = 0
    size_ratio = room.capacity / group_size if group_size else 2
    if 1 <= size_ratio <= 1.5:
        size_score = 2.0
    elif size_ratio <= 2:
        size_score = 1.0
    else:
        size_score = 0.3
    return type_score * 3 + size_score * 2 + room_preferences.get(room.type, 0.0)


def holidays_on_weekday(holidays: Iterable[date], day: int, start: date, end: date) -> list[date]:
    return sorted(holiday for holiday in holidays if start <= holiday <= end and holiday.isoweekday() == day)


def longest_chain(intervals: Iterable[tuple[int, int]], min_break: int) -> int:
    """Length of the longest run of lessons whose gaps are shorter than ``min_break``."""
    longest = 0
    chain = 0
    previous_end: int | None = None
    for start, end in sorted(intervals):
        if previous_end is not None and start - previous_end < min_break:
            chain += 1
        else:
            chain = 1
        previous_end = max(end, previous_end) if previous_end is not None else end
        longest = max(longest, chain)
    return longest


def _movable(item) -> bool:
    return item.date is None and item.start_date is not None and item.end_date is not None


class DraftBuilder:
    """Greedy first-fit placement of study plan hours into weekly templates."""

    def __init__(
        self,
        catalogs: Catalogs,
        *,
        live: Iterable = (),
        reference: date | None = None,
        anchor_fallback: str = "window_start",
    ):
        self.catalogs = catalogs
        self.live = [item for item in live if item.status != OccurrenceStatus.cancelled]
        self.reference = reference or date.today()
        self.anchor_fallback = anchor_fallback

    def build(self, params: GenerationParams) -> DraftResponse:
        constraints = params.constraints
        period_start, period_end = params.period(self.reference)
        conflicts = ConflictService.for_catalogs(
            self.catalogs, reference=period_start, anchor_fallback=self.anchor_fallback
        )

        days = WEEKDAYS if constraints.exclude_weekends else WEEKDAYS_WITH_SATURDAY
        slots = self._usable_slots(constraints)
        biweekly_ids = set(params.biweekly_study_plan_ids)

        by_day: dict[int, list] = defaultdict(list)
        for item in self.live:
            by_day[item.day_of_week].append(item)

        draft: list[DraftItem] = []
        missed: list[MissedPlacement] = []
        stats = DraftStats()

        for group_id in params.group_ids:
            group = self.catalogs.group(group_id)
            if group is None:
                raise ResolutionError("group", group_id)
            plans = self._plans_for(group, params)
            expected = 0
            placed = 0
            for plan in plans:
                teacher = self.catalogs.teacher(plan.teacher_id)
                if teacher is None:
                    raise ResolutionError("teacher", plan.teacher_id)
                hours = params.subject_hours.get(plan.id, plan.hours_per_week)
                recurrence = Recurrence.biweekly if plan.id in biweekly_ids else Recurrence.weekly
                expected += hours
                for number in range(1, hours + 1):
                    item = self._place(
                        plan=plan,
                        group=group,
                        teacher_name=teacher.name,
                        number=number,
                        recurrence=recurrence,
                        period=(period_start, period_end),
                        params=params,
                        days=days,
                        slots=slots,
                        by_day=by_day,
                        conflicts=conflicts,
                    )
                    if item is None:
                        missed.append(
                            MissedPlacement(
                                study_plan_id=plan.id,
                                group_id=group.id,
                                subject=plan.name,
                                reason=(
                                    f"No free slot for group {group.name} with teacher {teacher.name} "
                                    f"within {constraints.working_hours.start}-{constraints.working_hours.end}"
                                ),
                            )
                        )
                        continue
                    draft.append(item)
                    by_day[item.day_of_week].append(item)
                    placed += 1
            stats.expected_by_group[group.id] = expected
            stats.placed_by_group[group.id] = placed

        self._adjust(draft, by_day, days, slots, constraints, conflicts)

        stats.draft_count = len(draft)
        stats.classrooms_assigned = sum(1 for item in draft if item.classroom_id is not None)
        stats.missed_count = len(missed)
        logger.info(
            "Draft built for %d groups: %d items placed, %d missed, %d with classrooms",
            len(params.group_ids),
            stats.draft_count,
            stats.missed_count,
            stats.classrooms_assigned,
        )
        return DraftResponse(draft=draft, stats=stats, missed=missed)

    def refine(self, draft: Sequence[DraftItem], params: GenerationParams) -> list[DraftItem]:
        """Spreads an existing draft over the week and closes gaps inside each group's day.

        Lessons are only moved when the new slot passes every check the builder applies;
        nothing is dropped.
        """
        constraints = params.constraints
        period_start, _ = params.period(self.reference)
        conflicts = ConflictService.for_catalogs(
            self.catalogs, reference=period_start, anchor_fallback=self.anchor_fallback
        )
        days = WEEKDAYS if constraints.exclude_weekends else WEEKDAYS_WITH_SATURDAY
        items = list(draft)
        by_day: dict[int, list] = defaultdict(list)
        for item in [*self.live, *items]:
            by_day[item.day_of_week].append(item)
        self._adjust(items, by_day, days, self._usable_slots(constraints), constraints, conflicts)
        return items

    def _adjust(self, draft, by_day, days, slots, constraints, conflicts) -> None:
        balanced = self._balance(draft, by_day, days, slots, constraints, conflicts)
        compressed = self._compress(draft, by_day, slots, constraints, conflicts)
        if balanced or compressed:
            logger.info("Draft adjusted: %d lessons moved to free weekdays, %d pulled earlier", balanced, compressed)

    def _plans_for(self, group: GroupOut, params: GenerationParams) -> list[StudyPlanOut]:
        plans = self.catalogs.plans_for_group(group.id)
        if params.study_plan_ids:
            wanted = set(params.study_plan_ids)
            plans = [plan for plan in plans if plan.id in wanted]
        return plans

    @staticmethod
    def _usable_slots(constraints: GenerationConstraints) -> list[tuple[str, str]]:
        slots = build_time_slots(
            constraints.working_hours.start,
            constraints.working_hours.end,
            constraints.lesson_duration,
            constraints.break_duration,
        )
        lunch = constraints.lunch_break
        if lunch is None:
            return slots
        lunch_start = parse_time_to_minutes(lunch.start)
        lunch_end = parse_time_to_minutes(lunch.end)
        return [
            (start, end)
            for start, end in slots
            if not intervals_overlap(parse_time_to_minutes(start), parse_time_to_minutes(end), lunch_start, lunch_end)
        ]

    def _day_order(self, days, by_day, group_id: int, plan_id: int) -> list[int]:
        def load(day: int) -> tuple[int, int, int]:
            lessons = [item for item in by_day[day] if item.group_id == group_id]
            same_subject = sum(1 for item in lessons if item.subject.study_plan_id == plan_id)
            return same_subject, len(lessons), day

        return sorted(days, key=load)

    def _fits(
        self,
        candidate: DraftItem,
        *,
        slot_index: int,
        slots,
        by_day,
        constraints: GenerationConstraints,
        conflicts: ConflictService,
        ignore: DraftItem | None = None,
    ) -> list | None:
        """Lessons sharing a day with ``candidate`` if it may take the slot, otherwise None."""
        subject = candidate.subject.name
        allowed = constraints.allowed_days(subject)
        if allowed and candidate.day_of_week not in allowed:
            return None
        if slot_index == 0 and constraints.avoids_first_slot(subject):
            return None
        if slot_index == len(slots) - 1 and constraints.avoids_last_slot(subject):
            return None

        same_day = [
            item
            for item in by_day[candidate.day_of_week]
            if item is not ignore
            and share_a_day(candidate, item, reference=candidate.start_date, anchor_fallback=self.anchor_fallback)
        ]
        group_lessons = [item for item in same_day if item.group_id == candidate.group_id]
        if len(group_lessons) >= constraints.max_lessons_per_day:
            return None
        if conflicts.detect(candidate, same_day):
            return None
        intervals = [
            (parse_time_to_minutes(item.start_time), parse_time_to_minutes(item.end_time))
            for item in [*group_lessons, candidate]
        ]
        if longest_chain(intervals, constraints.min_break_duration) > constraints.max_consecutive_hours:
            return None
        return same_day

    def _place(
        self,
        *,
        plan: StudyPlanOut,
        group: GroupOut,
        teacher_name: str,
        number: int,
        recurrence: Recurrence,
        period: tuple[date, date],
        params: GenerationParams,
        days,
        slots,
        by_day,
        conflicts: ConflictService,
    ) -> DraftItem | None:
        constraints = params.constraints
        period_start, period_end = period
        for day in self._day_order(days, by_day, group.id, plan.id):
            excluded = holidays_on_weekday(constraints.custom_holidays, day, period_start, period_end)
            for slot_index, (start_time, end_time) in enumerate(slots):
                candidate = DraftItem(
                    temp_id=f"{plan.id}-{group.id}-{number}",
                    day_of_week=day,
                    start_time=start_time,
                    end_time=end_time,
                    group_id=group.id,
                    teacher_id=plan.teacher_id,
                    subject=SubjectRef(study_plan_id=plan.id, name=plan.name),
                    recurrence=recurrence,
                    start_date=period_start,
                    end_date=period_end,
                    period_preset=params.period_preset,
                    anchor_date=period_start if recurrence is Recurrence.biweekly else None,
                    excluded_dates=excluded,
                    group_name=group.name,
                    teacher_name=teacher_name,
                    group_size=group.student_count,
                )
                same_day = self._fits(
                    candidate,
                    slot_index=slot_index,
                    slots=slots,
                    by_day=by_day,
                    constraints=constraints,
                    conflicts=conflicts,
                )
                if same_day is None:
                    continue

                room = self._pick_room(candidate, plan, group, constraints, same_day, conflicts)
                if room is not None:
                    candidate.classroom_id = room.id
                    candidate.classroom_name = room.name
                return candidate
        return None

    def _relocate(
        self,
        item: DraftItem,
        day: int,
        slot_index: int,
        *,
        slots,
        by_day,
        constraints: GenerationConstraints,
        conflicts: ConflictService,
    ) -> DraftItem | None:
        start_time, end_time = slots[slot_index]
        moved = item.model_copy(
            update={
                "day_of_week": day,
                "start_time": start_time,
                "end_time": end_time,
                "classroom_id": None,
                "classroom_name": None,
                "excluded_dates": holidays_on_weekday(
                    constraints.custom_holidays, day, item.start_date, item.end_date
                ),
            }
        )
        same_day = self._fits(
            moved,
            slot_index=slot_index,
            slots=slots,
            by_day=by_day,
            constraints=constraints,
            conflicts=conflicts,
            ignore=item,
        )
        if same_day is None:
            return None

        if item.classroom_id is not None:
            kept = moved.model_copy(update={"classroom_id": item.classroom_id, "classroom_name": item.classroom_name})
            if not conflicts.detect(kept, same_day):
                return kept
        plan = self.catalogs.study_plan(item.subject.study_plan_id)
        group = self.catalogs.group(item.group_id)
        if plan is not None and group is not None:
            room = self._pick_room(moved, plan, group, constraints, same_day, conflicts)
            if room is not None:
                moved.classroom_id = room.id
                moved.classroom_name = room.name
        return moved

    @staticmethod
    def _replace(draft: list[DraftItem], by_day, index: int, moved: DraftItem) -> None:
        old = draft[index]
        by_day[old.day_of_week] = [item for item in by_day[old.day_of_week] if item is not old]
        by_day[moved.day_of_week].append(moved)
        draft[index] = moved

    def _first_slot(self, item: DraftItem, day: int, slot_indexes, **context) -> DraftItem | None:
        for slot_index in slot_indexes:
            moved = self._relocate(item, day, slot_index, **context)
            if moved is not None:
                return moved
        return None

    def _balance(self, draft, by_day, days, slots, constraints, conflicts) -> int:
        """Moves lessons from a group's busiest weekday onto weekdays where it has none."""
        context = {"slots": slots, "by_day": by_day, "constraints": constraints, "conflicts": conflicts}
        moved_count = 0
        for group_id in dict.fromkeys(item.group_id for item in draft):
            for target in days:
                per_day: dict[int, list[int]] = defaultdict(list)
                for index, item in enumerate(draft):
                    if item.group_id == group_id:
                        per_day[item.day_of_week].append(index)
                if per_day[target]:
                    continue
                donor = max(days, key=lambda day: len(per_day[day]))
                if len(per_day[donor]) < 2:
                    break
                for index in reversed(per_day[donor]):
                    if not _movable(draft[index]):
                        continue
                    moved = self._first_slot(draft[index], target, range(len(slots)), **context)
                    if moved is not None:
                        self._replace(draft, by_day, index, moved)
                        moved_count += 1
                        break
        return moved_count

    def _compress(self, draft, by_day, slots, constraints, conflicts) -> int:
        """Pulls each group's lessons towards the start of the day."""
        context = {"slots": slots, "by_day": by_day, "constraints": constraints, "conflicts": conflicts}
        starts = [start for start, _ in slots]
        moved_count = 0
        for group_id, day in sorted({(item.group_id, item.day_of_week) for item in draft}):
            indexes = sorted(
                (index for index, item in enumerate(draft) if item.group_id == group_id and item.day_of_week == day),
                key=lambda index: parse_time_to_minutes(draft[index].start_time),
            )
            for index in indexes:
                if not _movable(draft[index]) or draft[index].start_time not in starts:
                    continue
                earlier = range(starts.index(draft[index].start_time))
                moved = self._first_slot(draft[index], day, earlier, **context)
                if moved is not None:
                    self._replace(draft, by_day, index, moved)
                    moved_count += 1
        return moved_count

    def _pick_room(
        self,
        candidate: DraftItem,
        plan: StudyPlanOut,
        group: GroupOut,
        constraints: GenerationConstraints,
        same_day: list,
        conflicts: ConflictService,
    ) -> ClassroomOut | None:
        preferred = (plan.room_type,) if plan.room_type is not None else infer_room_types(plan.name)
        best: ClassroomOut | None = None
        best_score = float("-inf")
        for room in self.catalogs.classrooms:
            if room.capacity < group.student_count:
                continue
            placed = candidate.model_copy(update={"classroom_id": room.id})
            if any(found.type == "room" for found in conflicts.detect(placed, same_day)):
                continue
            score = room_score(
                room,
                preferred=preferred,
                group_size=group.student_count,
                room_preferences=constraints.room_preferences,
            )
            if score > best_score:
                best, best_score = room, score
        return best


def build_draft(params: GenerationParams, catalogs: Catalogs, live: Iterable = (), **kwargs) -> DraftResponse:
    return DraftBuilder(catalogs, live=live, **kwargs).build(params)
