from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, timedelta

from schedule_engine.core.exceptions import ScheduleValidationError
from schedule_engine.models.schedule import OccurrenceStatus
from schedule_engine.schemas.conflict import ConflictDescriptor
from schedule_engine.services.calendar import (
    DAY_NAMES,
    EPOCH_MONDAY,
    DatedSlot,
    canonical_slot,
    intervals_overlap,
    parse_time_to_minutes,
)
from schedule_engine.services.occurrence_expander import effective_bounds, occurs_on

SEVERITY = {"teacher": "high", "room": "medium", "group": "high"}
# Biweekly parity repeats every two weeks, so four weeks always contain a shared date if one exists.
SCAN_DAYS = 28


def overlaps(a, b) -> bool:
    try:
        return intervals_overlap(
            parse_time_to_minutes(a.start_time),
            parse_time_to_minutes(a.end_time),
            parse_time_to_minutes(b.start_time),
            parse_time_to_minutes(b.end_time),
        )
    except ValueError as exc:
        raise ScheduleValidationError(str(exc), details={"a": a.ref, "b": b.ref}) from exc


def _is_cancelled(occurrence) -> bool:
    return occurrence.status == OccurrenceStatus.cancelled


def _default_reference(a, b) -> date:
    # min() keeps the comparison symmetric in a and b.
    known = [value for value in (a.anchor_date, a.start_date, b.anchor_date, b.start_date) if value is not None]
    return min(known) if known else EPOCH_MONDAY


def share_a_day(a, b, *, reference: date | None = None, anchor_fallback: str = "window_start") -> bool:
    slot_a, slot_b = canonical_slot(a), canonical_slot(b)
    if slot_a.day_of_week != slot_b.day_of_week:
        return False

    if isinstance(slot_a, DatedSlot) and isinstance(slot_b, DatedSlot):
        return slot_a.date == slot_b.date
    # A preset-only template is resolved around the dated lesson it is compared with.
    if isinstance(slot_a, DatedSlot):
        return occurs_on(b, slot_a.date, reference=reference or slot_a.date, anchor_fallback=anchor_fallback)
    if isinstance(slot_b, DatedSlot):
        return occurs_on(a, slot_b.date, reference=reference or slot_b.date, anchor_fallback=anchor_fallback)

    # Two templates: look for one date inside the intersection of their active ranges.
    reference = reference or _default_reference(a, b)
    a_lo, a_hi = effective_bounds(a, reference)
    b_lo, b_hi = effective_bounds(b, reference)
    starts = [value for value in (a_lo, b_lo) if value is not None]
    ends = [value for value in (a_hi, b_hi) if value is not None]
    lo = max(starts) if starts else None
    hi = min(ends) if ends else None
    if lo is not None and hi is not None and lo > hi:
        return False

    cursor = lo or (hi - timedelta(days=SCAN_DAYS - 1) if hi else reference)
    cursor += timedelta(days=(slot_a.day_of_week - cursor.isoweekday()) % 7)
    last = cursor + timedelta(days=SCAN_DAYS - 1)
    if hi is not None:
        last = min(last, hi)
    while cursor <= last:
        if occurs_on(a, cursor, reference=reference, anchor_fallback=anchor_fallback) and occurs_on(
            b, cursor, reference=reference, anchor_fallback=anchor_fallback
        ):
            return True
        cursor += timedelta(days=7)
    return False


class ConflictService:
    """Finds double bookings between a candidate placement and a corpus of placements.

    Name maps are optional and only make descriptions friendlier.
    """

    def __init__(
        self,
        *,
        teacher_names: Mapping[int, str] | None = None,
        room_names: Mapping[int, str] | None = None,
        group_names: Mapping[int, str] | None = None,
        reference: date | None = None,
        anchor_fallback: str = "window_start",
    ):
        self.teacher_names = teacher_names or {}
        self.room_names = room_names or {}
        self.group_names = group_names or {}
        self.reference = reference
        self.anchor_fallback = anchor_fallback

    @classmethod
    def for_catalogs(cls, catalogs, **kwargs) -> "ConflictService":
        return cls(
            teacher_names={teacher.id: teacher.name for teacher in catalogs.teachers},
            room_names={room.id: room.name for room in catalogs.classrooms},
            group_names={group.id: group.name for group in catalogs.groups},
            **kwargs,
        )

    def detect(self, candidate, corpus: Iterable) -> list[ConflictDescriptor]:
        if _is_cancelled(candidate):
            return []

        conflicts: list[ConflictDescriptor] = []
        for existing in corpus:
            if existing is candidate:
                continue
            if candidate.id is not None and existing.id == candidate.id:
                continue
            if _is_cancelled(existing):
                continue
            if not overlaps(candidate, existing):
                continue
            if not share_a_day(candidate, existing, reference=self.reference, anchor_fallback=self.anchor_fallback):
                continue
            conflicts.extend(self._describe(candidate, existing))
        return conflicts

    def detect_batch(self, candidates: Sequence, corpus: Iterable = ()) -> list[ConflictDescriptor]:
        """Every candidate against the corpus, plus every unordered pair inside the batch."""
        corpus = list(corpus)
        conflicts: list[ConflictDescriptor] = []
        for index, candidate in enumerate(candidates):
            conflicts.extend(self.detect(candidate, corpus))
            conflicts.extend(self.detect(candidate, candidates[index + 1 :]))
        return conflicts

    def _describe(self, candidate, existing) -> list[ConflictDescriptor]:
        when = self._when(existing)
        found: list[ConflictDescriptor] = []
        if candidate.teacher_id == existing.teacher_id:
            name = self.teacher_names.get(existing.teacher_id, f"#{existing.teacher_id}")
            found.append(
                self._descriptor(
                    "teacher", f"Teacher {name} already teaches {existing.subject.name} {when}", candidate, existing
                )
            )
        if (
            candidate.classroom_id is not None
            and existing.classroom_id is not None
            and candidate.classroom_id == existing.classroom_id
        ):
            name = self.room_names.get(existing.classroom_id, f"#{existing.classroom_id}")
            found.append(
                self._descriptor(
                    "room", f"Classroom {name} is occupied by {existing.subject.name} {when}", candidate, existing
                )
            )
        if candidate.group_id == existing.group_id:
            name = self.group_names.get(existing.group_id, f"#{existing.group_id}")
            found.append(
                self._descriptor(
                    "group", f"Group {name} already has {existing.subject.name} {when}", candidate, existing
                )
            )
        return found

    @staticmethod
    def _descriptor(kind: str, description: str, candidate, existing) -> ConflictDescriptor:
        return ConflictDescriptor(
            type=kind,
            description=description,
            severity=SEVERITY[kind],
            candidate_ref=candidate.ref,
            existing_ref=existing.ref,
        )

    @staticmethod
    def _when(occurrence) -> str:
        slot = canonical_slot(occurrence)
        day = slot.date.isoformat() if isinstance(slot, DatedSlot) else DAY_NAMES[slot.day_of_week]
        return f"on {day} {occurrence.start_time}-{occurrence.end_time}"


def detect(candidate, corpus: Iterable, **kwargs) -> list[ConflictDescriptor]:
    return ConflictService(**kwargs).detect(candidate, corpus)
