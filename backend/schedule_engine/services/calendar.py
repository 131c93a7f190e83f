"""Calendar primitives shared by every pipeline stage.

Days are numbered 1..7 starting on Monday. Times are ``HH:MM`` strings on a
24-hour clock. Biweekly parity is measured in whole weeks elapsed since the
Monday 1970-01-05, so two dates share parity iff their week numbers differ by
an even number.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

DAY_NUMBERS: dict[str, int] = {
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
    "sunday": 7,
}
DAY_NAMES: dict[int, str] = {number: name for name, number in DAY_NUMBERS.items()}

_DAY_ALIASES: dict[str, int] = {
    **DAY_NUMBERS,
    **{name[:3]: number for name, number in DAY_NUMBERS.items()},
    "понедельник": 1,
    "вторник": 2,
    "среда": 3,
    "четверг": 4,
    "пятница": 5,
    "суббота": 6,
    "воскресенье": 7,
    "пн": 1,
    "вт": 2,
    "ср": 3,
    "чт": 4,
    "пт": 5,
    "сб": 6,
    "вс": 7,
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_LENIENT_TIME_PATTERN = re.compile(r"^\s*(\d{1,2})[:.](\d{2})(?::\d{2})?\s*$")

EPOCH_MONDAY = date(1970, 1, 5)


def parse_time_to_minutes(value: str) -> int:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValueError(f"Time must be in HH:MM 24-hour format, got {value!r}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(value) -> str:
    """Coerce ``9:00``, ``09.00`` or ``09:00:00`` into ``09:00``."""
    match = _LENIENT_TIME_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Unrecognised time value {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def parse_day(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid day value {value!r}")
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip().lower()
        if text.isdigit():
            number = int(text)
        elif text in _DAY_ALIASES:
            return _DAY_ALIASES[text]
        else:
            raise ValueError(f"Invalid day value {value!r}")
    if not 1 <= number <= 7:
        raise ValueError(f"Day of week must be between 1 and 7, got {number}")
    return number


def day_of_week(day: date) -> int:
    return day.isoweekday()


def week_start(day: date) -> date:
    return day - timedelta(days=day.isoweekday() - 1)


def week_number(day: date) -> int:
    return (week_start(day) - EPOCH_MONDAY).days // 7


def weeks_between(anchor: date, day: date) -> int:
    return week_number(day) - week_number(anchor)


def same_parity(anchor: date, day: date) -> bool:
    return weeks_between(anchor, day) % 2 == 0


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open: a lesson ending at 09:00 does not clash with one starting at 09:00.
    return start_a < end_b and end_a > start_b


@dataclass(frozen=True)
class RecurringSlot:
    day_of_week: int


@dataclass(frozen=True)
class DatedSlot:
    date: date

    @property
    def day_of_week(self) -> int:
        return self.date.isoweekday()


def canonical_slot(occurrence) -> RecurringSlot | DatedSlot:
    if getattr(occurrence, "date", None) is not None:
        return DatedSlot(occurrence.date)
    day = getattr(occurrence, "day_of_week", None)
    if day is None:
        raise ValueError("Occurrence has neither a date nor a day of week")
    return RecurringSlot(parse_day(day))


class PeriodPreset(str, Enum):
    quarter_1 = "quarter_1"
    quarter_2 = "quarter_2"
    quarter_3 = "quarter_3"
    quarter_4 = "quarter_4"
    half_year_1 = "half_year_1"
    half_year_2 = "half_year_2"
    academic_year = "academic_year"
    current_quarter = "current_quarter"


@dataclass(frozen=True)
class AcademicPeriod:
    label: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def academic_year_start_year(day: date) -> int:
    return day.year if day.month >= 9 else day.year - 1


def academic_quarters(year: int) -> list[AcademicPeriod]:
    """Quarters of the academic year that starts in September of ``year``."""
    return [
        AcademicPeriod("quarter_1", date(year, 9, 2), date(year, 10, 26)),
        AcademicPeriod("quarter_2", date(year, 11, 3), date(year, 12, 28)),
        AcademicPeriod("quarter_3", date(year + 1, 1, 8), date(year + 1, 3, 18)),
        AcademicPeriod("quarter_4", date(year + 1, 3, 30), date(year + 1, 5, 25)),
    ]


def current_quarter(reference: date) -> AcademicPeriod:
    quarters = academic_quarters(academic_year_start_year(reference))
    for quarter in quarters:
        if quarter.contains(reference):
            return quarter
    # Vacations map to the quarter that just finished; the summer maps to Q4.
    finished = [quarter for quarter in quarters if quarter.end < reference]
    return finished[-1] if finished else quarters[-1]


def resolve_period(preset: PeriodPreset | str, reference: date) -> AcademicPeriod:
    preset = PeriodPreset(preset)
    if preset is PeriodPreset.current_quarter:
        return current_quarter(reference)

    quarters = academic_quarters(academic_year_start_year(reference))
    if preset is PeriodPreset.half_year_1:
        return AcademicPeriod(preset.value, quarters[0].start, quarters[1].end)
    if preset is PeriodPreset.half_year_2:
        return AcademicPeriod(preset.value, quarters[2].start, quarters[3].end)
    if preset is PeriodPreset.academic_year:
        return AcademicPeriod(preset.value, quarters[0].start, quarters[3].end)
    index = int(preset.value.rsplit("_", 1)[1]) - 1
    return quarters[index]


def build_time_slots(start: str, end: str, lesson_minutes: int, break_minutes: int) -> list[tuple[str, str]]:
    slots: list[tuple[str, str]] = []
    cursor = parse_time_to_minutes(start)
    limit = parse_time_to_minutes(end)
    while cursor + lesson_minutes <= limit:
        slots.append((format_minutes(cursor), format_minutes(cursor + lesson_minutes)))
        cursor += lesson_minutes + break_minutes
    return slots
