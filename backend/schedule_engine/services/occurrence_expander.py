from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from schedule_engine.core.exceptions import ScheduleValidationError
from schedule_engine.models.schedule import OccurrenceStatus, Recurrence
from schedule_engine.services.calendar import EPOCH_MONDAY, parse_day, resolve_period, same_parity

ANCHOR_FALLBACKS = ("window_start", "epoch")


def effective_bounds(template, reference: date) -> tuple[date | None, date | None]:
    """Explicit start/end dates win over a period preset; the preset is resolved
    against the template's own anchor when it has one."""
    if template.start_date is not None or template.end_date is not None:
        return template.start_date, template.end_date
    if template.period_preset is not None:
        period = resolve_period(template.period_preset, template.anchor_date or reference)
        return period.start, period.end
    return None, None


def resolve_anchor(
    template,
    *,
    bounds_start: date | None,
    reference: date,
    anchor_fallback: str = "window_start",
) -> date:
    for candidate in (template.anchor_date, template.start_date, getattr(template, "date", None), bounds_start):
        if candidate is not None:
            return candidate
    if anchor_fallback == "epoch":
        return EPOCH_MONDAY
    return reference


class ExpandedDates:
    """Lazy, restartable view over the dates a template occupies inside a window."""

    def __init__(self, template, window_start: date, window_end: date, *, anchor_fallback: str = "window_start"):
        if window_end < window_start:
            raise ScheduleValidationError(
                "Window end precedes window start",
                details={"window_start": window_start.isoformat(), "window_end": window_end.isoformat()},
            )
        if anchor_fallback not in ANCHOR_FALLBACKS:
            raise ScheduleValidationError(f"Unknown anchor fallback {anchor_fallback!r}")
        if getattr(template, "date", None) is None and getattr(template, "day_of_week", None) is None:
            raise ScheduleValidationError("Occurrence has neither a date nor a day of week")
        self.template = template
        self.window_start = window_start
        self.window_end = window_end
        self.anchor_fallback = anchor_fallback

    def __iter__(self) -> Iterator[date]:
        return self._generate()

    def _generate(self) -> Iterator[date]:
        template = self.template
        excluded = set(template.excluded_dates or [])

        # A dated row is pinned to its date, whatever its recurrence says.
        if template.date is not None:
            if self.window_start <= template.date <= self.window_end and template.date not in excluded:
                yield template.date
            return
        if Recurrence(template.recurrence) is Recurrence.once:
            return

        bounds_start, bounds_end = effective_bounds(template, self.window_start)
        lo = max(self.window_start, bounds_start) if bounds_start else self.window_start
        hi = min(self.window_end, bounds_end) if bounds_end else self.window_end
        if lo > hi:
            return

        weekday = parse_day(template.day_of_week)
        current = lo + timedelta(days=(weekday - lo.isoweekday()) % 7)
        step = timedelta(days=7)
        if Recurrence(template.recurrence) is Recurrence.biweekly:
            anchor = resolve_anchor(
                template,
                bounds_start=bounds_start,
                reference=self.window_start,
                anchor_fallback=self.anchor_fallback,
            )
            if not same_parity(anchor, current):
                current += step
            step = timedelta(days=14)

        while current <= hi:
            if current not in excluded:
                yield current
            current += step


def expand(template, window_start: date, window_end: date, *, anchor_fallback: str = "window_start") -> ExpandedDates:
    return ExpandedDates(template, window_start, window_end, anchor_fallback=anchor_fallback)


def occurs_on(template, day: date, *, reference: date | None = None, anchor_fallback: str = "window_start") -> bool:
    """Whether ``template`` is active on ``day``.

    ``reference`` stands in for the window start when the template has no anchor of
    its own; it defaults to ``day``.
    """
    excluded = set(template.excluded_dates or [])
    if day in excluded:
        return False
    if template.date is not None:
        return template.date == day
    if Recurrence(template.recurrence) is Recurrence.once:
        return False
    if parse_day(template.day_of_week) != day.isoweekday():
        return False

    reference = reference or day
    bounds_start, bounds_end = effective_bounds(template, reference)
    if bounds_start is not None and day < bounds_start:
        return False
    if bounds_end is not None and day > bounds_end:
        return False
    if Recurrence(template.recurrence) is Recurrence.biweekly:
        anchor = resolve_anchor(
            template, bounds_start=bounds_start, reference=reference, anchor_fallback=anchor_fallback
        )
        return same_parity(anchor, day)
    return True


def schedule_now(timezone_name: str) -> datetime:
    return datetime.now(ZoneInfo(timezone_name))


def derive_status(occurrence, now: datetime, *, on: date | None = None) -> OccurrenceStatus:
    if occurrence.status in (OccurrenceStatus.completed, OccurrenceStatus.cancelled):
        return OccurrenceStatus(occurrence.status)

    day = on or occurrence.date
    if day is not None:
        hours, minutes = (int(part) for part in occurrence.end_time.split(":"))
        ends_at = datetime.combine(day, time(hours, minutes), tzinfo=now.tzinfo)
        return OccurrenceStatus.completed if ends_at <= now else OccurrenceStatus.upcoming

    _, bounds_end = effective_bounds(occurrence, now.date())
    if bounds_end is not None and bounds_end < now.date():
        return OccurrenceStatus.completed
    return OccurrenceStatus.upcoming
