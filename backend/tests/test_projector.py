from datetime import date, datetime, timedelta, timezone

from schedule_engine.schemas.occurrence import StoredOccurrence
from schedule_engine.services.projector import BOUNDED, DATED, UNBOUNDED, project, project_month, project_week, specificity

MONDAY = date(2026, 9, 7)
NOW = datetime(2026, 9, 14, 9, 30, tzinfo=timezone.utc)


def row(row_id: str, **overrides) -> StoredOccurrence:
    fields = {
        "id": row_id,
        "day_of_week": 1,
        "start_time": "09:00",
        "end_time": "10:00",
        "group_id": 1,
        "teacher_id": 1,
        "classroom_id": 10,
        "subject": {"study_plan_id": 1, "name": "Mathematics"},
        "recurrence": "weekly",
        "start_date": MONDAY,
        "end_date": MONDAY + timedelta(weeks=8),
    }
    fields.update(overrides)
    return StoredOccurrence(**fields)


def test_dated_override_replaces_the_template_for_its_week():
    template = row("template")
    override = row("override", date=MONDAY + timedelta(weeks=1), start_date=None, end_date=None)

    exception_week = project_week([template, override], MONDAY + timedelta(weeks=1), now=NOW)
    normal_week = project_week([template, override], MONDAY, now=NOW)

    assert [item.id for item in exception_week[1]] == ["override"]
    assert [item.id for item in normal_week[1]] == ["template"]


def test_specificity_ranks_dated_then_bounded_then_open():
    assert specificity(row("a", date=MONDAY)) == DATED
    assert specificity(row("b")) == BOUNDED
    assert specificity(row("c", period_preset="quarter_1", start_date=None, end_date=None)) == BOUNDED
    assert specificity(row("d", start_date=None, end_date=None)) == UNBOUNDED


def test_bounded_template_wins_over_an_identical_open_one():
    open_ended = row("open", start_date=None, end_date=None)
    bounded = row("bounded")

    projected = project([open_ended, bounded], MONDAY, MONDAY + timedelta(days=6), now=NOW)
    assert [item.id for item in projected] == ["bounded"]


def test_week_grid_has_every_day_and_sorted_cells():
    rows = [
        row("late", start_time="11:00", end_time="11:45"),
        row("group-two", group_id=2, teacher_id=2, classroom_id=11),
        row("group-one", teacher_id=4, classroom_id=13),
        row("early", start_time="08:00", end_time="08:45", group_id=3, teacher_id=3, classroom_id=12),
        row("friday", day_of_week=5),
    ]
    grid = project_week(rows, MONDAY + timedelta(days=2), now=NOW)

    assert sorted(grid) == [1, 2, 3, 4, 5, 6, 7]
    assert [item.id for item in grid[1]] == ["early", "group-one", "group-two", "late"]
    assert [item.id for item in grid[5]] == ["friday"]
    assert grid[5][0].occurrence_date == MONDAY + timedelta(days=4)
    assert grid[6] == [] and grid[7] == []


def test_biweekly_rows_show_up_every_other_week():
    rows = [row("fortnightly", recurrence="biweekly", anchor_date=MONDAY)]

    assert [len(project_week(rows, MONDAY + timedelta(weeks=n), now=NOW)[1]) for n in range(4)] == [1, 0, 1, 0]


def test_month_projection_is_keyed_by_iso_date():
    days = project_month([row("template")], 2026, 9, now=NOW)

    assert sorted(days) == ["2026-09-07", "2026-09-14", "2026-09-21", "2026-09-28"]
    assert all(len(items) == 1 for items in days.values())


def test_projected_rows_carry_a_derived_status():
    days = project_month(
        [row("template"), row("cancelled", group_id=2, teacher_id=2, classroom_id=None, status="cancelled")],
        2026,
        9,
        now=NOW,
    )
    statuses = {
        (key, item.id): item.derived_status.value for key, items in days.items() for item in items
    }

    assert statuses[("2026-09-07", "template")] == "completed"
    assert statuses[("2026-09-14", "template")] == "upcoming"
    assert statuses[("2026-09-21", "cancelled")] == "cancelled"
