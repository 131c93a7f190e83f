from __future__ import annotations

import logging

from sqlalchemy import inspect, text

from schedule_engine.db.base import Base
from schedule_engine.db.session import engine
import schedule_engine.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "groups": {"id", "name", "student_count"},
    "teachers": {"id", "name"},
    "classrooms": {"id", "name", "type", "capacity"},
    "study_plans": {"id", "name", "teacher_id", "hours_per_week"},
    "schedules": {
        "id",
        "study_plan_id",
        "group_id",
        "teacher_id",
        "classroom_id",
        "date",
        "day_of_week",
        "start_time",
        "end_time",
        "recurrence",
        "anchor_date",
        "start_date",
        "end_date",
        "period_preset",
        "excluded_dates",
        "deleted_at",
    },
}

# Columns added after the first schedules table shipped.
SCHEDULE_COMPAT_COLUMNS: dict[str, str] = {
    "anchor_date": "DATE",
    "period_preset": "VARCHAR(40)",
    "deleted_at": "TIMESTAMP WITH TIME ZONE",
}


def _ensure_schedule_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "schedules" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("schedules")}
        for column_name, column_type in SCHEDULE_COMPAT_COLUMNS.items():
            if column_name in column_names:
                continue
            logger.info("Adding schedules.%s", column_name)
            connection.execute(text(f"ALTER TABLE schedules ADD COLUMN {column_name} {column_type}"))

        if "excluded_dates" in column_names:
            return
        if connection.dialect.name == "postgresql":
            connection.execute(
                text("ALTER TABLE schedules ADD COLUMN excluded_dates JSONB NOT NULL DEFAULT '[]'::jsonb")
            )
            return
        connection.execute(text("ALTER TABLE schedules ADD COLUMN excluded_dates JSON NOT NULL DEFAULT '[]'"))


def missing_schema() -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables: list[str] = []
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing_tables.append(table_name)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def _assert_required_columns() -> None:
    missing_tables, missing_columns = missing_schema()
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")
    if missing_columns:
        flat = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flat)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_schedule_columns()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
