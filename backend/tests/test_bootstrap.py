import pytest
from sqlalchemy import create_engine, inspect, text

from schedule_engine.db import bootstrap


def _raise_error(message: str):
    raise RuntimeError(message)


def test_runtime_schema_bootstrap_raises_on_validation_failure(monkeypatch):
    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", lambda bind: None)
    monkeypatch.setattr(bootstrap, "_ensure_schedule_columns", lambda: None)
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed"):
        bootstrap.ensure_runtime_schema_compatibility()


def test_legacy_schedules_table_gets_compat_columns(monkeypatch, tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE schedules (id VARCHAR(36) PRIMARY KEY, day_of_week INTEGER, "
                "start_time VARCHAR(5), end_time VARCHAR(5))"
            )
        )
    monkeypatch.setattr(bootstrap, "engine", engine)

    bootstrap._ensure_schedule_columns()

    columns = {item["name"] for item in inspect(engine).get_columns("schedules")}
    assert {"anchor_date", "period_preset", "deleted_at", "excluded_dates"} <= columns
    missing_tables, missing_columns = bootstrap.missing_schema()
    assert "groups" in missing_tables
    assert "recurrence" in missing_columns["schedules"]
    engine.dispose()
