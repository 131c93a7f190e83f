from __future__ import annotations

from sqlalchemy.orm import Session

from schedule_engine.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str = "schedule",
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction; the caller commits."""
    entry = ActivityLog(action=action, entity_type=entity_type, entity_id=entity_id, details=details or {})
    db.add(entry)
    return entry
