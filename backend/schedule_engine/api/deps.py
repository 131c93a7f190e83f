from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from schedule_engine.core.config import Settings, get_settings
from schedule_engine.db.session import SessionLocal
from schedule_engine.services.catalog import CatalogSource, Catalogs
from schedule_engine.services.conflict_service import ConflictService
from schedule_engine.services.occurrence_expander import schedule_now
from schedule_engine.services.reasoning_client import OpenAIReasoningClient, Reasoner
from schedule_engine.services.schedule_store import ScheduleStore


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_catalogs(db: Session = Depends(get_db)) -> Catalogs:
    return CatalogSource(db).snapshot()


def get_conflict_service(
    catalogs: Catalogs = Depends(get_catalogs),
    settings: Settings = Depends(get_settings),
) -> ConflictService:
    return ConflictService.for_catalogs(catalogs, anchor_fallback=settings.biweekly_anchor_fallback)


def get_schedule_store(
    db: Session = Depends(get_db),
    conflicts: ConflictService = Depends(get_conflict_service),
    settings: Settings = Depends(get_settings),
) -> ScheduleStore:
    return ScheduleStore(db, conflicts=conflicts, reference=schedule_now(settings.schedule_timezone).date())


def get_reasoner(settings: Settings = Depends(get_settings)) -> Reasoner:
    return OpenAIReasoningClient(settings)
