from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from schedule_engine.api.deps import get_catalogs, get_conflict_service, get_reasoner, get_schedule_store
from schedule_engine.core.config import Settings, get_settings
from schedule_engine.core.exceptions import ScheduleConflictError
from schedule_engine.schemas.generation import (
    ApplyRequest,
    ApplyResult,
    DraftResponse,
    GenerationParams,
    OptimizedScheduleResponse,
    OptimizeRequest,
    ValidateRequest,
    ValidationResult,
)
from schedule_engine.services.applier import Applier
from schedule_engine.services.catalog import Catalogs
from schedule_engine.services.conflict_service import ConflictService
from schedule_engine.services.draft_builder import DraftBuilder
from schedule_engine.services.occurrence_expander import schedule_now
from schedule_engine.services.optimizer_adapter import OptimizerAdapter
from schedule_engine.services.reasoning_client import Reasoner
from schedule_engine.services.schedule_store import ScheduleStore, conflicts_payload
from schedule_engine.services.validator import validate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/draft", response_model=DraftResponse)
def build_draft(
    params: GenerationParams,
    catalogs: Catalogs = Depends(get_catalogs),
    store: ScheduleStore = Depends(get_schedule_store),
    settings: Settings = Depends(get_settings),
) -> DraftResponse:
    builder = DraftBuilder(
        catalogs,
        live=store.find_all(),
        reference=schedule_now(settings.schedule_timezone).date(),
        anchor_fallback=settings.biweekly_anchor_fallback,
    )
    return builder.build(params)


@router.post("/optimize", response_model=OptimizedScheduleResponse)
def optimize_draft(
    payload: OptimizeRequest,
    catalogs: Catalogs = Depends(get_catalogs),
    reasoner: Reasoner = Depends(get_reasoner),
    store: ScheduleStore = Depends(get_schedule_store),
    settings: Settings = Depends(get_settings),
) -> OptimizedScheduleResponse:
    adapter = OptimizerAdapter(
        reasoner,
        reference=schedule_now(settings.schedule_timezone).date(),
        live=store.find_all(),
        anchor_fallback=settings.biweekly_anchor_fallback,
    )
    return adapter.optimize(payload.draft, payload.params, catalogs)


@router.post("/validate", response_model=ValidationResult)
def validate_generated(
    payload: ValidateRequest,
    store: ScheduleStore = Depends(get_schedule_store),
    conflicts: ConflictService = Depends(get_conflict_service),
) -> ValidationResult:
    return validate(payload.generated, store.find_all(), conflicts=conflicts)


@router.post("/apply", response_model=ApplyResult)
def apply_generated(
    payload: ApplyRequest,
    catalogs: Catalogs = Depends(get_catalogs),
    store: ScheduleStore = Depends(get_schedule_store),
    conflicts: ConflictService = Depends(get_conflict_service),
    settings: Settings = Depends(get_settings),
) -> ApplyResult:
    live = store.find_all()
    checked = validate(payload.generated, live, conflicts=conflicts)
    if not checked.is_ok:
        logger.info("Apply rejected: %d conflicts in the generated schedule", len(checked.conflicts))
        raise ScheduleConflictError(
            f"Generated schedule has {len(checked.conflicts)} conflict(s); nothing was applied",
            conflicts_payload(checked.conflicts),
        )

    applier = Applier(
        store,
        catalogs,
        conflicts=conflicts,
        reference=schedule_now(settings.schedule_timezone).date(),
    )
    return applier.apply(payload.generated, live=live, confidence=payload.confidence)
