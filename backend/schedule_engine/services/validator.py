from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from schedule_engine.schemas.generation import ValidationResult
from schedule_engine.schemas.occurrence import LessonOccurrence
from schedule_engine.services.conflict_service import ConflictService

logger = logging.getLogger(__name__)


def validate(
    generated: Sequence[LessonOccurrence],
    live: Iterable,
    *,
    conflicts: ConflictService | None = None,
) -> ValidationResult:
    """Check a generated batch against itself and against the live schedule.

    Advisory conflicts reported by the optimizer are not consulted; only this
    check decides whether a batch may be applied.
    """
    service = conflicts or ConflictService()
    found = service.detect_batch(list(generated), live)
    logger.info("Validated %d generated items: %d conflicts", len(generated), len(found))
    return ValidationResult(conflicts=found, is_ok=not found)
