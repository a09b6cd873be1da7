"""
HTTP endpoints for step mapping, failure classification, healing logs and the
learned pattern store.

These are the hooks an external orchestrator uses to drive the engine: map
step text before generating a test, classify a failed run, adjust the healing
policy, and read back healing logs and learned patterns.
"""

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.config_loader import ConfigurationError, get_healing_config, get_llkb_policy, save_healing_config
from ..services.failure_classifier import classify_error, is_healable
from ..services.glossary import Glossary, load_glossary
from ..services.healing_logger import LOG_SUFFIX, aggregate_healing_logs, format_healing_log, load_healing_log
from ..services.healing_rules import (
    KNOWN_FIX_TYPES, evaluate_healing, get_healing_recommendation, is_fix_forbidden
)
from ..services.llkb_store import LearnedPatternStore
from ..services.step_mapper import StepMapper, StepMapperOptions, get_mapping_stats, suggest_improvements

logger = logging.getLogger(__name__)

router = APIRouter(tags=["healing"])

JOURNEY_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

_glossary: Optional[Glossary] = None
_store: Optional[LearnedPatternStore] = None


def get_glossary() -> Glossary:
    """Glossary shared by every request, loaded once."""
    global _glossary
    if _glossary is None:
        _glossary = load_glossary(settings.GLOSSARY_PATH)
    return _glossary


def get_store(glossary: Glossary = Depends(get_glossary)) -> LearnedPatternStore:
    global _store
    if _store is None:
        _store = LearnedPatternStore(settings.LLKB_ROOT, glossary=glossary, policy=get_llkb_policy())
    return _store


def get_step_mapper(glossary: Glossary = Depends(get_glossary),
                    store: LearnedPatternStore = Depends(get_store)) -> StepMapper:
    return StepMapper(glossary=glossary, store=store)


def get_log_dir() -> str:
    return settings.HEALING_LOG_DIR


# Pydantic models for API requests
class MapStepsRequest(BaseModel):
    steps: List[str] = Field(..., min_length=1)
    journey_id: Optional[str] = None
    use_llkb: bool = True
    normalize_text: bool = True
    llkb_min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class ClassifyRequest(BaseModel):
    message: str
    stack: Optional[str] = None


class HealingConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    max_attempts: Optional[int] = Field(None, ge=1, le=10)
    max_timeout_increase: Optional[int] = Field(None, ge=1000, le=120000)
    allowed_fixes: Optional[List[str]] = None


@router.post("/mapping/map")
async def map_steps(request: MapStepsRequest, mapper: StepMapper = Depends(get_step_mapper)):
    """Map step texts to primitives and report which ones are blocked."""
    options = StepMapperOptions(
        normalize_text=request.normalize_text,
        use_llkb=request.use_llkb and settings.LLKB_ENABLED,
        llkb_min_confidence=(request.llkb_min_confidence if request.llkb_min_confidence is not None
                             else settings.LLKB_MIN_CONFIDENCE),
        journey_id=request.journey_id,
    )
    results = mapper.map_steps(request.steps, options)
    blocked = [r for r in results if not r.is_mapped]
    logger.info(f"🗺️ MAPPING API: mapped {len(results) - len(blocked)}/{len(results)} steps")

    return {
        "status": "success",
        "results": [r.to_dict() for r in results],
        "stats": get_mapping_stats(results),
        "suggestions": suggest_improvements(blocked),
    }


@router.post("/healing/classify")
async def classify_failure(request: ClassifyRequest):
    """Classify an error message and say whether automatic healing applies."""
    classification = classify_error(request.message, request.stack)
    evaluation = evaluate_healing(classification, get_healing_config())
    return {
        "status": "success",
        "classification": classification.to_dict(),
        "is_healable": is_healable(classification),
        "recommendation": get_healing_recommendation(classification),
        "applicable_fixes": evaluation.applicable_fixes,
        "reason": evaluation.reason,
    }


@router.get("/healing/config")
async def get_healing_configuration():
    try:
        return {"status": "success", "config": get_healing_config().to_dict()}
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load healing config: {e}")


@router.put("/healing/config")
async def update_healing_configuration(config_update: HealingConfigUpdate):
    """Update the healing section of the policy file."""
    changes = config_update.model_dump(exclude_none=True)

    try:
        current = get_healing_config(force_reload=True)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=f"Failed to load healing config: {e}")

    for fix_type in changes.get("allowed_fixes", []):
        if is_fix_forbidden(fix_type, current):
            raise HTTPException(status_code=400, detail=f"Fix type '{fix_type}' is forbidden")
        if fix_type not in KNOWN_FIX_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown fix type: {fix_type}")

    try:
        updated = replace(current, **changes)
        save_healing_config(updated)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"🩹 HEALING API: configuration updated: {sorted(changes)}")
    return {"status": "success", "config": get_healing_config().to_dict()}


@router.get("/healing/logs")
async def get_healing_logs_summary(log_dir: str = Depends(get_log_dir)):
    return {"status": "success", "summary": aggregate_healing_logs(log_dir)}


@router.get("/healing/logs/{journey_id}")
async def get_healing_log(journey_id: str, log_dir: str = Depends(get_log_dir)):
    if not JOURNEY_ID_PATTERN.match(journey_id):
        raise HTTPException(status_code=400, detail=f"Invalid journey id: {journey_id}")

    session = load_healing_log(str(Path(log_dir) / f"{journey_id}{LOG_SUFFIX}"))
    if session is None:
        raise HTTPException(status_code=404, detail=f"Healing log for journey {journey_id} not found")

    return {"status": "success", "log": session.to_dict(), "report": format_healing_log(session)}


@router.get("/llkb/export")
async def export_learned_patterns(limit: int = Query(20, ge=1, le=100),
                                  store: LearnedPatternStore = Depends(get_store)):
    """Most confident learned patterns at or above the publish threshold."""
    return {"status": "success", "patterns": store.export_top(limit)}


@router.get("/llkb/stats")
async def get_learned_pattern_stats(store: LearnedPatternStore = Depends(get_store)):
    return {"status": "success", "stats": store.get_pattern_stats()}
