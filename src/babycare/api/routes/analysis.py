"""Analysis and prediction routes."""
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query

from babycare.analysis.records import DateRange
from babycare.insights.ai_engine import AIEngine
from babycare.insights.factory import get_ai_engine
from babycare.store.base import RecordStoreError

router = APIRouter()


@router.get("/subjects/{subject_id}/sleep-analysis")
async def sleep_analysis(
    subject_id: str,
    days: int = Query(14, ge=1, le=90),
    engine: AIEngine = Depends(get_ai_engine),
):
    """Sleep pattern over the last `days` days."""
    try:
        return await engine.analyze_sleep(subject_id, DateRange.trailing(days))
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/subjects/{subject_id}/routine-analysis")
async def routine_analysis(
    subject_id: str,
    days: int = Query(14, ge=1, le=90),
    engine: AIEngine = Depends(get_ai_engine),
):
    """Routine pattern over the last `days` days."""
    try:
        return await engine.analyze_routine(subject_id, DateRange.trailing(days))
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/subjects/{subject_id}/prediction")
async def prediction(subject_id: str, engine: AIEngine = Depends(get_ai_engine)):
    """Next sleep, feeding and activity windows."""
    try:
        return await engine.predict_next_sleep(subject_id)
    except RecordStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


@router.get("/usage")
def cloud_usage(engine: AIEngine = Depends(get_ai_engine)):
    """Remaining cloud analysis quota for the configured API key."""
    prefs = engine.preferences.current
    if engine.gateway is None or not prefs.api_key:
        return {"cloud_enabled": prefs.cloud_enabled, "usage": None}
    snapshot = engine.gateway.limiter.usage(prefs.api_key)
    return {"cloud_enabled": prefs.cloud_enabled, "usage": asdict(snapshot)}
