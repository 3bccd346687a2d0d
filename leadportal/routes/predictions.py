"""Prediction endpoints -- scoring, history, top leads and the auto-predict job."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leadportal import repository
from leadportal.autopredict import AutoPredictService
from leadportal.cache import PredictionCache
from leadportal.database import get_session
from leadportal.dependencies import get_autopredict, get_cache, get_gateway, get_scheduler
from leadportal.errors import NotFoundError, PersistenceError, ScoringError, ServiceUnavailable
from leadportal.models import prediction_to_dict
from leadportal.scheduler import AutoPredictScheduler
from leadportal.schemas import (
    BatchRequest, CacheStats, CustomerOut, PredictionHistory, PredictionStats, SweepSummary,
)
from scoring.gateway import ScoringGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/predictions", tags=["predictions"])


@router.get("/stats", response_model=PredictionStats)
async def prediction_stats(session: AsyncSession = Depends(get_session)):
    return await repository.get_prediction_stats(session)


@router.get("/top-leads", response_model=list[CustomerOut])
async def top_leads(
    limit: int = Query(default=50, ge=1, le=200),
    threshold: float = Query(default=0.5, ge=0, le=1),
    session: AsyncSession = Depends(get_session),
):
    return await repository.get_top_leads(session, limit=limit, threshold=threshold)


@router.get("/customer/{customer_id}/history", response_model=PredictionHistory)
async def prediction_history(customer_id: int, session: AsyncSession = Depends(get_session)):
    if await repository.get_customer(session, customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    history = await repository.get_prediction_history(session, customer_id)
    return PredictionHistory(
        customer_id=customer_id,
        total_predictions=len(history),
        history=[prediction_to_dict(p) for p in history],
    )


@router.post("/customer/{customer_id}")
async def predict_customer(
    customer_id: int,
    refresh: bool = False,
    autopredict: AutoPredictService = Depends(get_autopredict),
):
    """Score one customer; cached for a few minutes unless ``refresh`` is set."""
    try:
        result = await autopredict.score_customer_cached(customer_id, force_refresh=refresh)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ServiceUnavailable as e:
        raise HTTPException(status_code=503, detail=f"ML service unavailable: {e}")
    except ScoringError as e:
        raise HTTPException(status_code=502, detail=f"ML service error: {e}")
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if result.get("pending"):
        return JSONResponse(
            status_code=202,
            content={
                "pending": True,
                "customer_id": customer_id,
                "message": "Prediction already in progress",
            },
        )
    return result


@router.post("/batch", response_model=SweepSummary)
async def predict_batch(
    body: BatchRequest = BatchRequest(),
    scheduler: AutoPredictScheduler = Depends(get_scheduler),
):
    """Score up to ``limit`` customers that have no prediction yet (409 while a sweep runs)."""
    result = await scheduler.trigger_manually(limit=body.limit)
    if result.get("is_running"):
        return JSONResponse(status_code=409, content=result)
    return result


# ---------------------------------------------------------------------------
# Auto-predict job
# ---------------------------------------------------------------------------

@router.get("/job/status")
async def job_status(scheduler: AutoPredictScheduler = Depends(get_scheduler)):
    return scheduler.get_status()


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(cache: PredictionCache = Depends(get_cache)):
    return cache.stats()


@router.delete("/cache")
async def clear_cache(cache: PredictionCache = Depends(get_cache)):
    cache.clear_predictions()
    logger.info("Prediction cache cleared")
    return {"message": "Prediction cache cleared", "cache_stats": cache.stats()}


@router.post("/job/trigger")
async def trigger_job(scheduler: AutoPredictScheduler = Depends(get_scheduler)):
    result = await scheduler.trigger_manually()
    if result.get("is_running"):
        return JSONResponse(status_code=409, content=result)
    return {"message": "Auto predict job completed", "result": result}


@router.get("/model-info")
async def model_info(gateway: ScoringGateway = Depends(get_gateway)):
    try:
        return await gateway.model_info()
    except ServiceUnavailable as e:
        raise HTTPException(status_code=503, detail=f"ML service unavailable: {e}")
    except ScoringError as e:
        raise HTTPException(status_code=502, detail=f"ML service error: {e}")
