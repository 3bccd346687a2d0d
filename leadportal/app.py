"""
FastAPI application -- lead scoring portal API server.

Run locally:
    uvicorn leadportal.app:app --reload --port 8000

Set ENABLE_AUTO_PREDICT_CRON=false to run without the background sweep.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from leadportal import config
from leadportal.autopredict import AutoPredictService
from leadportal.cache import PredictionCache
from leadportal.database import init_db
from leadportal.routes import customers, predictions
from leadportal.scheduler import AutoPredictScheduler
from scoring.gateway import ScoringGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()

    # Initialise database schema
    await init_db()

    cache = PredictionCache(
        ttl=config.CACHE_TTL,
        pending_ttl=config.PENDING_TTL,
        check_period=config.CACHE_CHECK_PERIOD,
    )
    gateway = ScoringGateway(config.ML_SERVICE_URL, config.ML_API_TIMEOUT)
    autopredict = AutoPredictService(cache, gateway, batch_size=config.AUTO_PREDICT_BATCH_SIZE)
    scheduler = AutoPredictScheduler(autopredict, cache)

    app.state.cache = cache
    app.state.gateway = gateway
    app.state.autopredict = autopredict
    app.state.scheduler = scheduler

    scheduler.start()
    logger.info("ML service: %s", config.ML_SERVICE_URL)

    yield

    # Shutdown (components may have been swapped on app.state)
    app.state.scheduler.stop()
    await app.state.autopredict.drain()
    await app.state.gateway.close()


app = FastAPI(
    title="Lead Scoring Portal API",
    version="1.0.0",
    description="Bank marketing lead management with automatic ML subscription scoring",
    lifespan=lifespan,
)

app.include_router(customers.router)
app.include_router(predictions.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    ml_health = await app.state.gateway.health_check()
    return {
        "status": "ok",
        "ml_service": ml_health,
    }
