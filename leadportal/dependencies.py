"""FastAPI dependencies for the components built in the application lifespan."""

from __future__ import annotations

from fastapi import Request

from leadportal.autopredict import AutoPredictService
from leadportal.cache import PredictionCache
from leadportal.scheduler import AutoPredictScheduler
from scoring.gateway import ScoringGateway


def get_autopredict(request: Request) -> AutoPredictService:
    return request.app.state.autopredict


def get_scheduler(request: Request) -> AutoPredictScheduler:
    return request.app.state.scheduler


def get_cache(request: Request) -> PredictionCache:
    return request.app.state.cache


def get_gateway(request: Request) -> ScoringGateway:
    return request.app.state.gateway
