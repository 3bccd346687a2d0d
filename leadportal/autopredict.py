"""
Auto-predict coordinator.

Scores customers that have no prediction yet, through three paths:
    score_customer_cached(id)      -- one customer, served from cache when possible
    run_auto_predict_sweep()       -- scheduled / manual sweep over unscored customers
    trigger_for_new_customer(id)   -- background scoring after create / update / import
    trigger_for_batch(ids)
    score_many(ids)                -- score given customers and wait (CLI import)

Single-customer scoring is guarded by a pending marker in the cache: while a
customer is being scored, a second request returns {"pending": True} instead
of calling the ML service again. Check and mark happen with no await in
between, so on one event loop the guard cannot be raced.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, Optional

from leadportal import config, repository
from leadportal.cache import PredictionCache
from leadportal.database import async_session
from leadportal.errors import CustomerNotFound
from scoring.gateway import ScoringGateway

logger = logging.getLogger(__name__)

ML_UNAVAILABLE_REASON = "ML service unavailable"


def job_busy() -> dict:
    return {"error": "Job already running", "is_running": True}


def _result_from_prediction(prediction) -> dict:
    return {
        "customer_id": prediction.customer_id,
        "probability": prediction.probability_score,
        "will_subscribe": prediction.will_subscribe,
        "model_version": prediction.model_version,
        "predicted_at": prediction.predicted_at.isoformat() if prediction.predicted_at else None,
        "from_cache": False,
    }


def new_summary() -> dict:
    return {
        "total": 0,
        "success": 0,
        "failed": 0,
        "skipped": 0,
        "errors": [],
    }


class AutoPredictService:
    """Coordinates ML scoring, persistence and caching of predictions."""

    def __init__(
        self,
        cache: PredictionCache,
        gateway: ScoringGateway,
        session_factory=async_session,
        batch_size: int = config.AUTO_PREDICT_BATCH_SIZE,
    ):
        self.cache = cache
        self.gateway = gateway
        self.session_factory = session_factory
        self.batch_size = batch_size
        self._background: set[asyncio.Task] = set()
        self._sweep_running = False

    # ------------------------------------------------------------------
    # Single customer
    # ------------------------------------------------------------------

    async def score_customer_cached(self, customer_id: int, force_refresh: bool = False) -> dict:
        """
        Score one customer, returning the cached result when there is one.

        Raises CustomerNotFound, ServiceUnavailable, ScoringError or
        PersistenceError. The pending marker is always cleared on failure.
        """
        if not force_refresh:
            cached = self.cache.get_prediction(customer_id)
            if cached:
                logger.info("Cache HIT for customer %s", customer_id)
                return {**cached, "from_cache": True}

        if self.cache.is_pending(customer_id):
            logger.info("Customer %s already has a prediction in flight", customer_id)
            return {"pending": True}

        self.cache.mark_pending(customer_id)
        try:
            async with self.session_factory() as session:
                customer = await repository.get_customer(session, customer_id)
                if customer is None:
                    raise CustomerNotFound(customer_id)

                scored = await self.gateway.score_one(customer)
                saved = await repository.create_prediction(
                    session,
                    customer_id=customer.id,
                    probability=scored["probability"],
                    will_subscribe=scored["will_subscribe"],
                    model_version=scored["model_version"],
                )
            result = _result_from_prediction(saved)
            self.cache.set_prediction(customer_id, result)
        except Exception as e:
            logger.error("Error predicting customer %s: %s", customer_id, e)
            raise
        finally:
            self.cache.clear_pending(customer_id)

        logger.info("Predicted customer %s: %.4f", customer_id, result["probability"])
        return result

    def invalidate(self, customer_id: int):
        """Forget the cached prediction (customer data changed or was deleted)."""
        self.cache.delete_prediction(customer_id)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def run_auto_predict_sweep(self, limit: Optional[int] = None) -> dict:
        """
        Score up to ``limit`` (default: batch size) customers without predictions.

        Never raises: per-customer failures land in ``errors``; an unexpected
        failure of the sweep itself is reported under ``error``. Only one sweep
        runs at a time; a second call returns the busy marker without touching
        the ML service.
        """
        if self._sweep_running:
            logger.info("Auto prediction sweep already running, skipping")
            return job_busy()

        self._sweep_running = True
        try:
            return await self._sweep(limit)
        finally:
            self._sweep_running = False

    @property
    def sweep_running(self) -> bool:
        return self._sweep_running

    async def _sweep(self, limit: Optional[int]) -> dict:
        started = time.monotonic()
        summary = new_summary()

        try:
            logger.info("Starting auto prediction sweep ...")
            self.cache.set_status("running")

            health = await self.gateway.health_check()
            if health.get("status") != "OK":
                logger.warning("ML service not available, skipping sweep")
                self.cache.set_status(f"skipped - {ML_UNAVAILABLE_REASON}")
                return {**summary, "skipped": True, "reason": ML_UNAVAILABLE_REASON}

            async with self.session_factory() as session:
                customers = await repository.get_customers_without_predictions(
                    session, limit or self.batch_size
                )
                summary["total"] = len(customers)

                if not customers:
                    logger.info("No customers without predictions found")
                    self.cache.set_status("completed - no new customers")
                    return summary

                logger.info("Found %d customers without predictions", len(customers))

                if len(customers) > 1:
                    await self._score_batch(session, customers, summary)
                else:
                    await self._score_individually([customers[0].id], summary)

        except Exception as e:
            logger.exception("Auto prediction sweep failed: %s", e)
            self.cache.set_status(f"error - {e}")
            return {**summary, "error": str(e)}

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            "Sweep completed: %d/%d success, %d failed (%.0fms)",
            summary["success"], summary["total"], summary["failed"], duration_ms,
        )
        self.cache.set_status(f"completed - {summary['success']}/{summary['total']} predicted")
        return summary

    async def _score_batch(self, session, customers: list, summary: dict):
        # Customers already being scored by a background trigger are left to it
        pending = {c.id for c in customers if self.cache.is_pending(c.id)}
        if pending:
            logger.info("Skipping %d customers with a prediction in flight", len(pending))
            summary["skipped"] += len(pending)
            customers = [c for c in customers if c.id not in pending]
            if not customers:
                return

        # ids are read up front: a rollback further down expires the ORM rows
        customer_ids = [c.id for c in customers]
        try:
            predictions = await self.gateway.score_batch(customers)
        except Exception as e:
            logger.error("Batch prediction failed, falling back to single predictions: %s", e)
            await self._score_individually(customer_ids, summary)
            return

        for customer_id, prediction in zip(customer_ids, predictions):
            if prediction.get("error"):
                summary["failed"] += 1
                summary["errors"].append({"customer_id": customer_id, "error": prediction["error"]})
                continue

            try:
                saved = await repository.create_prediction(
                    session,
                    customer_id=customer_id,
                    probability=prediction["probability"],
                    will_subscribe=prediction["will_subscribe"],
                    model_version=prediction["model_version"],
                )
            except Exception as e:
                summary["failed"] += 1
                summary["errors"].append({"customer_id": customer_id, "error": str(e)})
                continue

            self.cache.set_prediction(customer_id, _result_from_prediction(saved))
            summary["success"] += 1

    async def _score_individually(self, customer_ids: Iterable[int], summary: dict):
        for customer_id in customer_ids:
            try:
                result = await self.score_customer_cached(customer_id, force_refresh=True)
            except Exception as e:
                summary["failed"] += 1
                summary["errors"].append({"customer_id": customer_id, "error": str(e)})
                continue
            if result.get("pending"):
                summary["skipped"] += 1
            else:
                summary["success"] += 1

    async def score_many(self, customer_ids: Iterable[int]) -> dict:
        """Score the given customers one by one. Never raises; returns a sweep-style summary."""
        ids = list(customer_ids)
        summary = new_summary()
        summary["total"] = len(ids)
        await self._score_individually(ids, summary)
        return summary

    # ------------------------------------------------------------------
    # Background triggers
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _predict_quietly(self, customer_id: int):
        try:
            await self.score_customer_cached(customer_id, force_refresh=True)
        except Exception as e:
            logger.error("Failed to predict customer %s: %s", customer_id, e)

    async def _predict_many_quietly(self, customer_ids: list[int]):
        logger.info("Triggering predictions for %d customers", len(customer_ids))
        summary = await self.score_many(customer_ids)
        logger.info(
            "Background predictions: %d/%d success, %d failed, %d skipped",
            summary["success"], summary["total"], summary["failed"], summary["skipped"],
        )

    def trigger_for_new_customer(self, customer_id: int) -> asyncio.Task:
        """Schedule scoring in the background; the caller does not wait for it."""
        logger.info("Triggering prediction for customer %s", customer_id)
        return self._spawn(self._predict_quietly(customer_id))

    def trigger_for_batch(self, customer_ids: Iterable[int]) -> Optional[asyncio.Task]:
        ids = list(customer_ids or [])
        if not ids:
            return None
        return self._spawn(self._predict_many_quietly(ids))

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def drain(self):
        """Wait for every background trigger to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
