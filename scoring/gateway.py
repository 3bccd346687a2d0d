"""
Scoring Gateway -- async HTTP client for the external ML scoring service.

Endpoints used:
    POST /predict        single customer -> {probability, prediction, model_version}
    POST /predict/batch  {"customers": [...]} -> {"predictions": [...]}
    GET  /health         liveness probe (payload passed through as-is)
    GET  /model/info     model metadata

Configuration:
    ML_SERVICE_URL / ML_API_TIMEOUT env vars (see leadportal.config)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx

from leadportal import config
from leadportal.errors import ScoringError, ServiceUnavailable
from scoring.features import batch_payload, customer_to_payload

logger = logging.getLogger(__name__)

DEFAULT_MODEL_VERSION = "1.0"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def _parse_prediction(item: dict) -> dict:
    return {
        "probability": float(item["probability"]),
        "will_subscribe": bool(item["prediction"]),
        "model_version": item.get("model_version") or DEFAULT_MODEL_VERSION,
    }


class ScoringGateway:
    """Async client for the ML scoring service."""

    def __init__(
        self,
        base_url: str = config.ML_SERVICE_URL,
        timeout: float = config.ML_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        logger.debug("ML request: %s %s", method, path)
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error("ML service unreachable (%s %s): %s", method, path, e)
            raise ServiceUnavailable(
                "ML Service is not available. Please make sure the ML service is running."
            ) from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error("ML response error %d on %s: %s", resp.status_code, path, message)
            raise ScoringError(message, status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise ScoringError(f"Invalid JSON from ML service: {e}") from e

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def score_one(self, customer: Any) -> dict:
        """Score a single customer. Returns {probability, will_subscribe, model_version}."""
        data = await self._request("POST", "/predict", json=customer_to_payload(customer))
        try:
            return _parse_prediction(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ScoringError(f"ML prediction failed: malformed response ({e})") from e

    async def score_batch(self, customers: Iterable[Any]) -> list[dict]:
        """
        Score many customers in one call.

        Results are positional. An item the service could not score comes
        back as {"error": "..."} instead of raising.
        """
        customers = list(customers)
        data = await self._request("POST", "/predict/batch", json=batch_payload(customers))

        predictions = data.get("predictions") if isinstance(data, dict) else None
        if not isinstance(predictions, list) or len(predictions) != len(customers):
            raise ScoringError("Batch prediction failed: response does not match request size")

        results = []
        for item in predictions:
            if not isinstance(item, dict):
                results.append({"error": "Malformed prediction item"})
                continue
            if item.get("error"):
                results.append({"error": str(item["error"])})
                continue
            try:
                result = _parse_prediction(item)
            except (KeyError, TypeError, ValueError) as e:
                results.append({"error": f"Malformed prediction item: {e}"})
                continue
            result["error"] = None
            results.append(result)
        return results

    # ------------------------------------------------------------------
    # Health / metadata
    # ------------------------------------------------------------------

    async def health_check(self) -> dict:
        """Never raises; returns {"status": "OK"|"ERROR", ...}."""
        try:
            details = await self._request("GET", "/health")
        except Exception as e:
            logger.warning("ML service health check failed: %s", e)
            return {
                "status": "ERROR",
                "message": "ML Service is not available",
                "error": str(e),
            }
        return {
            "status": "OK",
            "message": "ML Service is running",
            "details": details,
        }

    async def model_info(self) -> Any:
        return await self._request("GET", "/model/info")
