# Configuration from environment variables (.env or deployment variables).

import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _env_int(key: str, default: int) -> int:
    s = _env(key)
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    s = _env(key)
    if not s:
        return default
    try:
        return float(s)
    except ValueError:
        return default


def _env_bool(key: str, default: bool = True) -> bool:
    s = _env(key)
    if not s:
        return default
    return s.lower() in ("1", "true", "yes")


# ============================================================================
# ML scoring service
# ============================================================================
ML_SERVICE_URL = _env("ML_SERVICE_URL", "http://localhost:5050")
ML_API_TIMEOUT = _env_float("ML_API_TIMEOUT", 10.0)  # seconds

# ============================================================================
# Auto-predict scheduler
# ============================================================================
ENABLE_AUTO_PREDICT_CRON = _env_bool("ENABLE_AUTO_PREDICT_CRON", True)
AUTO_PREDICT_CRON = _env("AUTO_PREDICT_CRON", "*/2 * * * *")
CACHE_STATS_CRON = _env("CACHE_STATS_CRON", _env("CACHE_CLEANUP_CRON", "0 * * * *"))
SCHEDULER_TIMEZONE = _env("SCHEDULER_TIMEZONE", "Asia/Jakarta")
AUTO_PREDICT_BATCH_SIZE = _env_int("AUTO_PREDICT_BATCH_SIZE", 50)

# ============================================================================
# Prediction cache
# ============================================================================
CACHE_TTL = _env_int("CACHE_TTL", 300)
CACHE_CHECK_PERIOD = _env_int("CACHE_CHECK_PERIOD", 60)
PENDING_TTL = _env_int("PENDING_TTL", 600)

# ============================================================================
# CSV upload
# ============================================================================
MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)

LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
