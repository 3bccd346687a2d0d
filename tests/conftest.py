import asyncio
import os
import tempfile
from pathlib import Path

import pytest

# Must be set before leadportal.database / leadportal.config are imported
_DB_DIR = tempfile.mkdtemp(prefix="leadportal-tests-")
os.environ.pop("DATABASE_URL", None)
os.environ["DATABASE_URL_FALLBACK"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENABLE_AUTO_PREDICT_CRON"] = "false"

from leadportal import repository  # noqa: E402
from leadportal.database import async_session, drop_db, init_db  # noqa: E402
from leadportal.errors import ScoringError  # noqa: E402


def customer_data(**overrides):
    data = {
        "name": "John Doe",
        "age": 30,
        "job": "technician",
        "marital": "married",
        "education": "secondary",
        "default": False,
        "housing": True,
        "loan": False,
        "contact": "cellular",
        "month": "may",
        "day_of_week": "mon",
        "campaign": 2,
        "pdays": 999,
        "previous": 0,
        "poutcome": "unknown",
    }
    data.update(overrides)
    return data


async def add_customers(count: int) -> list[int]:
    ids = []
    async with async_session() as session:
        for i in range(count):
            customer = await repository.create_customer(session, customer_data(name=f"Customer {i}"))
            ids.append(customer.id)
    return ids


class FakeGateway:
    """Stands in for ScoringGateway; records calls."""

    def __init__(self, probability=0.8, healthy=True, one_error=None, batch_error=None, fail_names=()):
        self.probability = probability
        self.healthy = healthy
        self.one_error = one_error
        self.batch_error = batch_error
        self.fail_names = set(fail_names)
        self.calls = {"score_one": 0, "score_batch": 0, "health_check": 0}
        self.scored_names = []
        self.batch_sizes = []

    def _result(self):
        return {
            "probability": self.probability,
            "will_subscribe": self.probability >= 0.5,
            "model_version": "test-1",
        }

    async def score_one(self, customer):
        self.calls["score_one"] += 1
        if self.one_error:
            raise self.one_error
        if customer.name in self.fail_names:
            raise ScoringError(f"cannot score {customer.name}", status_code=400)
        self.scored_names.append(customer.name)
        return self._result()

    async def score_batch(self, customers):
        self.calls["score_batch"] += 1
        self.batch_sizes.append(len(customers))
        if self.batch_error:
            raise self.batch_error
        return [{**self._result(), "error": None} for _ in customers]

    async def health_check(self):
        self.calls["health_check"] += 1
        if self.healthy:
            return {"status": "OK", "message": "ML Service is running", "details": {}}
        return {"status": "ERROR", "message": "ML Service is not available", "error": "down"}

    async def model_info(self):
        return {"model": "fake", "version": "test-1"}

    async def close(self):
        pass


@pytest.fixture
def db():
    asyncio.run(drop_db())
    asyncio.run(init_db())
    yield


@pytest.fixture
def gateway():
    return FakeGateway()
