import asyncio

import pytest
from fastapi.testclient import TestClient

from leadportal import config
from leadportal.app import app
from leadportal.autopredict import AutoPredictService
from leadportal.cache import PredictionCache
from leadportal.csv_import import REQUIRED_COLUMNS, generate_template
from leadportal.errors import ServiceUnavailable
from leadportal.scheduler import AutoPredictScheduler

from conftest import FakeGateway, add_customers, customer_data

HEADER = ",".join(REQUIRED_COLUMNS)
GOOD_ROW = "John Doe,30,technician,married,secondary,false,true,false,cellular,may,mon,2,999,0,unknown"


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(db, fake_gateway):
    with TestClient(app) as c:
        cache = PredictionCache(ttl=300, pending_ttl=600)
        service = AutoPredictService(cache, fake_gateway)
        app.state.cache = cache
        app.state.gateway = fake_gateway
        app.state.autopredict = service
        app.state.scheduler = AutoPredictScheduler(service, cache, enabled=False, timezone="UTC")
        yield c


def upload(client, content, filename="customers.csv", content_type="text/csv"):
    return client.post(
        "/customers/upload-csv",
        files={"csvfile": (filename, content, content_type)},
    )


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def test_template_download(client):
    resp = client.get("/customers/csv-template")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "customer_import_template.csv" in resp.headers["content-disposition"]
    assert resp.text.splitlines()[0] == HEADER


def test_upload_splits_valid_and_invalid_rows(client):
    bad = GOOD_ROW.replace(",may,", ",maybe,")
    content = "\n".join([HEADER, GOOD_ROW, bad, GOOD_ROW]) + "\n"

    resp = upload(client, content.encode())
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["summary"] == {
        "total_records_in_file": 3,
        "valid_records": 2,
        "invalid_records": 1,
        "successfully_created": 2,
        "failed_to_create": 0,
    }
    assert body["validation_errors"][0]["row"] == 3
    assert body["note"] is None

    listed = client.get("/customers/").json()
    assert listed["pagination"]["total"] == 2


def test_upload_samples_first_ten_errors(client):
    bad = GOOD_ROW.replace("John Doe,30", "Kid,12")
    content = "\n".join([HEADER, GOOD_ROW] + [bad] * 12) + "\n"

    body = upload(client, content.encode()).json()
    assert body["summary"]["invalid_records"] == 12
    assert len(body["validation_errors"]) == 10
    assert body["note"] == "Showing first 10 validation errors. Total: 12"


def test_upload_template_file(client):
    resp = upload(client, generate_template().encode())
    assert resp.status_code == 200
    assert resp.json()["summary"]["successfully_created"] == 3


def test_upload_rejects_missing_columns(client):
    resp = upload(client, b"name,age\nJohn,30\n")
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"].startswith("Missing required columns: job")


def test_upload_rejects_all_invalid_rows(client):
    bad = GOOD_ROW.replace("technician", "pilot")
    resp = upload(client, f"{HEADER}\n{bad}\n".encode())
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "No Valid Records"
    assert detail["invalid_records"] == 1


def test_upload_rejects_wrong_extension_and_type(client):
    assert upload(client, b"x", filename="customers.xlsx").status_code == 400
    assert upload(client, b"x", content_type="image/png").status_code == 400


def test_upload_rejects_large_files(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 16)
    resp = upload(client, f"{HEADER}\n{GOOD_ROW}\n".encode())
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Customers CRUD
# ---------------------------------------------------------------------------

def test_create_get_update_delete_customer(client):
    resp = client.post("/customers/", json=customer_data(name="Alice"))
    assert resp.status_code == 201
    created = resp.json()
    assert created["name"] == "Alice"
    assert created["has_housing_loan"] is True
    customer_id = created["id"]

    resp = client.put(f"/customers/{customer_id}", json={"age": 52})
    assert resp.status_code == 200
    assert resp.json()["age"] == 52

    assert client.get(f"/customers/{customer_id}").json()["age"] == 52

    resp = client.delete(f"/customers/{customer_id}")
    assert resp.status_code == 200
    assert client.get(f"/customers/{customer_id}").status_code == 404


def test_create_customer_validation_errors(client):
    resp = client.post("/customers/", json=customer_data(name="", month="maybe"))
    assert resp.status_code == 400
    errors = resp.json()["detail"]["errors"]
    assert "Name is required" in errors
    assert any(e.startswith("Month must be one of") for e in errors)


def test_update_unknown_customer_is_404(client):
    assert client.put("/customers/999", json={"age": 40}).status_code == 404


def test_update_with_no_fields_is_400(client):
    (customer_id,) = asyncio.run(add_customers(1))
    resp = client.put(f"/customers/{customer_id}", json={})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No fields to update"


def test_list_pagination_and_stats(client):
    asyncio.run(add_customers(5))
    body = client.get("/customers/", params={"limit": 2, "page": 2}).json()
    assert len(body["customers"]) == 2
    assert body["pagination"]["total"] == 5
    assert body["pagination"]["total_pages"] == 3
    assert body["pagination"]["has_next"] is True
    assert body["pagination"]["has_prev"] is True

    assert client.get("/customers/", params={"limit": 101}).status_code == 422

    stats = client.get("/customers/stats").json()
    assert stats["total_customers"] == 5
    assert stats["with_housing_loan"] == 5


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

def test_predict_customer_uses_cache(client, fake_gateway):
    (customer_id,) = asyncio.run(add_customers(1))

    first = client.post(f"/predictions/customer/{customer_id}")
    assert first.status_code == 200
    assert first.json()["from_cache"] is False
    second = client.post(f"/predictions/customer/{customer_id}").json()
    assert second["from_cache"] is True
    assert fake_gateway.calls["score_one"] == 1

    history = client.get(f"/predictions/customer/{customer_id}/history").json()
    assert history["total_predictions"] == 1
    assert history["history"][0]["model_version"] == "test-1"


def test_predict_errors_map_to_status_codes(client, fake_gateway):
    (customer_id,) = asyncio.run(add_customers(1))
    assert client.post("/predictions/customer/999").status_code == 404

    fake_gateway.one_error = ServiceUnavailable("down")
    assert client.post(f"/predictions/customer/{customer_id}").status_code == 503
    assert client.get("/predictions/customer/999/history").status_code == 404


def test_batch_and_stats(client):
    asyncio.run(add_customers(3))
    summary = client.post("/predictions/batch", json={"limit": 10}).json()
    assert summary["total"] == 3
    assert summary["success"] == 3

    stats = client.get("/predictions/stats").json()
    assert stats["total_predictions"] == 3
    assert stats["high_priority_count"] == 3

    leads = client.get("/predictions/top-leads", params={"threshold": 0.7}).json()
    assert len(leads) == 3
    assert client.get("/predictions/top-leads", params={"threshold": 2}).status_code == 422
    assert client.post("/predictions/batch", json={"limit": 0}).status_code == 422


def test_job_endpoints(client):
    status = client.get("/predictions/job/status").json()
    assert status["enabled"] is False
    assert status["total_runs"] == 0

    resp = client.post("/predictions/job/trigger")
    assert resp.status_code == 200
    assert resp.json()["result"]["total"] == 0
    assert client.get("/predictions/job/status").json()["total_runs"] == 1

    cache_stats = client.get("/predictions/cache/stats").json()
    assert set(cache_stats) == {"hits", "misses", "keys", "prediction_keys", "hit_rate"}


def test_health_and_model_info(client):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["ml_service"]["status"] == "OK"
    assert client.get("/predictions/model-info").json()["model"] == "fake"


def test_valid_values_listing(client):
    values = client.get("/customers/valid-values").json()
    assert "technician" in values["jobs"]
    assert values["poutcome"] == ["failure", "nonexistent", "success", "unknown"]


def test_clear_prediction_cache(client, fake_gateway):
    (customer_id,) = asyncio.run(add_customers(1))
    client.post(f"/predictions/customer/{customer_id}")

    resp = client.delete("/predictions/cache")
    assert resp.status_code == 200
    assert resp.json()["cache_stats"]["prediction_keys"] == 0

    assert client.post(f"/predictions/customer/{customer_id}").json()["from_cache"] is False
    assert fake_gateway.calls["score_one"] == 2


def test_batch_refused_while_sweep_runs(client, fake_gateway):
    asyncio.run(add_customers(2))
    app.state.scheduler.state.is_running = True

    resp = client.post("/predictions/batch", json={"limit": 10})
    assert resp.status_code == 409
    assert resp.json() == {"error": "Job already running", "is_running": True}
    assert fake_gateway.calls == {"score_one": 0, "score_batch": 0, "health_check": 0}
