import asyncio

from leadportal import repository
from leadportal.database import async_session

from conftest import add_customers, customer_data


def run(coro):
    return asyncio.run(coro)


def test_create_customer_applies_defaults(db):
    async def scenario():
        async with async_session() as session:
            data = customer_data()
            for key in ("campaign", "pdays", "previous", "poutcome"):
                data.pop(key)
            customer = await repository.create_customer(session, data)
            return repository.customer_to_dict(customer)

    row = run(scenario())
    assert row["campaign"] == 1
    assert row["pdays"] == 999
    assert row["previous"] == 0
    assert row["poutcome"] == "unknown"
    assert row["has_housing_loan"] is True
    assert row["created_at"]


def test_bulk_insert_isolates_failing_rows(db):
    rows = [
        {"row": 2, "data": customer_data(name="Ok 1")},
        {"row": 3, "data": customer_data(name="Too young", age=5)},
        {"row": 4, "data": customer_data(name="Ok 2")},
    ]

    async def scenario():
        async with async_session() as session:
            result = await repository.bulk_create_customers(session, rows)
            total = await repository.count_customers(session)
        return result, total

    result, total = run(scenario())
    assert result["success_count"] == 2
    assert result["failed_count"] == 1
    assert result["failed"][0]["row"] == 3
    assert [c["row"] for c in result["created"]] == [2, 4]
    assert total == 2


def test_latest_prediction_wins(db):
    async def scenario():
        (customer_id,) = await add_customers(1)
        async with async_session() as session:
            await repository.create_prediction(session, customer_id, 0.2, False, "1.0")
            await repository.create_prediction(session, customer_id, 0.9, True, "1.1")
            detail = await repository.get_customer_detail(session, customer_id)
            history = await repository.get_prediction_history(session, customer_id)
            unscored = await repository.get_customers_without_predictions(session)
        return detail, history, unscored

    detail, history, unscored = run(scenario())
    assert detail["probability_score"] == 0.9
    assert detail["model_version"] == "1.1"
    assert len(history) == 2
    assert unscored == []


def test_list_filters_and_top_leads(db):
    async def scenario():
        ids = await add_customers(3)
        async with async_session() as session:
            await repository.update_customer(session, ids[0], {"age": 60, "job": "retired"})
            await repository.create_prediction(session, ids[0], 0.95, True)
            await repository.create_prediction(session, ids[1], 0.4, False)
            retired = await repository.list_customers(session, job="retired")
            by_score = await repository.list_customers(session, sort_by="probability_score", order="DESC")
            leads = await repository.get_top_leads(session, limit=10, threshold=0.5)
            stats = await repository.get_prediction_stats(session)
        return ids, retired, by_score, leads, stats

    ids, retired, by_score, leads, stats = run(scenario())
    assert [c["id"] for c in retired] == [ids[0]]
    assert [c["id"] for c in by_score] == [ids[0], ids[1], ids[2]]
    assert [c["id"] for c in leads] == [ids[0]]
    assert stats["total_predictions"] == 2
    assert stats["positive_predictions"] == 1
    assert stats["customers_without_predictions"] == 1
    assert stats["conversion_rate"] == 50.0


def test_delete_cascades_predictions(db):
    async def scenario():
        (customer_id,) = await add_customers(1)
        async with async_session() as session:
            await repository.create_prediction(session, customer_id, 0.7, True)
            deleted = await repository.delete_customer(session, customer_id)
            history = await repository.get_prediction_history(session, customer_id)
            missing = await repository.delete_customer(session, customer_id)
        return deleted, history, missing

    deleted, history, missing = run(scenario())
    assert deleted is True
    assert history == []
    assert missing is False
