"""
Data access for customers and predictions.

Every function takes an AsyncSession; write helpers commit on their own and
wrap database failures in PersistenceError so callers can record them per
customer / per row without aborting their siblings.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadportal.errors import PersistenceError
from leadportal.models import CUSTOMER_FIELDS, Customer, Prediction, customer_to_dict
from leadportal.validation import FLAG_ALIASES

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ("id", "age", "job", "education", "created_at", "probability_score")

COLUMN_DEFAULTS = {
    "has_default": False,
    "has_housing_loan": False,
    "has_personal_loan": False,
    "campaign": 1,
    "pdays": 999,
    "previous": 0,
    "poutcome": "unknown",
    "balance": 0.0,
}

PROTECTED_FIELDS = {
    "id",
    "created_at",
    "updated_at",
    "probability_score",
    "will_subscribe",
    "predicted_at",
    "model_version",
}


def to_columns(data: dict) -> dict:
    """Map input names (default/housing/loan) to column names and drop unknown keys."""
    values = {}
    for key, value in data.items():
        column = FLAG_ALIASES.get(key, key)
        if column in CUSTOMER_FIELDS:
            # has_default wins over default when both are given
            if key in FLAG_ALIASES and column in data:
                continue
            values[column] = value
    return values


def _latest_prediction_subquery():
    """Latest prediction per customer (max predicted_at, ties broken by id)."""
    ranked = select(
        Prediction.id,
        Prediction.customer_id,
        Prediction.probability_score,
        Prediction.will_subscribe,
        Prediction.model_version,
        Prediction.predicted_at,
        func.row_number()
        .over(
            partition_by=Prediction.customer_id,
            order_by=(Prediction.predicted_at.desc(), Prediction.id.desc()),
        )
        .label("rn"),
    ).subquery()
    return select(ranked).where(ranked.c.rn == 1).subquery()


def _with_latest(customer: Customer, latest) -> dict:
    row = customer_to_dict(customer)
    row["probability_score"] = latest.probability_score if latest is not None else None
    row["will_subscribe"] = latest.will_subscribe if latest is not None else None
    row["model_version"] = latest.model_version if latest is not None else None
    row["predicted_at"] = (
        latest.predicted_at.isoformat() if latest is not None and latest.predicted_at else None
    )
    return row


def _customer_filters(
    search: str = "",
    min_age: Optional[int] = None,
    max_age: Optional[int] = None,
    job: Optional[str] = None,
    education: Optional[str] = None,
    marital: Optional[str] = None,
    housing: Optional[bool] = None,
    loan: Optional[bool] = None,
    has_default: Optional[bool] = None,
) -> list:
    clauses = []
    if search:
        pattern = f"%{search}%"
        clauses.append(
            or_(
                Customer.name.ilike(pattern),
                Customer.job.ilike(pattern),
                Customer.education.ilike(pattern),
                Customer.marital.ilike(pattern),
            )
        )
    if min_age is not None:
        clauses.append(Customer.age >= min_age)
    if max_age is not None:
        clauses.append(Customer.age <= max_age)
    if job:
        clauses.append(Customer.job == job)
    if education:
        clauses.append(Customer.education == education)
    if marital:
        clauses.append(Customer.marital == marital)
    if housing is not None:
        clauses.append(Customer.has_housing_loan == housing)
    if loan is not None:
        clauses.append(Customer.has_personal_loan == loan)
    if has_default is not None:
        clauses.append(Customer.has_default == has_default)
    return clauses


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

async def list_customers(
    session: AsyncSession,
    page: int = 1,
    limit: int = 50,
    sort_by: str = "id",
    order: str = "ASC",
    **filters,
) -> list[dict]:
    latest = _latest_prediction_subquery()
    stmt = select(Customer, latest).outerjoin(latest, latest.c.customer_id == Customer.id)

    clauses = _customer_filters(**filters)
    if clauses:
        stmt = stmt.where(and_(*clauses))

    sort_by = sort_by if sort_by in SORTABLE_COLUMNS else "id"
    descending = order.upper() == "DESC"
    if sort_by == "probability_score":
        column = latest.c.probability_score
        stmt = stmt.order_by(column.desc().nullslast() if descending else column.asc().nullslast())
    else:
        column = getattr(Customer, sort_by)
        stmt = stmt.order_by(column.desc() if descending else column.asc())

    stmt = stmt.limit(limit).offset((page - 1) * limit)
    rows = (await session.execute(stmt)).all()
    return [_with_latest(row[0], row if row.customer_id is not None else None) for row in rows]


async def count_customers(session: AsyncSession, **filters) -> int:
    stmt = select(func.count(Customer.id))
    clauses = _customer_filters(**filters)
    if clauses:
        stmt = stmt.where(and_(*clauses))
    return (await session.execute(stmt)).scalar() or 0


async def get_customer(session: AsyncSession, customer_id: int) -> Optional[Customer]:
    return await session.get(Customer, customer_id)


async def get_customer_detail(session: AsyncSession, customer_id: int) -> Optional[dict]:
    customer = await get_customer(session, customer_id)
    if customer is None:
        return None
    return _with_latest(customer, await get_latest_prediction(session, customer_id))


async def create_customer(session: AsyncSession, data: dict) -> Customer:
    values = {**COLUMN_DEFAULTS, **{k: v for k, v in to_columns(data).items() if v is not None}}
    customer = Customer(**values)
    session.add(customer)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError(f"Failed to create customer: {e}") from e
    await session.refresh(customer)
    return customer


async def update_customer(session: AsyncSession, customer_id: int, updates: dict) -> Optional[Customer]:
    customer = await get_customer(session, customer_id)
    if customer is None:
        return None

    values = {
        k: v
        for k, v in to_columns(updates).items()
        if k not in PROTECTED_FIELDS and v is not None
    }
    if not values:
        raise ValueError("No fields to update")

    for key, value in values.items():
        setattr(customer, key, value)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError(f"Failed to update customer {customer_id}: {e}") from e
    await session.refresh(customer)
    return customer


async def delete_customer(session: AsyncSession, customer_id: int) -> bool:
    customer = await get_customer(session, customer_id)
    if customer is None:
        return False
    await session.delete(customer)
    await session.commit()
    return True


async def get_customers_without_predictions(session: AsyncSession, limit: int = 100) -> list[Customer]:
    stmt = (
        select(Customer)
        .outerjoin(Prediction, Customer.id == Prediction.customer_id)
        .where(Prediction.id.is_(None))
        .order_by(Customer.id)
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


async def customer_stats(session: AsyncSession) -> dict:
    stmt = select(
        func.count(Customer.id),
        func.avg(Customer.age),
        func.sum(case((Customer.has_housing_loan.is_(True), 1), else_=0)),
        func.sum(case((Customer.has_personal_loan.is_(True), 1), else_=0)),
        func.count(func.distinct(Customer.job)),
        func.count(func.distinct(Customer.education)),
    )
    total, avg_age, housing, personal, jobs, educations = (await session.execute(stmt)).one()
    return {
        "total_customers": total or 0,
        "avg_age": round(float(avg_age or 0), 1),
        "with_housing_loan": int(housing or 0),
        "with_personal_loan": int(personal or 0),
        "unique_jobs": jobs or 0,
        "unique_education_levels": educations or 0,
    }


async def bulk_create_customers(session: AsyncSession, rows: list[dict]) -> dict:
    """
    Insert imported rows one by one, committing each on its own.

    A failing row is rolled back alone and reported; rows already inserted
    stay inserted.
    """
    results = {
        "created": [],
        "failed": [],
        "success_count": 0,
        "failed_count": 0,
    }

    for index, item in enumerate(rows):
        data = item["data"]
        row_number = item.get("row", index + 1)
        values = {**COLUMN_DEFAULTS, **{k: v for k, v in to_columns(data).items() if v is not None}}
        customer = Customer(**values)
        session.add(customer)
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.warning("Row %s insert failed: %s", row_number, e)
            results["failed"].append({"row": row_number, "data": data, "error": str(e)})
            results["failed_count"] += 1
            continue

        results["created"].append({
            "row": row_number,
            "id": customer.id,
            "data": {
                "id": customer.id,
                "name": customer.name,
                "age": customer.age,
                "job": customer.job,
                "education": customer.education,
            },
        })
        results["success_count"] += 1

    return results


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

async def create_prediction(
    session: AsyncSession,
    customer_id: int,
    probability: float,
    will_subscribe: bool,
    model_version: Optional[str] = None,
) -> Prediction:
    prediction = Prediction(
        customer_id=customer_id,
        probability_score=probability,
        will_subscribe=will_subscribe,
        model_version=model_version or "1.0",
    )
    session.add(prediction)
    try:
        await session.commit()
        await session.refresh(prediction)
    except SQLAlchemyError as e:
        await session.rollback()
        raise PersistenceError(f"Failed to save prediction for customer {customer_id}: {e}") from e
    return prediction


async def get_latest_prediction(session: AsyncSession, customer_id: int) -> Optional[Prediction]:
    stmt = (
        select(Prediction)
        .where(Prediction.customer_id == customer_id)
        .order_by(Prediction.predicted_at.desc(), Prediction.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_prediction_history(session: AsyncSession, customer_id: int) -> list[Prediction]:
    stmt = (
        select(Prediction)
        .where(Prediction.customer_id == customer_id)
        .order_by(Prediction.predicted_at.desc(), Prediction.id.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_top_leads(session: AsyncSession, limit: int = 50, threshold: float = 0.5) -> list[dict]:
    latest = _latest_prediction_subquery()
    stmt = (
        select(Customer, latest)
        .join(latest, latest.c.customer_id == Customer.id)
        .where(latest.c.probability_score >= threshold)
        .order_by(latest.c.probability_score.desc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    return [_with_latest(row[0], row) for row in rows]


async def get_prediction_stats(session: AsyncSession) -> dict:
    latest = _latest_prediction_subquery()
    score = latest.c.probability_score
    stmt = select(
        func.count(latest.c.id),
        func.avg(score),
        func.sum(case((latest.c.will_subscribe.is_(True), 1), else_=0)),
        func.max(score),
        func.min(score),
        func.sum(case((score >= 0.75, 1), else_=0)),
        func.sum(case((and_(score >= 0.5, score < 0.75), 1), else_=0)),
        func.sum(case((score < 0.5, 1), else_=0)),
    )
    total, avg, positive, highest, lowest, high, medium, low = (await session.execute(stmt)).one()
    total = total or 0
    positive = int(positive or 0)
    total_customers = (await session.execute(select(func.count(Customer.id)))).scalar() or 0

    return {
        "total_predictions": total,
        "average_score": round(float(avg or 0), 4),
        "positive_predictions": positive,
        "negative_predictions": total - positive,
        "highest_score": round(float(highest or 0), 4),
        "lowest_score": round(float(lowest or 0), 4),
        "high_priority_count": int(high or 0),
        "medium_priority_count": int(medium or 0),
        "low_priority_count": int(low or 0),
        "conversion_rate": round(positive / total * 100, 2) if total else 0.0,
        "customers_with_predictions": total,
        "customers_without_predictions": total_customers - total,
    }
