"""
SQLAlchemy ORM models -- lead scoring schema.

Tables
------
customers    -- bank marketing customer records (manual input or CSV import)
predictions  -- ML subscription predictions, many per customer, newest wins
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base

# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    age = Column(Integer, nullable=False)
    job = Column(String(50), index=True)
    marital = Column(String(20))
    education = Column(String(50), index=True)

    has_default = Column(Boolean, default=False)
    has_housing_loan = Column(Boolean, default=False)
    has_personal_loan = Column(Boolean, default=False)

    contact = Column(String(20))
    month = Column(String(10))
    day_of_week = Column(String(10))

    # Campaign history
    campaign = Column(Integer, default=1)
    pdays = Column(Integer, default=999)
    previous = Column(Integer, default=0)
    poutcome = Column(String(20), default="unknown")

    balance = Column(Float, default=0, index=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    predictions = relationship(
        "Prediction",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("age >= 18 AND age <= 100", name="ck_customers_age"),
    )


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

class Prediction(Base):
    __tablename__ = "predictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(
        Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    probability_score = Column(Float, nullable=False, index=True)
    will_subscribe = Column(Boolean, nullable=False)
    model_version = Column(String(20), default="1.0")
    predicted_at = Column(DateTime, default=func.now())

    customer = relationship("Customer", back_populates="predictions")

    __table_args__ = (
        Index("ix_predictions_customer_predicted", "customer_id", "predicted_at"),
        CheckConstraint(
            "probability_score >= 0 AND probability_score <= 1",
            name="ck_predictions_probability",
        ),
    )


CUSTOMER_FIELDS = (
    "name",
    "age",
    "job",
    "marital",
    "education",
    "has_default",
    "has_housing_loan",
    "has_personal_loan",
    "contact",
    "month",
    "day_of_week",
    "campaign",
    "pdays",
    "previous",
    "poutcome",
    "balance",
)


def customer_to_dict(customer: Customer) -> dict:
    row = {"id": customer.id}
    for field in CUSTOMER_FIELDS:
        row[field] = getattr(customer, field)
    row["created_at"] = customer.created_at.isoformat() if customer.created_at else None
    row["updated_at"] = customer.updated_at.isoformat() if customer.updated_at else None
    return row


def prediction_to_dict(prediction: Prediction) -> dict:
    return {
        "id": prediction.id,
        "customer_id": prediction.customer_id,
        "probability_score": prediction.probability_score,
        "will_subscribe": prediction.will_subscribe,
        "model_version": prediction.model_version,
        "predicted_at": prediction.predicted_at.isoformat() if prediction.predicted_at else None,
    }
