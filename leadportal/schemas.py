"""Pydantic schemas for FastAPI request / response models."""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------

class CustomerIn(BaseModel):
    """Create / update payload. Flags accept both `default` and `has_default`."""

    name: Optional[str] = None
    age: Optional[int] = None
    job: Optional[str] = None
    marital: Optional[str] = None
    education: Optional[str] = None
    has_default: Optional[bool] = Field(default=None, alias="default")
    has_housing_loan: Optional[bool] = Field(default=None, alias="housing")
    has_personal_loan: Optional[bool] = Field(default=None, alias="loan")
    contact: Optional[str] = None
    month: Optional[str] = None
    day_of_week: Optional[str] = None
    campaign: Optional[int] = None
    pdays: Optional[int] = None
    previous: Optional[int] = None
    poutcome: Optional[str] = None
    balance: Optional[float] = None

    class Config:
        populate_by_name = True


class CustomerOut(BaseModel):
    id: int
    name: str = ""
    age: int
    job: Optional[str] = None
    marital: Optional[str] = None
    education: Optional[str] = None
    has_default: bool = False
    has_housing_loan: bool = False
    has_personal_loan: bool = False
    contact: Optional[str] = None
    month: Optional[str] = None
    day_of_week: Optional[str] = None
    campaign: int = 1
    pdays: int = 999
    previous: int = 0
    poutcome: Optional[str] = None
    balance: float = 0
    probability_score: Optional[float] = None
    will_subscribe: Optional[bool] = None
    model_version: Optional[str] = None
    predicted_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class CustomerList(BaseModel):
    customers: list[CustomerOut]
    pagination: Pagination


# ---------------------------------------------------------------------------
# CSV upload
# ---------------------------------------------------------------------------

class UploadSummary(BaseModel):
    total_records_in_file: int
    valid_records: int
    invalid_records: int
    successfully_created: int
    failed_to_create: int


class UploadResponse(BaseModel):
    success: bool = True
    message: str = "CSV upload processed"
    summary: UploadSummary
    created: list[dict] = []
    validation_errors: list[dict] = []
    insertion_errors: list[dict] = []
    note: Optional[str] = None
    note_insert: Optional[str] = None


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

class PredictionOut(BaseModel):
    id: int
    customer_id: int
    probability_score: float
    will_subscribe: bool
    model_version: Optional[str] = None
    predicted_at: Optional[str] = None


class PredictionHistory(BaseModel):
    customer_id: int
    total_predictions: int
    history: list[PredictionOut]


class BatchRequest(BaseModel):
    limit: int = Field(default=100, ge=1, le=500)


class SweepSummary(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int | bool = 0
    errors: list[dict] = []
    reason: Optional[str] = None
    error: Optional[str] = None


class PredictionStats(BaseModel):
    total_predictions: int = 0
    average_score: float = 0
    positive_predictions: int = 0
    negative_predictions: int = 0
    highest_score: float = 0
    lowest_score: float = 0
    high_priority_count: int = 0
    medium_priority_count: int = 0
    low_priority_count: int = 0
    conversion_rate: float = 0
    customers_with_predictions: int = 0
    customers_without_predictions: int = 0


class CacheStats(BaseModel):
    hits: int
    misses: int
    keys: int
    prediction_keys: int
    hit_rate: str
