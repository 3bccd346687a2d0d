"""Customer endpoints -- CRUD, statistics and CSV bulk import."""

from __future__ import annotations

import logging
import math
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from leadportal import config, repository
from leadportal.autopredict import AutoPredictService
from leadportal.csv_import import generate_template, parse_and_validate
from leadportal.database import get_session
from leadportal.dependencies import get_autopredict
from leadportal.errors import CSVParseError, PersistenceError
from leadportal.models import customer_to_dict
from leadportal.schemas import CustomerIn, CustomerList, CustomerOut, UploadResponse
from leadportal.validation import get_valid_values, validate_customer_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])

ALLOWED_MIME_TYPES = {"text/csv", "application/csv", "text/plain", "application/vnd.ms-excel"}
SAMPLE_SIZE = 10


def _validation_failed(errors: list[str]) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": "Validation failed", "errors": errors})


# ---------------------------------------------------------------------------
# CSV import
# ---------------------------------------------------------------------------

@router.get("/csv-template")
async def download_csv_template():
    return Response(
        content=generate_template(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=customer_import_template.csv"},
    )


async def _read_upload(csvfile: UploadFile) -> bytes:
    ext = os.path.splitext(csvfile.filename or "")[1].lower()
    if ext != ".csv":
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    content_type = (csvfile.content_type or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=400, detail="Invalid file type. Please upload a CSV file")

    data = await csvfile.read(config.MAX_UPLOAD_BYTES + 1)
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File size must be less than {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB",
        )
    return data


@router.post("/upload-csv", response_model=UploadResponse)
async def upload_csv(
    csvfile: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    autopredict: AutoPredictService = Depends(get_autopredict),
):
    data = await _read_upload(csvfile)
    logger.info("CSV upload received: %s (%d bytes)", csvfile.filename, len(data))

    try:
        validation = parse_and_validate(data)
    except CSVParseError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "CSV Validation Failed", "message": str(e)},
        )

    if not validation["success"]:
        raise HTTPException(
            status_code=400,
            detail={"error": "CSV Validation Failed", "message": validation["error"]},
        )

    valid = validation["data"]["valid"]
    invalid = validation["data"]["invalid"]
    total_records = validation["data"]["total_records"]

    if not valid:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "No Valid Records",
                "message": "All records in the CSV file are invalid",
                "total_records": total_records,
                "valid_records": 0,
                "invalid_records": len(invalid),
                "errors": invalid[:SAMPLE_SIZE],
            },
        )

    logger.info("Inserting %d valid records ...", len(valid))
    inserted = await repository.bulk_create_customers(session, valid)
    logger.info(
        "CSV insert complete: %d created, %d failed",
        inserted["success_count"], inserted["failed_count"],
    )

    if inserted["created"]:
        autopredict.trigger_for_batch([c["id"] for c in inserted["created"]])

    response = UploadResponse(
        summary={
            "total_records_in_file": total_records,
            "valid_records": len(valid),
            "invalid_records": len(invalid),
            "successfully_created": inserted["success_count"],
            "failed_to_create": inserted["failed_count"],
        },
        created=inserted["created"][:SAMPLE_SIZE],
        validation_errors=invalid[:SAMPLE_SIZE],
        insertion_errors=inserted["failed"][:SAMPLE_SIZE],
    )
    if len(invalid) > SAMPLE_SIZE:
        response.note = f"Showing first {SAMPLE_SIZE} validation errors. Total: {len(invalid)}"
    if len(inserted["failed"]) > SAMPLE_SIZE:
        response.note_insert = (
            f"Showing first {SAMPLE_SIZE} insertion errors. Total: {len(inserted['failed'])}"
        )
    return response


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.get("/valid-values")
async def valid_values():
    """Allowed values for the categorical fields (form dropdowns, CSV authors)."""
    return get_valid_values()


@router.get("/stats")
async def customer_stats(session: AsyncSession = Depends(get_session)):
    return await repository.customer_stats(session)


@router.get("/", response_model=CustomerList)
async def list_customers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    search: str = "",
    sort_by: str = "id",
    order: str = "ASC",
    min_age: Optional[int] = None,
    max_age: Optional[int] = None,
    job: Optional[str] = None,
    education: Optional[str] = None,
    marital: Optional[str] = None,
    housing: Optional[bool] = None,
    loan: Optional[bool] = None,
    has_default: Optional[bool] = None,
    session: AsyncSession = Depends(get_session),
):
    filters = {
        "search": search,
        "min_age": min_age,
        "max_age": max_age,
        "job": job,
        "education": education,
        "marital": marital,
        "housing": housing,
        "loan": loan,
        "has_default": has_default,
    }
    customers = await repository.list_customers(
        session, page=page, limit=limit, sort_by=sort_by, order=order, **filters
    )
    total = await repository.count_customers(session, **filters)
    total_pages = math.ceil(total / limit)

    return CustomerList(
        customers=customers,
        pagination={
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    )


@router.get("/{customer_id}", response_model=CustomerOut)
async def get_customer(customer_id: int, session: AsyncSession = Depends(get_session)):
    customer = await repository.get_customer_detail(session, customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/", response_model=CustomerOut, status_code=201)
async def create_customer(
    payload: CustomerIn,
    session: AsyncSession = Depends(get_session),
    autopredict: AutoPredictService = Depends(get_autopredict),
):
    data = payload.model_dump(exclude_none=True)
    errors = validate_customer_data(data)
    if errors:
        raise _validation_failed(errors)

    try:
        customer = await repository.create_customer(session, data)
    except PersistenceError as e:
        logger.error("Create customer failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to create customer")

    autopredict.trigger_for_new_customer(customer.id)
    return customer_to_dict(customer)


@router.put("/{customer_id}", response_model=CustomerOut)
async def update_customer(
    customer_id: int,
    payload: CustomerIn,
    session: AsyncSession = Depends(get_session),
    autopredict: AutoPredictService = Depends(get_autopredict),
):
    if await repository.get_customer(session, customer_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    updates = payload.model_dump(exclude_unset=True)
    errors = validate_customer_data(updates, partial=True)
    if errors:
        raise _validation_failed(errors)

    try:
        customer = await repository.update_customer(session, customer_id, updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error("Update customer %s failed: %s", customer_id, e)
        raise HTTPException(status_code=500, detail="Failed to update customer")

    # Customer data changed: the cached score is stale
    autopredict.invalidate(customer_id)
    autopredict.trigger_for_new_customer(customer_id)
    return customer_to_dict(customer)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    session: AsyncSession = Depends(get_session),
    autopredict: AutoPredictService = Depends(get_autopredict),
):
    if not await repository.delete_customer(session, customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    autopredict.invalidate(customer_id)
    return {"message": "Customer deleted successfully", "customer_id": customer_id}
