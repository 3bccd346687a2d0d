"""Field validation for customer records (manual input, updates and CSV rows)."""

from __future__ import annotations

import math
from typing import Any

VALID_JOBS = [
    "admin.",
    "blue-collar",
    "entrepreneur",
    "housemaid",
    "management",
    "retired",
    "self-employed",
    "services",
    "student",
    "technician",
    "unemployed",
    "unknown",
]

VALID_MARITAL = ["divorced", "married", "single", "unknown"]

VALID_EDUCATION = [
    "basic.4y",
    "basic.6y",
    "basic.9y",
    "high.school",
    "illiterate",
    "professional.course",
    "university.degree",
    "unknown",
    "primary",
    "secondary",
    "tertiary",
]

# "unknown" stays valid for legacy / imported data
VALID_CONTACT = ["cellular", "telephone", "unknown"]

VALID_MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]

VALID_DAYS = ["mon", "tue", "wed", "thu", "fri"]

VALID_POUTCOME = ["failure", "nonexistent", "success", "unknown"]

# field -> (label when missing, allowed values, label when invalid)
CATEGORICAL_FIELDS = {
    "job": ("Job", VALID_JOBS, "Job"),
    "marital": ("Marital status", VALID_MARITAL, "Marital status"),
    "education": ("Education", VALID_EDUCATION, "Education"),
    "contact": ("Contact type", VALID_CONTACT, "Contact"),
    "month": ("Month", VALID_MONTHS, "Month"),
    "day_of_week": ("Day of week", VALID_DAYS, "Day of week"),
}

# field -> (label, min, max)
NUMERIC_RANGES = {
    "campaign": ("Campaign", 1, 100),
    "pdays": ("Pdays", 0, 999),
    "previous": ("Previous", 0, 100),
}

# input name -> column name
FLAG_ALIASES = {
    "default": "has_default",
    "housing": "has_housing_loan",
    "loan": "has_personal_loan",
}


def is_missing_number(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_customer_data(data: dict, partial: bool = False) -> list[str]:
    """
    Validate a customer payload and return a list of error messages.

    With ``partial=True`` (updates) only the fields present in ``data`` are
    checked; empty strings count as "not provided" for categorical fields.
    """
    errors: list[str] = []

    def provided(field: str) -> bool:
        if field not in data:
            return False
        value = data[field]
        return not (partial and (value is None or value == ""))

    # Name
    if not partial:
        name = data.get("name")
        if _blank(name):
            errors.append("Name is required")
        elif not isinstance(name, str):
            errors.append("Name must be a string")
    elif "name" in data and data["name"] is not None:
        name = data["name"]
        if not isinstance(name, str):
            errors.append("Name must be a string")
        elif name.strip() == "":
            errors.append("Name cannot be empty")

    # Age
    if not partial or provided("age"):
        age = data.get("age")
        if not partial and is_missing_number(age):
            errors.append("Age is required")
        elif not _is_int(age) or not 18 <= age <= 100:
            errors.append("Age must be a number between 18 and 100")

    # Categorical fields
    for field, (label, allowed, short) in CATEGORICAL_FIELDS.items():
        value = data.get(field)
        if not partial and _blank(value):
            errors.append(f"{label} is required")
        elif provided(field) and value not in allowed:
            errors.append(f"{short} must be one of: {', '.join(allowed)}")

    if data.get("poutcome") is not None and (not partial or provided("poutcome")):
        if data["poutcome"] not in VALID_POUTCOME:
            errors.append(f"Previous outcome must be one of: {', '.join(VALID_POUTCOME)}")

    # Boolean flags, accepting both CSV names (default) and column names (has_default)
    for alias, column in FLAG_ALIASES.items():
        for key in (alias, column):
            if key in data and data[key] is not None and not isinstance(data[key], bool):
                errors.append(f"{key} must be a boolean")

    # Numeric ranges
    for field, (label, low, high) in NUMERIC_RANGES.items():
        if field not in data or data[field] is None:
            continue
        value = data[field]
        if not _is_int(value) or not low <= value <= high:
            errors.append(f"{label} must be a number between {low} and {high}")

    # Balance (optional)
    balance = data.get("balance")
    if balance is not None and balance != "":
        try:
            number = float(balance)
        except (TypeError, ValueError):
            number = math.nan
        if isinstance(balance, bool) or math.isnan(number):
            errors.append("Balance must be a valid number")

    return errors


def get_valid_values() -> dict:
    return {
        "jobs": VALID_JOBS,
        "marital": VALID_MARITAL,
        "education": VALID_EDUCATION,
        "contact": VALID_CONTACT,
        "months": VALID_MONTHS,
        "days": VALID_DAYS,
        "poutcome": VALID_POUTCOME,
    }
