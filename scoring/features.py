"""
Customer -> scoring payload mapping.

The ML service expects a fixed schema for every customer (bank marketing
features). This module is the single place that knows it:

    customer_to_payload(customer) -> dict   (single customer, ORM object or dict)
    batch_payload(customers)      -> dict   ({"customers": [...]})

Missing campaign-history values get the same defaults the customers table
uses; loan flags default to False.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

PAYLOAD_FIELDS = (
    "age",
    "job",
    "marital",
    "education",
    "default",
    "housing",
    "loan",
    "contact",
    "month",
    "day_of_week",
    "campaign",
    "pdays",
    "previous",
    "poutcome",
)

NUMERIC_DEFAULTS = {
    "campaign": 1,
    "pdays": 999,
    "previous": 0,
}

# payload name -> (customer column, alternative input name)
FLAG_SOURCES = {
    "default": ("has_default", "default"),
    "housing": ("has_housing_loan", "housing"),
    "loan": ("has_personal_loan", "loan"),
}


def _field(customer: Any, name: str) -> Any:
    if isinstance(customer, Mapping):
        return customer.get(name)
    return getattr(customer, name, None)


def _flag(customer: Any, payload_name: str) -> bool:
    column, alt = FLAG_SOURCES[payload_name]
    value = _field(customer, column)
    if value is None:
        value = _field(customer, alt)
    return bool(value) if value is not None else False


def customer_to_payload(customer: Any) -> dict:
    """Map a customer (ORM row or dict) to the scorer's request body."""
    payload = {
        "age": _field(customer, "age"),
        "job": _field(customer, "job"),
        "marital": _field(customer, "marital"),
        "education": _field(customer, "education"),
        "default": _flag(customer, "default"),
        "housing": _flag(customer, "housing"),
        "loan": _flag(customer, "loan"),
        "contact": _field(customer, "contact"),
        "month": _field(customer, "month"),
        "day_of_week": _field(customer, "day_of_week"),
    }
    for name, default in NUMERIC_DEFAULTS.items():
        value = _field(customer, name)
        payload[name] = default if value is None else value
    payload["poutcome"] = _field(customer, "poutcome") or "unknown"
    return payload


def batch_payload(customers: Iterable[Any]) -> dict:
    return {"customers": [customer_to_payload(c) for c in customers]}
