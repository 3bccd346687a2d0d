"""
CSV bulk import -- parse, validate structure, validate rows.

    parse_and_validate(file_bytes) -> {"success": True, "data": {valid, invalid, total_records}}
                                    | {"success": False, "error": "..."}

Structural problems (empty file, missing columns) reject the whole upload
with a single message. Row problems never do: every row is validated on
its own and reported with its line number in the file (header is line 1).
Malformed CSV raises CSVParseError.
"""

from __future__ import annotations

import io
import logging
import math
import re
from typing import Any

import pandas as pd

from leadportal.errors import CSVParseError, EmptyFileError, MissingColumnsError, StructureError
from leadportal.validation import validate_customer_data

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = [
    "name",
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
]

OPTIONAL_COLUMNS = ["balance"]

BOOLEAN_COLUMNS = ("default", "housing", "loan")
INTEGER_COLUMNS = ("age", "campaign", "pdays", "previous")

TEMPLATE_ROWS = [
    "John Doe,30,technician,married,secondary,false,true,false,cellular,may,mon,2,999,0,unknown",
    "Jane Smith,45,management,single,tertiary,false,false,false,telephone,jun,fri,1,999,0,success",
    "Bob Johnson,38,admin.,divorced,secondary,false,true,false,cellular,may,wed,3,999,0,nonexistent",
]

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")

TRUE_VALUES = {"true", "1", "yes"}
FALSE_VALUES = {"false", "0", "no"}


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def _cast(value: Any) -> Any:
    """Best-effort cast of a trimmed cell: int, then float, else the string."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def parse_csv(data: bytes) -> list[dict]:
    """Parse CSV bytes into records keyed by the header row."""
    try:
        df = pd.read_csv(
            io.BytesIO(data),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            index_col=False,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        raise CSVParseError(f"CSV Parse Error: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]

    records = []
    for raw in df.to_dict(orient="records"):
        record = {col: _cast(val) for col, val in raw.items()}
        if all(v in ("", None) for v in record.values()):
            continue
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def validate_structure(records: list[dict]):
    """Raise EmptyFileError / MissingColumnsError for file-wide problems."""
    if not records:
        raise EmptyFileError()

    columns = set(records[0].keys())
    missing = [col for col in REQUIRED_COLUMNS if col not in columns]
    if missing:
        raise MissingColumnsError(missing)


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return False


def to_integer(value: Any) -> Any:
    """Integer or NaN; NaN is rejected later by field validation."""
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else math.nan
    if isinstance(value, str) and _INT_RE.match(value.strip()):
        return int(value.strip())
    return math.nan


def to_balance(value: Any) -> float:
    """Balance never fails a row: anything unparseable becomes 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
        return number if math.isfinite(number) else 0.0
    return 0.0


def coerce_record(record: dict) -> dict:
    processed = dict(record)
    for col in BOOLEAN_COLUMNS:
        processed[col] = to_boolean(record.get(col))
    for col in INTEGER_COLUMNS:
        processed[col] = to_integer(record.get(col))
    processed["balance"] = to_balance(record.get("balance"))
    return processed


def validate_records(records: list[dict]) -> dict:
    results = {
        "valid": [],
        "invalid": [],
        "total_records": len(records),
    }

    for index, record in enumerate(records):
        row_number = index + 2  # header is line 1
        processed = coerce_record(record)
        errors = validate_customer_data(processed)

        if errors:
            results["invalid"].append({"row": row_number, "data": record, "errors": errors})
        else:
            results["valid"].append({"data": processed, "row": row_number})

    return results


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def parse_and_validate(data: bytes) -> dict:
    """Parse -> structure check -> row validation."""
    records = parse_csv(data)

    try:
        validate_structure(records)
    except StructureError as e:
        logger.info("CSV rejected: %s", e)
        return {"success": False, "error": str(e)}

    result = validate_records(records)
    logger.info(
        "CSV validated: %d valid, %d invalid of %d records",
        len(result["valid"]),
        len(result["invalid"]),
        result["total_records"],
    )
    return {"success": True, "data": result}


def generate_template() -> str:
    return "\n".join([",".join(REQUIRED_COLUMNS), *TEMPLATE_ROWS])
