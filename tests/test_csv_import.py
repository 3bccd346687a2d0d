import math

import pytest

from leadportal.csv_import import (
    REQUIRED_COLUMNS,
    coerce_record,
    generate_template,
    parse_and_validate,
    parse_csv,
    to_balance,
    to_boolean,
)
from leadportal.errors import CSVParseError

HEADER = ",".join(REQUIRED_COLUMNS)
GOOD_ROW = "John Doe,30,technician,married,secondary,false,true,false,cellular,may,mon,2,999,0,unknown"


def test_template_parses_clean():
    result = parse_and_validate(generate_template().encode())
    assert result["success"] is True
    assert result["data"]["total_records"] == 3
    assert len(result["data"]["valid"]) == 3
    assert result["data"]["invalid"] == []
    # template has no balance column
    assert [v["data"]["balance"] for v in result["data"]["valid"]] == [0.0, 0.0, 0.0]


def test_missing_columns_named():
    content = "name,age,job\nJohn,30,technician\n"
    result = parse_and_validate(content.encode())
    assert result["success"] is False
    assert result["error"].startswith("Missing required columns: marital, education")
    assert "poutcome" in result["error"]


def test_header_only_file_is_empty():
    result = parse_and_validate((HEADER + "\n").encode())
    assert result == {"success": False, "error": "CSV file is empty"}


def test_zero_byte_file_is_empty():
    assert parse_and_validate(b"")["error"] == "CSV file is empty"


def test_invalid_rows_do_not_stop_valid_ones():
    bad_age = GOOD_ROW.replace("John Doe,30", "Too Young,15")
    bad_month = GOOD_ROW.replace(",may,", ",maybe,")
    content = "\n".join([HEADER, GOOD_ROW, bad_age, GOOD_ROW, bad_month]) + "\n"

    data = parse_and_validate(content.encode())["data"]
    assert data["total_records"] == 4
    assert [v["row"] for v in data["valid"]] == [2, 4]
    assert [i["row"] for i in data["invalid"]] == [3, 5]
    assert "Age must be a number between 18 and 100" in data["invalid"][0]["errors"]


def test_blank_lines_and_whitespace_are_ignored():
    content = f"{HEADER}\n\n {GOOD_ROW.replace(',', ' , ')} \n\n"
    records = parse_csv(content.encode())
    assert len(records) == 1
    assert records[0]["name"] == "John Doe"
    assert records[0]["age"] == 30


def test_unterminated_quote_is_parse_error():
    content = f'{HEADER}\n"John Doe,30,technician\n'
    with pytest.raises(CSVParseError):
        parse_and_validate(content.encode())


def test_boolean_coercion():
    record = coerce_record({"default": "yes", "housing": 0, "loan": "true"})
    assert record["default"] is True
    assert record["housing"] is False
    assert record["loan"] is True
    assert to_boolean("maybe") is False
    assert to_boolean(None) is False


def test_integer_coercion_marks_garbage_as_nan():
    record = coerce_record({"age": "abc", "campaign": 3, "pdays": 999.0, "previous": None})
    assert math.isnan(record["age"])
    assert record["campaign"] == 3
    assert record["pdays"] == 999
    assert math.isnan(record["previous"])


def test_balance_defaults_to_zero():
    assert to_balance("") == 0.0
    assert to_balance("abc") == 0.0
    assert to_balance("NaN") == 0.0
    assert to_balance(float("nan")) == 0.0
    assert to_balance(None) == 0.0
    assert to_balance("1500.5") == 1500.5
    assert to_balance(-20) == -20.0


def test_balance_column_optional_and_coerced():
    content = f"{HEADER},balance\n{GOOD_ROW},not-a-number\n"
    data = parse_and_validate(content.encode())["data"]
    assert data["valid"][0]["data"]["balance"] == 0.0


def test_missing_balance_column_coerces_to_zero():
    content = f"{HEADER}\n{GOOD_ROW}\n"
    data = parse_and_validate(content.encode())["data"]
    assert "balance" not in parse_csv(content.encode())[0]
    assert data["valid"][0]["data"]["balance"] == 0.0
