from datetime import datetime
from decimal import Decimal

import pytest

from modules.core import Conflict, InsufficientStock, InvalidInput, InvalidStateTransition, NotFound
from modules.core.validation import (
    parse_bool,
    parse_choice,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_text,
    reject_fields,
)


@pytest.mark.parametrize("data", [{}, {"quantity": None}, {"quantity": ""}, {"quantity": "  "}])
def test_absent_int_returns_default(data):
    assert parse_int(data, "quantity") is None
    assert parse_int(data, "quantity", default=7) == 7


def test_zero_is_a_value_not_absent():
    assert parse_int({"quantity": 0}, "quantity", default=7) == 0
    assert parse_decimal({"price": "0"}, "price", default=Decimal("9")) == Decimal("0")


@pytest.mark.parametrize("value", ["abc", "1.5", 2.5, True, [1]])
def test_invalid_int_is_rejected_with_field(value):
    with pytest.raises(InvalidInput) as exc:
        parse_int({"quantity": value}, "quantity")
    assert exc.value.field == "quantity"
    assert exc.value.status_code == 400


def test_int_accepts_integral_forms_and_checks_minimum():
    assert parse_int({"q": "12"}, "q") == 12
    assert parse_int({"q": 3.0}, "q") == 3
    with pytest.raises(InvalidInput):
        parse_int({"q": -1}, "q")
    with pytest.raises(InvalidInput):
        parse_int({"q": 0}, "q", minimum=1)


def test_required_field_missing():
    with pytest.raises(InvalidInput) as exc:
        parse_int({}, "quantity", required=True)
    assert exc.value.details["reason"] == "is required"


def test_decimal_accepts_comma_and_rejects_garbage():
    assert parse_decimal({"price": "12,50"}, "price") == Decimal("12.50")
    assert parse_decimal({"price": 3}, "price") == Decimal("3")
    for bad in ("ten", "NaN", "-1", False):
        with pytest.raises(InvalidInput):
            parse_decimal({"price": bad}, "price")


def test_text_choice_and_bool():
    assert parse_text({"name": "  Filter  "}, "name") == "Filter"
    with pytest.raises(InvalidInput):
        parse_text({"name": "ab"}, "name", min_length=3)
    with pytest.raises(InvalidInput):
        parse_text({"name": 5}, "name")
    assert parse_choice({}, "priority", ["low", "high"], default="low") == "low"
    with pytest.raises(InvalidInput):
        parse_choice({"priority": "urgent"}, "priority", ["low", "high"])
    assert parse_bool({"start": "true"}, "start") is True
    assert parse_bool({"start": False}, "start", default=True) is False
    with pytest.raises(InvalidInput):
        parse_bool({"start": "maybe"}, "start")


def test_datetime_is_stored_as_naive_utc():
    assert parse_datetime({"d": "2024-05-01T10:00:00Z"}, "d") == datetime(2024, 5, 1, 10, 0)
    assert parse_datetime({"d": "2024-05-01T12:00:00+02:00"}, "d") == datetime(2024, 5, 1, 10, 0)
    assert parse_datetime({"d": "2024-05-01"}, "d") == datetime(2024, 5, 1)
    with pytest.raises(InvalidInput):
        parse_datetime({"d": "yesterday"}, "d")


def test_reject_fields():
    reject_fields({"name": "x"}, ("quantity",), "not allowed")
    with pytest.raises(InvalidInput) as exc:
        reject_fields({"quantity": 3}, ("quantity",), "not allowed")
    assert exc.value.field == "quantity"


def test_error_payloads():
    assert NotFound("part", 4).to_dict() == {
        "success": False,
        "error": "Part not found",
        "code": "not_found",
        "details": {"entity": "part", "id": 4},
    }
    stock = InsufficientStock(1, requested=20, available=7)
    assert stock.status_code == 409
    assert stock.to_dict()["details"]["available"] == 7
    assert "Available: 7" in stock.message
    assert Conflict("dup").to_dict()["code"] == "conflict"
    transition = InvalidStateTransition("nope", status="completed", action="attach_part")
    assert transition.to_dict()["details"] == {"status": "completed", "action": "attach_part"}


def test_decimal_places_are_not_rounded_away():
    assert parse_decimal({"hours": "0.330"}, "hours") == Decimal("0.33")
    assert parse_decimal({"hours": 0.25}, "hours") == Decimal("0.25")
    with pytest.raises(InvalidInput) as exc:
        parse_decimal({"hours": "0.333"}, "hours")
    assert exc.value.field == "hours"
    assert exc.value.details["reason"] == "at most 2 decimal places"

    with pytest.raises(InvalidInput):
        parse_decimal({"price": "1e40"}, "price")
    assert parse_decimal({"ratio": "0.125"}, "ratio", places=None) == Decimal("0.125")
