"""
Input parsing for service operations.

Every parser separates three cases:
- absent (missing key, ``None`` or blank string) -> ``default`` (``None`` unless given),
- a valid value (``0`` included),
- anything else -> ``InvalidInput`` naming the field.

Nothing is coerced to zero silently.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from .errors import InvalidInput

_MISSING = object()


def _is_absent(value: Any) -> bool:
    return value is None or value is _MISSING or (isinstance(value, str) and not value.strip())


def _get(data: Mapping, field: str) -> Any:
    return data.get(field, _MISSING) if data is not None else _MISSING


def parse_int(data: Mapping, field: str, *, required: bool = False, default: Optional[int] = None,
              minimum: Optional[int] = 0) -> Optional[int]:
    value = _get(data, field)
    if _is_absent(value):
        if required:
            raise InvalidInput(field, "is required")
        return default
    if isinstance(value, bool):
        raise InvalidInput(field, "must be an integer", value)
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            raise InvalidInput(field, "must be an integer", value) from None
    else:
        raise InvalidInput(field, "must be an integer", value)
    if minimum is not None and number < minimum:
        raise InvalidInput(field, f"must be >= {minimum}", number)
    return number


def parse_decimal(data: Mapping, field: str, *, required: bool = False, default: Optional[Decimal] = None,
                  minimum: Optional[Decimal] = Decimal("0"), places: Optional[int] = 2) -> Optional[Decimal]:
    """Decimal columns are Numeric(p, 2): more decimal places than ``places`` are rejected, not rounded."""
    value = _get(data, field)
    if _is_absent(value):
        if required:
            raise InvalidInput(field, "is required")
        return default
    if isinstance(value, bool):
        raise InvalidInput(field, "must be a number", value)
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip().replace(",", "."))
        except InvalidOperation:
            raise InvalidInput(field, "must be a number", value) from None
    else:
        raise InvalidInput(field, "must be a number", value)
    if not number.is_finite():
        raise InvalidInput(field, "must be a finite number", value)
    if minimum is not None and number < minimum:
        raise InvalidInput(field, f"must be >= {minimum}", str(number))
    if places is not None:
        try:
            exact = number == number.quantize(Decimal(1).scaleb(-places))
        except InvalidOperation:
            raise InvalidInput(field, "is out of range", str(number)) from None
        if not exact:
            raise InvalidInput(field, f"at most {places} decimal places", str(number))
    return number


def parse_text(data: Mapping, field: str, *, required: bool = False, min_length: int = 1,
               max_length: Optional[int] = None) -> Optional[str]:
    value = _get(data, field)
    if _is_absent(value):
        if required:
            raise InvalidInput(field, "is required")
        return None
    if not isinstance(value, str):
        raise InvalidInput(field, "must be a string", value)
    text = value.strip()
    if len(text) < min_length:
        raise InvalidInput(field, f"must be at least {min_length} characters")
    if max_length is not None and len(text) > max_length:
        raise InvalidInput(field, f"must be at most {max_length} characters")
    return text


def parse_choice(data: Mapping, field: str, choices: Iterable[str], *, required: bool = False,
                 default: Optional[str] = None) -> Optional[str]:
    value = _get(data, field)
    if _is_absent(value):
        if required:
            raise InvalidInput(field, "is required")
        return default
    allowed = list(choices)
    if value not in allowed:
        raise InvalidInput(field, f"must be one of: {', '.join(allowed)}", value)
    return value


def parse_datetime(data: Mapping, field: str, *, required: bool = False) -> Optional[datetime]:
    value = _get(data, field)
    if _is_absent(value):
        if required:
            raise InvalidInput(field, "is required")
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise InvalidInput(field, "must be an ISO 8601 date", value)
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise InvalidInput(field, "must be an ISO 8601 date", value) from None
    # stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def parse_bool(data: Mapping, field: str, *, default: Optional[bool] = None) -> Optional[bool]:
    value = _get(data, field)
    if _is_absent(value):
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", "off"):
        return False
    raise InvalidInput(field, "must be a boolean", value)


def parse_id(data: Mapping, field: str, *, required: bool = False) -> Optional[int]:
    """Identifier references are positive integers."""
    return parse_int(data, field, required=required, minimum=1)


def reject_fields(data: Mapping, fields: Iterable[str], reason: str) -> None:
    for field in fields:
        if data is not None and field in data:
            raise InvalidInput(field, reason)
