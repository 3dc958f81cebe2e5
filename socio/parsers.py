"""Lenient parsing of multipart form values.

Form fields arrive as strings; blank strings mean "not supplied".
Parse failures raise ``ValueError`` with a message naming the field, which
route handlers turn into 400 responses.
"""
import json
from datetime import date, datetime, time, timezone
from typing import Any, Optional


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in ("", "null", "undefined"))


def parse_optional_float(value, field: str = "value") -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number")


def parse_optional_int(value, field: str = "value") -> Optional[int]:
    if _is_blank(value):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be an integer")
    if not number.is_integer():
        raise ValueError(f"{field} must be an integer")
    return int(number)


def parse_bool(value, default: bool = False) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def parse_json_field(value, default: Any, field: str = "value") -> Any:
    """Decode a JSON form field, returning ``default`` when it is blank.

    Lists and dicts are passed through untouched. The decoded value must have
    the same container type as ``default``.
    """
    if _is_blank(value):
        return default
    if isinstance(value, (list, dict)):
        parsed = value
    else:
        try:
            parsed = json.loads(value)
        except (TypeError, ValueError):
            raise ValueError(f"{field} must be valid JSON")
    if default is not None and not isinstance(parsed, type(default)):
        raise ValueError(f"{field} must be a JSON {type(default).__name__}")
    return parsed


def clean_optional_str(value) -> Optional[str]:
    if _is_blank(value):
        return None
    return value.strip()


def parse_optional_date(value, field: str = "value") -> Optional[date]:
    if _is_blank(value):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError):
        raise ValueError(f"{field} must be a date (YYYY-MM-DD)")


def parse_optional_time(value, field: str = "value") -> Optional[time]:
    if _is_blank(value):
        return None
    try:
        return time.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise ValueError(f"{field} must be a time (HH:MM)")


def parse_optional_datetime(value, field: str = "value") -> Optional[datetime]:
    """ISO-8601 datetime; offsets are converted to naive UTC."""
    if _is_blank(value):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"{field} must be an ISO-8601 datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
