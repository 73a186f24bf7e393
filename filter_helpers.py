from datetime import date
from typing import Optional

from errors import ValidationError
from ledger import EVENT_TYPES

VALID_STATUSES = {"available", "loaned", "reserved_pending", "remastering", "out_of_service"}


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value == "":
        return None
    return value


def normalize_status(status: Optional[str]) -> Optional[str]:
    if status in VALID_STATUSES:
        return status
    return None


def normalize_limit(limit: int, *, min_value: int = 1, max_value: int = 500) -> int:
    if limit < min_value:
        return min_value
    if limit > max_value:
        return max_value
    return limit


def normalize_offset(offset: int) -> int:
    if offset < 0:
        return 0
    return offset


def parse_day(value: Optional[str], field: str) -> Optional[date]:
    value = blank_to_none(value)
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date, got {value!r}") from None


def normalize_event_types(values: Optional[list[str]]) -> Optional[list[str]]:
    if not values:
        return None
    kept = [v for v in values if v in EVENT_TYPES]
    return kept or None
