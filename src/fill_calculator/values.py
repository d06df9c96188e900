from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

KIND_NUMBER = "number"
KIND_TIME = "time"
KIND_TEXT = "text"

# Plain decimal text only: no digit separators, no "nan" or "inf" spellings.
_DECIMAL = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_NUMERIC_HINTS = ("price", "amount", "total", "fee")
_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y",
)


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_number(value: Any) -> float:
    """Coerce a cell to a float; anything unparsable becomes 0.0."""
    parsed = parse_number(value)
    return 0.0 if parsed is None else parsed


def parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        if is_empty(value):
            return None
        text = str(value).strip()
        if not _DECIMAL.fullmatch(text):
            return None
        number = float(text)
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if is_empty(value):
        return EPOCH

    text = str(value).strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        return _ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in _TIME_FORMATS:
        try:
            return _ensure_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return EPOCH


def column_kind(name: str) -> str:
    lowered = name.lower()
    if any(hint in lowered for hint in _NUMERIC_HINTS):
        return KIND_NUMBER
    if "time" in lowered:
        return KIND_TIME
    return KIND_TEXT


def text_of(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
