from __future__ import annotations

import math
import re
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

import pandas as pd

from ..models.schema import UNSET, FieldType

"""Value transformer: raw cell value -> value of the field's declared type.

transform_value() never raises. Input that cannot be coerced degrades to the
UNSET sentinel so the rest of the row can still be validated.

String fields keep "" as their explicit empty marker; every other type uses
UNSET for "absent", which keeps "absent" and 0 / False apart downstream.
"""

__all__ = [
    "transform_value",
    "is_unset",
    "is_blank_raw",
    "DEFAULT_TRANSFORMS",
    "TransformFn",
]

TransformFn = Callable[[Any], Any]

# 小数点は '.' のみ (桁区切りは受け付けない)
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")

_TRUE_TOKENS = frozenset({"true", "yes", "y", "t", "1", "on"})
_FALSE_TOKENS = frozenset({"false", "no", "n", "f", "0", "off"})

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y", "%m/%d/%Y", "%Y%m%d")
_MONTH_NAME_RE = re.compile(r"[A-Za-z]{3,}")


def is_blank_raw(raw: Any) -> bool:
    """True for None, NaN/NaT and strings that are empty after trimming."""
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw.strip() == ""
    try:
        return bool(pd.isna(raw))
    except (TypeError, ValueError):
        # list 等の非スカラー値
        return False


def is_unset(value: Any) -> bool:
    """True when a coerced value counts as absent for required checks."""
    return value is UNSET or value is None or value == ""


def _to_string(raw: Any) -> str:
    if is_blank_raw(raw):
        return ""
    if isinstance(raw, float) and raw.is_integer():
        # Excel 由来の 12.0 -> "12"
        return str(int(raw))
    return str(raw).strip()


def _to_number(raw: Any) -> Any:
    if is_blank_raw(raw) or isinstance(raw, bool):
        return UNSET
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else UNSET
    text = str(raw).strip()
    if not _NUMBER_RE.match(text):
        return UNSET
    if _INT_RE.match(text):
        return int(text)
    value = float(text)
    return value if math.isfinite(value) else UNSET


def _to_boolean(raw: Any) -> Any:
    if isinstance(raw, bool):
        return raw
    if is_blank_raw(raw):
        return UNSET
    if isinstance(raw, (int, float)) and raw in (0, 1):
        return bool(raw)
    token = str(raw).strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    return UNSET


def _to_date(raw: Any) -> Any:
    if is_blank_raw(raw):
        return UNSET
    if isinstance(raw, pd.Timestamp):
        return raw.date()
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return UNSET
    text = raw.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    # "15 Jan 2024" / "January 15, 2024" 等の月名表記のみ pandas に委ねる
    if _MONTH_NAME_RE.search(text) and any(ch.isdigit() for ch in text):
        try:
            parsed = pd.to_datetime(text, errors="coerce", format="mixed")
        except (ValueError, TypeError, OverflowError):
            return UNSET
        if pd.isna(parsed):
            return UNSET
        return parsed.date()
    return UNSET


_COERCERS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: _to_string,
    FieldType.NUMBER: _to_number,
    FieldType.BOOLEAN: _to_boolean,
    FieldType.DATE: _to_date,
}


def transform_value(raw: Any, field_type: FieldType | str) -> Any:
    """Coerce ``raw`` to ``field_type``.

    Parameters
    ----------
    raw: value from a RawRow (str, None, or a native value from the adapter)
    field_type: FieldType or its string value

    Returns
    -------
    The coerced value, "" for an empty string field, or UNSET when the input
    is empty or cannot be parsed. Unknown types fall back to string.
    """
    try:
        ft = field_type if isinstance(field_type, FieldType) else FieldType(field_type)
    except ValueError:
        ft = FieldType.STRING
    return _COERCERS[ft](raw)


def _digits_only(raw: Any) -> str:
    return "".join(ch for ch in _to_string(raw) if ch.isdigit())


# CLI 既定の名前付き変換 (ホストは独自レジストリを渡せる)
DEFAULT_TRANSFORMS: dict[str, TransformFn] = {
    "trim": _to_string,
    "lowercase": lambda raw: _to_string(raw).lower(),
    "uppercase": lambda raw: _to_string(raw).upper(),
    "digits_only": _digits_only,
}
