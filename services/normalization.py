"""
Header and cell normalization shared by every platform adapter.

Marketplace exports mix text, numbers and spreadsheet dates in the same
column, so every coercion here is total: bad input yields None rather than
an exception and the caller decides whether None invalidates the row.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from dateutil import parser as date_parser

# Spreadsheet serial day 25569 is 1970-01-01
SERIAL_EPOCH_OFFSET_DAYS = 25569
SECONDS_PER_DAY = 86400

_DAY_FIRST_DATE = re.compile(r"\d{2}-\d{2}-\d{4}")
_DATE_PARTS_SPLIT = re.compile(r"[- :]")
_CURRENCY_NOISE = re.compile(r"[^0-9.,\-]+")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_SERIAL_TEXT = re.compile(r"^\d+(\.\d+)?$")


def normalize_headers(headers: Sequence[Any]) -> List[Any]:
    """Trim and lowercase textual header cells; pass anything else through."""
    return [h.strip().lower() if isinstance(h, str) else h for h in headers]


def rows_to_records(headers: Sequence[Any], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """Zip normalized headers with each data row. Columns with an empty header are dropped."""
    records: List[Dict[str, Any]] = []
    for row in rows:
        record: Dict[str, Any] = {}
        for idx, header in enumerate(headers):
            if not header:
                continue
            record[header] = row[idx] if idx < len(row) else ""
        records.append(record)
    return records


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(str(value))
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def parse_number(value: Any) -> Optional[Decimal]:
    """Plain numeric cell → Decimal, without stripping any formatting."""
    if _is_blank(value):
        return None
    return _to_decimal(value)


def parse_locale_currency(value: Any) -> Optional[Decimal]:
    """
    Parse currency text such as 'Rp 1.250.000', '$1,234.50' or '12,5'.

    Currency symbols and spaces are dropped. When both '.' and ',' appear the
    right-most one is the decimal separator; a lone separator kind is treated
    as thousands grouping only when it repeats or every group after the first
    has exactly three digits (commas) / when it repeats (dots).
    """
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        return _to_decimal(value)

    cleaned = _CURRENCY_NOISE.sub("", value)
    if not cleaned or cleaned in {"-", ".", ","}:
        return None

    has_dot = "." in cleaned
    has_comma = "," in cleaned
    if has_dot and has_comma:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma:
        groups = cleaned.lstrip("-").split(",")
        if len(groups) > 2 or all(len(g) == 3 for g in groups[1:]):
            cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    return _to_decimal(cleaned)


def parse_quantity(value: Any) -> Optional[int]:
    """Integer part of a quantity cell ('3', 3.0, '3 pcs'); None when there is none."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError, InvalidOperation):
            return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def normalize_order_id(value: Any) -> Optional[str]:
    """Order ids are compared as text; integral floats from Excel drop their '.0'."""
    if _is_blank(value):
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def normalize_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_order_date(value: Any) -> Optional[datetime]:
    """
    Parse an order creation timestamp.

    - numbers (or text that is only a number) are spreadsheet serial dates,
      converted to a UTC instant
    - 'DD-MM-YYYY[ HH:MM]' strings are day-first, in the local zone
    - anything else goes through dateutil; unparseable input returns None
    """
    if _is_blank(value) or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.astimezone()

    if isinstance(value, (int, float, Decimal)):
        try:
            seconds = (float(value) - SERIAL_EPOCH_OFFSET_DAYS) * SECONDS_PER_DAY
            return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=round(seconds))
        except (OverflowError, ValueError):
            return None

    text = str(value).strip()
    if _SERIAL_TEXT.match(text):
        # CSV cells arrive as text; a bare number is still a serial date
        return parse_order_date(Decimal(text))
    if _DAY_FIRST_DATE.search(text):
        parts = [p for p in _DATE_PARTS_SPLIT.split(text) if p]
        try:
            day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
            hour = int(parts[3]) if len(parts) > 3 else 0
            minute = int(parts[4]) if len(parts) > 4 else 0
            return datetime(year, month, day, hour, minute).astimezone()
        except (ValueError, IndexError, OverflowError):
            return None

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.astimezone()
