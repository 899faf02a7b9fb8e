"""
Row grouping: folds marketplace export rows into one GroupedOrder per order number.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence
import logging

from schemas import GroupedOrder
from services.normalization import (
    normalize_order_id,
    normalize_text,
    parse_number,
    parse_order_date,
)

logger = logging.getLogger(__name__)

# canonical field -> accepted header spellings, most specific first
FieldMapping = Mapping[str, Sequence[str]]
NumberParser = Callable[[Any], Optional[Decimal]]


def resolve_field_headers(mapping: FieldMapping, headers: Iterable[Any]) -> Dict[str, str]:
    """
    Pick, for each canonical field, the first spelling present in the sheet.

    Spellings are compared after the same trim/lowercase the header row gets.
    Fields with no matching header are left out.
    """
    present = {h for h in headers if isinstance(h, str) and h}
    resolved: Dict[str, str] = {}
    for field_name, spellings in mapping.items():
        for spelling in spellings:
            candidate = spelling.strip().lower()
            if candidate in present:
                resolved[field_name] = candidate
                break
    return resolved


def field_value(row: Mapping[str, Any], resolved: Mapping[str, str], field_name: str) -> Any:
    header = resolved.get(field_name)
    return row.get(header) if header else None


def group_rows(
    records: Sequence[Mapping[str, Any]],
    resolved: Mapping[str, str],
    total_fields: Sequence[str] = ("total_amount",),
    parse_total: NumberParser = parse_number,
) -> Dict[str, GroupedOrder]:
    """
    Group rows by order number in encounter order.

    Rows without an order number are dropped silently (blank trailer rows).
    The first row of each order seeds tracking number, creation date and the
    declared total; `total_fields` are tried in order (blank or zero moves on
    to the next one) and the total falls back to 0 when none gives a value.
    """
    grouped: Dict[str, GroupedOrder] = {}
    dropped = 0

    for row in records:
        order_sn = normalize_order_id(field_value(row, resolved, "order_sn"))
        if not order_sn:
            dropped += 1
            continue

        order = grouped.get(order_sn)
        if order is None:
            total: Optional[Decimal] = None
            for name in total_fields:
                total = parse_total(field_value(row, resolved, name))
                # a zero total falls through to the next column
                if total:
                    break
            order = GroupedOrder(
                order_sn=order_sn,
                tracking_number=normalize_text(field_value(row, resolved, "tracking_number")),
                order_creation_date=parse_order_date(field_value(row, resolved, "order_creation_date")),
                total=total if total is not None else Decimal("0"),
            )
            grouped[order_sn] = order
        order.rows.append(dict(row))

    if dropped:
        logger.debug(f"Grouping dropped {dropped} rows without an order number")
    return grouped

