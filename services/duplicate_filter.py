"""
Duplicate order detection against order numbers already stored for the user.
"""
from typing import AbstractSet, Any, Iterable, Set

from services.normalization import normalize_order_id


def build_existing_id_set(order_ids: Iterable[Any]) -> Set[str]:
    """Normalize stored order numbers the same way uploaded ones are."""
    existing: Set[str] = set()
    for raw in order_ids:
        order_sn = normalize_order_id(raw)
        if order_sn:
            existing.add(order_sn)
    return existing


def is_duplicate(order_sn: str, existing_order_ids: AbstractSet[str]) -> bool:
    return str(order_sn) in existing_order_ids
