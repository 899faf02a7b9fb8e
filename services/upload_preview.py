"""
Per-row upload preview: match and duplicate status for every order line,
computed with the same matcher and duplicate primitives the adapters use.
Nothing here writes.
"""
from typing import AbstractSet, Any, Dict, List, Mapping, Optional, Sequence

from schemas import RowPreview
from services.duplicate_filter import is_duplicate
from services.normalization import normalize_order_id
from services.order_grouping import field_value
from services.platform_adapters import MISSING_SKU, get_adapter
from services.variant_matcher import CatalogMap


def preview_rows(
    records: Sequence[Mapping[str, Any]],
    platform: Optional[str],
    catalog_map: CatalogMap,
    existing_order_ids: AbstractSet[str],
) -> List[RowPreview]:
    adapter = get_adapter(platform)
    resolved = adapter.resolve_headers(records)
    previews: List[RowPreview] = []

    for row in records:
        order_sn = normalize_order_id(field_value(row, resolved, "order_sn"))
        if not order_sn:
            continue
        outcome = adapter.evaluate_line(row, resolved, catalog_map)
        if outcome.reason == MISSING_SKU:
            product_status = "no_sku"
        elif outcome.matched_sku_variant is None:
            product_status = "new"
        else:
            product_status = "ok"

        previews.append(RowPreview(
            order_sn=order_sn,
            sku=outcome.sku,
            variation=outcome.variation,
            quantity=outcome.quantity,
            price=outcome.price,
            matched_sku_variant=outcome.matched_sku_variant,
            product_status=product_status,
            duplicate_status="duplicate" if is_duplicate(order_sn, existing_order_ids) else "unique",
        ))
    return previews


def collect_missing_skus(previews: Sequence[RowPreview]) -> List[str]:
    """Distinct SKUs with no catalog match, first-seen order."""
    seen: Dict[str, None] = {}
    for preview in previews:
        if preview.product_status == "new" and preview.sku:
            seen.setdefault(preview.sku, None)
    return list(seen)
