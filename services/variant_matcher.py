"""
Variant Matching Service
Resolves an order line's SKU (+ optional variation text) to one catalog variant
"""
from typing import Dict, Iterable, List, Optional
import logging

from schemas import CatalogVariant

logger = logging.getLogger(__name__)

CatalogMap = Dict[str, CatalogVariant]


def build_catalog_map(variants: Iterable[CatalogVariant]) -> CatalogMap:
    """Key variants by uppercase variant SKU, keeping catalog order."""
    catalog: CatalogMap = {}
    for variant in variants:
        key = (variant.sku_variant or "").strip().upper()
        if key:
            catalog[key] = variant
    return catalog


def _parent_matches(catalog_map: CatalogMap, normalized_sku: str) -> List[CatalogVariant]:
    return [v for v in catalog_map.values() if v.sku and v.sku.upper() == normalized_sku]


def find_matching_variant(
    sku: Optional[object],
    variation_text: Optional[object],
    catalog_map: CatalogMap,
) -> Optional[CatalogVariant]:
    """
    Match priority (first hit wins):
    1. Exact variant SKU.
    2. With variation text: variants of the parent SKU
       - none  → first variant SKU starting with '<SKU>-', else no match
       - one   → that variant
       - many  → first whose color AND size both appear in the text,
                 or whose variant SKU equals the text
    3. First variant of the parent SKU (last resort; fully ambiguous
       variation text lands here, so operators should review previews).
    """
    if sku is None:
        return None
    normalized_sku = str(sku).upper().strip()
    if not normalized_sku:
        return None

    direct = catalog_map.get(normalized_sku)
    if direct is not None:
        return direct

    if isinstance(variation_text, str) and variation_text.strip():
        normalized_variation = variation_text.upper().strip()
        candidates = _parent_matches(catalog_map, normalized_sku)

        if not candidates:
            prefix = normalized_sku + "-"
            for variant in catalog_map.values():
                if variant.sku_variant and variant.sku_variant.upper().startswith(prefix):
                    return variant
            return None

        if len(candidates) == 1:
            return candidates[0]

        for variant in candidates:
            if (
                variant.color and variant.size
                and variant.color.upper() in normalized_variation
                and variant.size.upper() in normalized_variation
            ):
                return variant
            if variant.sku_variant and variant.sku_variant.upper() == normalized_variation:
                return variant

        logger.debug(
            f"Ambiguous variation {variation_text!r} for SKU {normalized_sku}; "
            f"falling back to first of {len(candidates)} candidates"
        )

    fallback = _parent_matches(catalog_map, normalized_sku)
    return fallback[0] if fallback else None
