"""
Platform Adapters
Turn decoded marketplace export rows into validated order batches.

Each marketplace is described by a PlatformConfig (header spellings per
canonical field plus light coercion rules). The group → dedupe → match →
validate skeleton is shared, so adding a marketplace means adding a config.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import AbstractSet, Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple
import logging

from schemas import AdapterResult, GroupedOrder, ValidatedLineItem, ValidatedOrder
from services.duplicate_filter import is_duplicate
from services.errors import UnsupportedPlatformError
from services.normalization import (
    normalize_text,
    parse_locale_currency,
    parse_number,
    parse_quantity,
)
from services.order_grouping import field_value, group_rows, resolve_field_headers
from services.variant_matcher import CatalogMap, find_matching_variant
from settings import resolve_platform

logger = logging.getLogger(__name__)

# Line rejection reasons
MISSING_SKU = "missing_sku"
UNMATCHED_SKU = "unmatched_sku"
BAD_QUANTITY = "bad_quantity"
BAD_PRICE = "bad_price"


@dataclass(frozen=True)
class PlatformConfig:
    name: str
    field_mapping: Mapping[str, Tuple[str, ...]]
    # canonical fields parsed with parse_locale_currency instead of parse_number
    currency_fields: FrozenSet[str] = frozenset()
    # None → quantity column is read; otherwise every row counts as this many units
    implicit_quantity: Optional[int] = None
    # value used when the price cell is blank; None → a blank price rejects the row
    missing_price_default: Optional[Decimal] = None
    total_fields: Tuple[str, ...] = ("total_amount",)

    @property
    def uses_variation(self) -> bool:
        return "variation_name" in self.field_mapping

    def number_parser(self, field_name: str):
        return parse_locale_currency if field_name in self.currency_fields else parse_number


# -------------------------------------------------------------------
# Field mapping tables
# -------------------------------------------------------------------
SHOPEE = PlatformConfig(
    name="shopee",
    field_mapping={
        "order_sn": ("no. pesanan", "order id", "order sn"),
        "tracking_number": ("no. resi", "tracking number*", "tracking number"),
        "order_creation_date": ("waktu pesanan dibuat", "order creation date"),
        "sku": ("nomor referensi sku", "sku reference no.", "sku induk", "parent sku reference no."),
        "variation_name": ("nama variasi", "variation name"),
        "quantity": ("jumlah", "quantity"),
        "price": ("harga sebelum diskon", "original price"),
        "total_amount": ("total pembayaran", "grand total"),
    },
)

LAZADA = PlatformConfig(
    name="lazada",
    field_mapping={
        "order_sn": ("ordernumber", "order number"),
        "tracking_number": ("trackingcode", "tracking code"),
        "order_creation_date": ("createtime", "create time"),
        "sku": ("sellersku", "seller sku"),
        "price": ("paidprice", "paid price"),
        "total_amount": ("totalamount", "total amount"),
    },
    # one row per unit sold
    implicit_quantity=1,
    missing_price_default=Decimal("0"),
    total_fields=("total_amount", "price"),
)

TIKTOK = PlatformConfig(
    name="tiktok",
    field_mapping={
        "order_sn": ("order id",),
        "tracking_number": ("tracking id",),
        "order_creation_date": ("order time", "created time"),
        "sku": ("seller sku",),
        "quantity": ("quantity",),
        "price": ("sku price", "sku unit original price"),
        "total_amount": ("order subtotal", "order amount"),
    },
    currency_fields=frozenset({"price", "total_amount"}),
    missing_price_default=Decimal("0"),
)

PLATFORM_CONFIGS: Dict[str, PlatformConfig] = {
    cfg.name: cfg for cfg in (SHOPEE, LAZADA, TIKTOK)
}


def get_platform_config(platform: Optional[str]) -> PlatformConfig:
    canonical = resolve_platform(platform)
    config = PLATFORM_CONFIGS.get(canonical) if canonical else None
    if config is None:
        raise UnsupportedPlatformError(platform)
    return config


@dataclass
class LineOutcome:
    """Result of validating one raw row; `item` is None when `reason` is set."""
    sku: Optional[str]
    variation: Optional[str]
    quantity: Optional[int]
    price: Optional[Decimal]
    matched_sku_variant: Optional[str] = None
    item: Optional[ValidatedLineItem] = None
    reason: Optional[str] = None


class PlatformAdapter:
    """Shared ingestion skeleton parameterized by a PlatformConfig."""

    def __init__(self, config: PlatformConfig):
        self.config = config

    def resolve_headers(self, records: Sequence[Mapping[str, Any]]) -> Dict[str, str]:
        headers: set = set()
        for record in records:
            headers.update(record.keys())
        return resolve_field_headers(self.config.field_mapping, headers)

    def group(self, records: Sequence[Mapping[str, Any]], resolved: Mapping[str, str]) -> Dict[str, GroupedOrder]:
        return group_rows(
            records,
            resolved,
            total_fields=self.config.total_fields,
            parse_total=self.config.number_parser("total_amount"),
        )

    def evaluate_line(
        self,
        row: Mapping[str, Any],
        resolved: Mapping[str, str],
        catalog_map: CatalogMap,
    ) -> LineOutcome:
        cfg = self.config
        sku = normalize_text(field_value(row, resolved, "sku"))
        variation = normalize_text(field_value(row, resolved, "variation_name")) if cfg.uses_variation else None

        if cfg.implicit_quantity is not None:
            quantity: Optional[int] = cfg.implicit_quantity
        else:
            quantity = parse_quantity(field_value(row, resolved, "quantity"))

        raw_price = field_value(row, resolved, "price")
        price = cfg.number_parser("price")(raw_price)
        if price is None and cfg.missing_price_default is not None and normalize_text(raw_price) is None:
            price = cfg.missing_price_default

        outcome = LineOutcome(sku=sku, variation=variation, quantity=quantity, price=price)

        if not sku:
            outcome.reason = MISSING_SKU
            return outcome

        variant = find_matching_variant(sku, variation, catalog_map)
        if variant is None:
            outcome.reason = UNMATCHED_SKU
            return outcome
        outcome.matched_sku_variant = variant.sku_variant

        if quantity is None or quantity <= 0:
            outcome.reason = BAD_QUANTITY
            return outcome
        if price is None or price < 0:
            outcome.reason = BAD_PRICE
            return outcome

        outcome.item = ValidatedLineItem(sku_variant=variant.sku_variant, quantity=quantity, price=price)
        return outcome

    def validate_order(
        self,
        order: GroupedOrder,
        resolved: Mapping[str, str],
        catalog_map: CatalogMap,
    ) -> Tuple[Optional[ValidatedOrder], Optional[str]]:
        """All-or-nothing: the first rejected row invalidates the whole order."""
        items: List[ValidatedLineItem] = []
        for row in order.rows:
            outcome = self.evaluate_line(row, resolved, catalog_map)
            if outcome.item is None:
                return None, outcome.reason
            items.append(outcome.item)

        if not items:
            return None, "empty_order"

        return ValidatedOrder(
            order_sn=order.order_sn,
            tracking_number=order.tracking_number,
            order_creation_date=order.order_creation_date,
            items=items,
            total=order.total,
        ), None

    def process(
        self,
        records: Sequence[Mapping[str, Any]],
        catalog_map: CatalogMap,
        existing_order_ids: AbstractSet[str],
    ) -> AdapterResult:
        resolved = self.resolve_headers(records)
        missing = [f for f in ("order_sn", "sku") if f not in resolved]
        if missing:
            logger.warning(f"{self.config.name}: no header found for {missing}; rows will not validate")

        grouped = self.group(records, resolved)
        result = AdapterResult()
        rejection_reasons: Dict[str, int] = {}

        for order_sn, order in grouped.items():
            if is_duplicate(order_sn, existing_order_ids):
                result.skipped_count += 1
                continue

            validated, reason = self.validate_order(order, resolved, catalog_map)
            if validated is None:
                result.invalid_count += 1
                rejection_reasons[reason] = rejection_reasons.get(reason, 0) + 1
                logger.debug(f"{self.config.name}: order {order_sn} rejected ({reason})")
                continue
            result.new_orders.append(validated)

        logger.info(
            f"{self.config.name}: grouped={len(grouped)} new={len(result.new_orders)} "
            f"skipped={result.skipped_count} invalid={result.invalid_count} reasons={rejection_reasons}"
        )
        return result


def get_adapter(platform: Optional[str]) -> PlatformAdapter:
    return PlatformAdapter(get_platform_config(platform))


def process_orders(
    platform: Optional[str],
    records: Sequence[Mapping[str, Any]],
    catalog_map: CatalogMap,
    existing_order_ids: AbstractSet[str],
) -> AdapterResult:
    """Dispatch to the adapter for `platform`; raises UnsupportedPlatformError."""
    return get_adapter(platform).process(records, catalog_map, existing_order_ids)
