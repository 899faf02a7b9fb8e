"""
Order Ingestion Schemas
=======================

In-memory shapes passed between the ingestion stages.

LIFECYCLE:
----------
- CatalogVariant          snapshot of one master_products row, loaded once per ingestion
- GroupedOrder            all raw rows sharing one marketplace order number (transient)
- ValidatedLineItem       a row that matched the catalog and parsed cleanly (transient)
- ValidatedOrder          a grouped order whose every row validated (transient)
- AdapterResult           per-platform output: new orders + skipped/invalid counts
- IngestionResult         what the upload caller sees
- RowPreview              per-row match/duplicate status for operator review

Order numbers are always strings. Money is Decimal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional


ProductStatus = Literal["ok", "new", "no_sku"]
DuplicateStatus = Literal["unique", "duplicate"]


@dataclass(frozen=True)
class CatalogVariant:
    sku: str                 # parent SKU
    sku_variant: str         # unique per user, uppercase
    name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    cost_price: Optional[Decimal] = None
    category: Optional[str] = None
    stock: int = 0

    @classmethod
    def from_record(cls, record: Any) -> "CatalogVariant":
        """Build from an ORM row or a mapping with master_products columns."""
        get = record.get if isinstance(record, dict) else lambda k, d=None: getattr(record, k, d)
        return cls(
            sku=(get("sku") or "").strip(),
            sku_variant=(get("sku_variant") or "").strip().upper(),
            name=get("name"),
            color=get("color"),
            size=get("size"),
            cost_price=get("cost_price"),
            category=get("category"),
            stock=int(get("stock") or 0),
        )


@dataclass
class GroupedOrder:
    order_sn: str
    tracking_number: Optional[str]
    order_creation_date: Optional[datetime]
    total: Decimal
    rows: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ValidatedLineItem:
    sku_variant: str
    quantity: int
    price: Decimal


@dataclass
class ValidatedOrder:
    order_sn: str
    tracking_number: Optional[str]
    order_creation_date: Optional[datetime]
    items: List[ValidatedLineItem]
    total: Decimal

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class AdapterResult:
    new_orders: List[ValidatedOrder] = field(default_factory=list)
    skipped_count: int = 0
    invalid_count: int = 0


@dataclass
class StoreAccountRef:
    id: str
    name: str
    platform: Optional[str] = None


@dataclass
class IngestionResult:
    new_orders_count: int
    skipped_count: int
    invalid_count: int
    platform: str
    upload_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "newOrdersCount": self.new_orders_count,
            "skippedCount": self.skipped_count,
            "invalidCount": self.invalid_count,
            "platform": self.platform,
            "uploadId": self.upload_id,
        }


@dataclass
class RowPreview:
    order_sn: str
    sku: Optional[str]
    variation: Optional[str]
    quantity: Optional[int]
    price: Optional[Decimal]
    matched_sku_variant: Optional[str]
    product_status: ProductStatus
    duplicate_status: DuplicateStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderSn": self.order_sn,
            "sku": self.sku,
            "variation": self.variation,
            "quantity": self.quantity,
            "price": float(self.price) if self.price is not None else None,
            "matchedSkuVariant": self.matched_sku_variant,
            "productStatus": self.product_status,
            "duplicateStatus": self.duplicate_status,
        }
