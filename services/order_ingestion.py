"""
Order Ingestion Service
Decodes a marketplace export, validates it against the user's catalog and
persists the new orders, their line items and the resulting stock changes.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
import asyncio
import logging

from schemas import IngestionResult, StoreAccountRef, ValidatedOrder
from services.duplicate_filter import build_existing_id_set
from services.errors import EmptyCatalogError, EmptyFileError, StorageError
from services.normalization import normalize_headers, rows_to_records
from services.platform_adapters import process_orders
from services.spreadsheet_reader import read_sheet_rows
from services.stock_reconciler import StockReconciler
from services.variant_matcher import CatalogMap, build_catalog_map
from settings import resolve_platform

logger = logging.getLogger(__name__)


def decode_records(content: bytes, filename: str) -> List[Dict[str, Any]]:
    """File bytes -> list of {normalized header: cell}. Raises EmptyFileError below 2 rows."""
    rows = read_sheet_rows(content, filename)
    if len(rows) < 2:
        raise EmptyFileError("File contains no order rows")
    headers = normalize_headers(rows[0])
    return rows_to_records(headers, rows[1:])


class OrderIngestionService:
    """Runs one upload through decode → match → persist → reconcile."""

    def __init__(self, storage, reconciler: Optional[StockReconciler] = None):
        self.storage = storage
        self.reconciler = reconciler or StockReconciler(storage)

    async def load_snapshots(self, user_id: str):
        """Catalog map + existing order ids, fetched concurrently."""
        catalog, existing_ids = await asyncio.gather(
            self.storage.fetch_catalog(user_id),
            self.storage.fetch_existing_order_ids(user_id),
        )
        if not catalog:
            raise EmptyCatalogError("No products in catalog. Add products before uploading orders.")
        catalog_map: CatalogMap = build_catalog_map(catalog)
        existing = build_existing_id_set(existing_ids)
        logger.info(f"Loaded catalog ({len(catalog_map)} variants) and {len(existing)} existing order ids for user {user_id}")
        return catalog_map, existing

    async def ingest(
        self,
        content: bytes,
        filename: str,
        platform: Optional[str],
        store_account: StoreAccountRef,
        user_id: str,
    ) -> IngestionResult:
        records = decode_records(content, filename)
        logger.info(f"Ingesting {filename!r}: {len(records)} data rows, platform={platform!r}, user={user_id}")

        catalog_map, existing_ids = await self.load_snapshots(user_id)
        adapter_result = process_orders(platform, records, catalog_map, existing_ids)
        canonical = resolve_platform(platform)

        result = IngestionResult(
            new_orders_count=len(adapter_result.new_orders),
            skipped_count=adapter_result.skipped_count,
            invalid_count=adapter_result.invalid_count,
            platform=canonical,
        )
        if not adapter_result.new_orders:
            logger.info(f"No new orders in {filename!r} (skipped={result.skipped_count}, invalid={result.invalid_count})")
            return result

        result.upload_id = await self._persist(
            adapter_result.new_orders, filename, canonical, store_account, user_id
        )
        return result

    async def _persist(
        self,
        orders: List[ValidatedOrder],
        filename: str,
        platform: str,
        store_account: StoreAccountRef,
        user_id: str,
    ) -> str:
        """
        Upload batch, then orders, then line items, then stock. Each stage
        commits on its own; a failure stops the remaining stages and earlier
        writes stay in place.
        """
        order_sns = [o.order_sn for o in orders]
        upload_id: Optional[str] = None
        stage = "insert_upload_batch"
        try:
            upload = await self.storage.insert_upload_batch({
                "user_id": user_id,
                "file_name": filename,
                "platform": platform,
                "account_id": store_account.id,
                "account_name": store_account.name,
                "upload_date": date.today(),
                "total_orders": len(orders),
                "total_revenue": sum((o.total for o in orders), Decimal("0")),
            })
            upload_id = upload.id
            logger.info(f"Upload batch {upload_id} created for {len(orders)} orders")

            stage = "insert_orders"
            inserted = await self.storage.insert_orders([
                {
                    "user_id": user_id,
                    "daily_upload_id": upload_id,
                    "order_sn": o.order_sn,
                    "tracking_number": o.tracking_number,
                    "order_creation_date": o.order_creation_date,
                    "status": "processed",
                    "total": o.total,
                }
                for o in orders
            ])
            order_ids = {row.order_sn: row.id for row in inserted}
            logger.info(f"Inserted {len(inserted)} orders for upload {upload_id}")

            stage = "insert_line_items"
            line_items = [
                {
                    "order_id": order_ids[o.order_sn],
                    "product_sku_variant": item.sku_variant,
                    "quantity": item.quantity,
                    "price": item.price,
                }
                for o in orders
                for item in o.items
            ]
            await self.storage.insert_line_items(line_items)
            logger.info(f"Inserted {len(line_items)} line items for upload {upload_id}")
        except StorageError:
            logger.error(
                f"Ingestion stage {stage} failed; upload_id={upload_id} attempted orders={order_sns}"
            )
            raise

        await self.reconciler.reconcile([item for o in orders for item in o.items], user_id)
        return upload_id
