"""
Manual stock ledger: operator stock-in / stock-out entries with history.
"""
from typing import Any, Optional
import logging

from services.errors import StockMovementError
from utils import sanitize_string

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = ("in", "out")


class StockLedgerService:
    def __init__(self, storage):
        self.storage = storage

    async def record_movement(
        self,
        user_id: str,
        sku_variant: str,
        movement_type: str,
        quantity: Any,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ):
        """
        Apply a manual stock change and append it to stock_history.

        Unlike the order reconciler, manual entries never take stock below zero.
        """
        movement_type = (movement_type or "").strip().lower()
        if movement_type not in MOVEMENT_TYPES:
            raise StockMovementError(f"Movement type must be 'in' or 'out', got {movement_type!r}")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise StockMovementError("Quantity must be a positive integer")

        sku_variant = (sku_variant or "").strip().upper()
        product = await self.storage.get_variant(sku_variant, user_id)
        if product is None:
            raise StockMovementError(f"Product {sku_variant!r} not found")

        previous_stock = int(product.stock or 0)
        new_stock = previous_stock + quantity if movement_type == "in" else previous_stock - quantity
        if new_stock < 0:
            raise StockMovementError(
                f"Insufficient stock for {sku_variant}: have {previous_stock}, removing {quantity}"
            )

        entry = await self.storage.apply_stock_movement(
            product.id,
            previous_stock,
            new_stock,
            {
                "user_id": user_id,
                "product_sku_variant": product.sku_variant,
                "product_name": product.name,
                "type": movement_type,
                "quantity": quantity,
                "previous_stock": previous_stock,
                "new_stock": new_stock,
                "reason": sanitize_string(reason, 200) or None,
                "notes": sanitize_string(notes) or None,
            },
        )
        if entry is None:
            raise StockMovementError(f"Stock for {sku_variant} changed while saving; retry the entry")

        logger.info(f"Stock {movement_type} {quantity} for {sku_variant}: {previous_stock} -> {new_stock}")
        return entry
