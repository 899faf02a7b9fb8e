"""
Stock Reconciler
Applies the quantities sold in one ingestion run as per-variant stock decrements.
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple
import asyncio
import logging

from schemas import ValidatedLineItem
from services.errors import StockReconciliationError
from settings import STOCK_UPDATE_CONCURRENCY

logger = logging.getLogger(__name__)


def aggregate_stock_deltas(line_items: Iterable[ValidatedLineItem]) -> Dict[str, int]:
    """Net quantity sold per variant SKU, in first-seen order."""
    deltas: Counter = Counter()
    for item in line_items:
        deltas[item.sku_variant] += item.quantity
    return dict(deltas)


class StockReconciler:
    """Decrements catalog stock for newly inserted line items (no floor at zero)."""

    def __init__(self, storage, concurrency: Optional[int] = None):
        self.storage = storage
        self.concurrency = concurrency or STOCK_UPDATE_CONCURRENCY

    async def reconcile(self, line_items: Iterable[ValidatedLineItem], user_id: str) -> Dict[str, int]:
        """
        Returns the new stock per variant. Raises StockReconciliationError if any
        update fails; updates that already succeeded stay applied.
        """
        deltas = aggregate_stock_deltas(line_items)
        if not deltas:
            return {}

        current = await self.storage.fetch_variant_stock(list(deltas.keys()), user_id)

        planned: Dict[str, int] = {}
        for sku_variant, sold in deltas.items():
            if sku_variant not in current:
                logger.warning(f"Stock reconcile: {sku_variant} not found for user {user_id}; skipping")
                continue
            planned[sku_variant] = current[sku_variant] - sold
            if planned[sku_variant] < 0:
                logger.warning(
                    f"Stock reconcile: {sku_variant} goes negative "
                    f"({current[sku_variant]} - {sold} = {planned[sku_variant]})"
                )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _update(sku_variant: str, new_stock: int) -> Tuple[str, Optional[BaseException]]:
            async with semaphore:
                try:
                    await self.storage.update_variant_stock(sku_variant, user_id, new_stock)
                    return sku_variant, None
                except Exception as e:
                    return sku_variant, e

        results = await asyncio.gather(*(_update(sku, stock) for sku, stock in planned.items()))

        failed: List[str] = []
        for sku_variant, error in results:
            if error is not None:
                logger.error(f"Stock update failed for {sku_variant}: {type(error).__name__}: {error}")
                failed.append(sku_variant)

        if failed:
            raise StockReconciliationError(failed)

        logger.info(f"Stock reconciled for {len(planned)} variants (user {user_id})")
        return planned
