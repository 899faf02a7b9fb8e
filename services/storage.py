"""
Storage Service Layer
Database operations consumed by the order ingestion pipeline and stock ledger
"""
from sqlalchemy import select, update, desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
import functools
import logging

from database import (
    AsyncSessionLocal, DailyUpload, MasterProduct, Order, OrderItem,
    StockHistory, StoreAccount
)
from schemas import CatalogVariant
from services.duplicate_filter import build_existing_id_set
from services.errors import StorageError
from utils import retry_async

logger = logging.getLogger(__name__)


def storage_operation(name: str):
    """Surface any SQLAlchemy failure as StorageError(name, ...)."""
    def decorator(fn: Callable):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as e:
                logger.error(f"Storage operation {name} failed: {type(e).__name__}: {e}")
                raise StorageError(name, str(e)) from e
        return wrapper
    return decorator


class StorageService:
    """Storage service providing database operations"""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal

    def get_session(self) -> AsyncSession:
        """Get database session context manager"""
        return self._session_factory()

    def _filter_columns(self, table, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Drop keys that don't exist on the SQLAlchemy table (prevents invalid kw errors)."""
        allowed = {c.name for c in table.columns}
        return [{k: v for k, v in row.items() if k in allowed} for row in rows]

    # ---------- Catalog ----------

    @storage_operation("fetch_catalog")
    @retry_async(max_retries=2)
    async def fetch_catalog(self, user_id: str) -> List[CatalogVariant]:
        """All catalog variants for a user, in a stable order."""
        async with self.get_session() as session:
            query = (
                select(MasterProduct)
                .where(MasterProduct.user_id == user_id)
                .order_by(MasterProduct.created_at, MasterProduct.sku_variant)
            )
            result = await session.execute(query)
            return [CatalogVariant.from_record(p) for p in result.scalars().all()]

    @storage_operation("get_variant")
    @retry_async(max_retries=2)
    async def get_variant(self, sku_variant: str, user_id: str) -> Optional[MasterProduct]:
        async with self.get_session() as session:
            query = select(MasterProduct).where(
                MasterProduct.user_id == user_id,
                func.upper(MasterProduct.sku_variant) == sku_variant.strip().upper(),
            )
            result = await session.execute(query)
            return result.scalars().first()

    @storage_operation("fetch_variant_stock")
    @retry_async(max_retries=2)
    async def fetch_variant_stock(self, sku_variants: List[str], user_id: str) -> Dict[str, int]:
        """Current stock for exactly these variant SKUs of the user, keyed by uppercase SKU."""
        if not sku_variants:
            return {}
        wanted = [s.strip().upper() for s in sku_variants]
        async with self.get_session() as session:
            query = select(MasterProduct.sku_variant, MasterProduct.stock).where(
                MasterProduct.user_id == user_id,
                func.upper(MasterProduct.sku_variant).in_(wanted),
            )
            result = await session.execute(query)
            return {sku.upper(): int(stock or 0) for sku, stock in result.all()}

    @storage_operation("update_variant_stock")
    async def update_variant_stock(self, sku_variant: str, user_id: str, new_stock: int) -> None:
        async with self.get_session() as session:
            stmt = (
                update(MasterProduct)
                .where(
                    MasterProduct.user_id == user_id,
                    func.upper(MasterProduct.sku_variant) == sku_variant.strip().upper(),
                )
                .values(stock=new_stock)
            )
            result = await session.execute(stmt)
            await session.commit()
            if not result.rowcount:
                logger.warning(f"Stock update matched no rows sku_variant={sku_variant} user_id={user_id}")

    # ---------- Orders ----------

    @storage_operation("fetch_existing_order_ids")
    @retry_async(max_retries=2)
    async def fetch_existing_order_ids(self, user_id: str) -> Set[str]:
        async with self.get_session() as session:
            result = await session.execute(select(Order.order_sn).where(Order.user_id == user_id))
            return build_existing_id_set(result.scalars().all())

    @storage_operation("insert_upload_batch")
    async def insert_upload_batch(self, record: Dict[str, Any]) -> DailyUpload:
        async with self.get_session() as session:
            upload = DailyUpload(**self._filter_columns(DailyUpload.__table__, [record])[0])
            session.add(upload)
            await session.commit()
            await session.refresh(upload)
            return upload

    @storage_operation("insert_orders")
    async def insert_orders(self, records: List[Dict[str, Any]]) -> List[Order]:
        """Insert orders; returned rows carry generated ids in input order."""
        if not records:
            return []
        async with self.get_session() as session:
            orders = [Order(**row) for row in self._filter_columns(Order.__table__, records)]
            session.add_all(orders)
            await session.commit()
            return orders

    @storage_operation("insert_line_items")
    async def insert_line_items(self, records: List[Dict[str, Any]]) -> None:
        if not records:
            return
        async with self.get_session() as session:
            session.add_all([OrderItem(**row) for row in self._filter_columns(OrderItem.__table__, records)])
            await session.commit()

    @storage_operation("get_recent_uploads")
    @retry_async(max_retries=2)
    async def get_recent_uploads(self, user_id: str, limit: int = 10) -> List[DailyUpload]:
        async with self.get_session() as session:
            query = (
                select(DailyUpload)
                .where(DailyUpload.user_id == user_id)
                .order_by(desc(DailyUpload.created_at))
                .limit(limit)
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    # ---------- Store accounts ----------

    @storage_operation("get_store_account")
    @retry_async(max_retries=2)
    async def get_store_account(self, account_id: str, user_id: str) -> Optional[StoreAccount]:
        async with self.get_session() as session:
            query = select(StoreAccount).where(StoreAccount.id == account_id, StoreAccount.user_id == user_id)
            result = await session.execute(query)
            return result.scalars().first()

    # ---------- Stock ledger ----------

    @storage_operation("apply_stock_movement")
    async def apply_stock_movement(
        self,
        product_id: str,
        previous_stock: int,
        new_stock: int,
        history: Dict[str, Any],
    ) -> Optional[StockHistory]:
        """
        Compare-and-set the stock counter and append the ledger entry in one
        transaction. Returns None (and writes nothing) when the stock changed
        since `previous_stock` was read.
        """
        async with self.get_session() as session:
            stmt = (
                update(MasterProduct)
                .where(MasterProduct.id == product_id, MasterProduct.stock == previous_stock)
                .values(stock=new_stock)
            )
            result = await session.execute(stmt)
            if not result.rowcount:
                await session.rollback()
                return None
            entry = StockHistory(**self._filter_columns(StockHistory.__table__, [history])[0])
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
            return entry

    @storage_operation("get_stock_history")
    @retry_async(max_retries=2)
    async def get_stock_history(self, user_id: str, limit: int = 100) -> List[StockHistory]:
        async with self.get_session() as session:
            query = (
                select(StockHistory)
                .where(StockHistory.user_id == user_id)
                .order_by(desc(StockHistory.created_at))
                .limit(limit)
            )
            result = await session.execute(query)
            return list(result.scalars().all())


# Global storage instance
storage = StorageService()


def get_storage() -> StorageService:
    """FastAPI dependency returning the shared storage service."""
    return storage
