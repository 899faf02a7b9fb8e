from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Integer, Numeric, Date, DateTime,
    ForeignKey, func, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.pool import StaticPool
from sqlalchemy import text
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any
import logging, os, uuid

# Load environment variables early (before reading DATABASE_URL)
from dotenv import load_dotenv
load_dotenv()

# -------------------------------------------------------------------
# Engine / Session
# -------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "")

if DATABASE_URL:
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
    # asyncpg takes 'ssl', not 'sslmode'
    if "sslmode=require" in DATABASE_URL:
        DATABASE_URL = DATABASE_URL.replace("?sslmode=require", "").replace("&sslmode=require", "")
        connect_args = {"ssl": "require"}
    else:
        connect_args = {}

    engine = create_async_engine(
        DATABASE_URL,
        echo=os.getenv("NODE_ENV") == "development",
        pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_timeout=15,
        connect_args=connect_args,
    )
else:
    DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    engine = create_async_engine(
        DATABASE_URL,
        echo=os.getenv("NODE_ENV") == "development",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

def _redact_db_url(url: str) -> str:
    try:
        if "@" in url and "://" in url:
            head, tail = url.split("://", 1)
            creds, hostpart = tail.split("@", 1)
            if ":" in creds:
                user, _pwd = creds.split(":", 1)
                return f"{head}://{user}:******@{hostpart}"
    except ValueError:
        pass
    return url if "@" not in url else "******"

logger = logging.getLogger(__name__)
logger.info(f"Creating SQL engine for { _redact_db_url(DATABASE_URL) }")

async def probe_db_connection():
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("DB connectivity probe: OK")
    except Exception as e:
        logger.exception(f"DB connectivity probe failed: {e}")

# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass

def _uuid() -> str:
    return str(uuid.uuid4())

# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------
# User ids come from the external identity provider; there is no users table here.

class StoreAccount(Base):
    __tablename__ = "store_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # shopee / lazada / tiktok
    platform: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)


class MasterProduct(Base):
    """One sellable variant in a user's catalog."""
    __tablename__ = "master_products"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)

    sku: Mapped[str] = mapped_column(Text, nullable=False)            # parent SKU
    sku_variant: Mapped[str] = mapped_column(Text, nullable=False)    # stored uppercase
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cost_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Can go negative when the reconciler sells more than is on hand
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "sku_variant", name="uq_master_products_user_variant"),
    )


class DailyUpload(Base):
    __tablename__ = "daily_uploads"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(String, nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("store_accounts.id"), nullable=True)
    account_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    upload_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    orders = relationship("Order", back_populates="daily_upload")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    daily_upload_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("daily_uploads.id"), nullable=True)

    # Marketplace order number, kept as text (long numeric ids lose precision otherwise)
    order_sn: Mapped[str] = mapped_column(String, nullable=False)
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_creation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="processed")
    total: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    daily_upload = relationship("DailyUpload", back_populates="orders")
    items = relationship("OrderItem", back_populates="order")

    __table_args__ = (
        UniqueConstraint("user_id", "order_sn", name="uq_orders_user_order_sn"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    order_id: Mapped[str] = mapped_column(String, ForeignKey("orders.id"), nullable=False)
    product_sku_variant: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class StockHistory(Base):
    __tablename__ = "stock_history"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    product_sku_variant: Mapped[str] = mapped_column(Text, nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('in','out')", name="ck_stock_history_type"),
    )

# -------------------------------------------------------------------
# Indexes
# -------------------------------------------------------------------
Index('ix_master_products_user_sku', MasterProduct.user_id, MasterProduct.sku)
Index('ix_orders_daily_upload', Order.daily_upload_id)
Index('ix_order_items_order', OrderItem.order_id)
Index('ix_daily_uploads_user_date', DailyUpload.user_id, DailyUpload.upload_date)
# -------------------------------------------------------------------
# Init helpers
# -------------------------------------------------------------------
async def init_db():
    """Ensure tables exist."""
    await probe_db_connection()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DB init complete (tables ensured).")

async def check_db_health() -> Dict[str, Any]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        logger.warning(f"DB health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
