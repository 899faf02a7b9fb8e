import asyncio
from decimal import Decimal

import pytest

pytest.importorskip("aiosqlite", reason="storage tests run against aiosqlite")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, MasterProduct, StoreAccount
from schemas import StoreAccountRef, ValidatedLineItem
from services.order_ingestion import OrderIngestionService
from services.stock_ledger import StockLedgerService
from services.stock_reconciler import StockReconciler
from services.storage import StorageService

SHOPEE_CSV = (
    "No. Pesanan,No. Resi,Waktu Pesanan Dibuat,Nomor Referensi SKU,Nama Variasi,Jumlah,Harga Sebelum Diskon,Total Pembayaran\n"
    "ORD1,TRK1,01-02-2024 10:00,SKU1,\"RED, M\",2,5000,15000\n"
    "ORD1,TRK1,01-02-2024 10:00,SKU1,\"RED, M\",1,5000,15000\n"
).encode("utf-8")


async def _make_storage(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        session.add_all([
            StoreAccount(id="acc-1", user_id="user-1", name="Main Shop", platform="shopee"),
            MasterProduct(user_id="user-1", sku="SKU1", sku_variant="SKU1-RED-M", name="Shirt",
                          color="RED", size="M", cost_price=Decimal("1000"), stock=10),
            MasterProduct(user_id="user-2", sku="SKU1", sku_variant="SKU1-RED-M", name="Other user's shirt",
                          color="RED", size="M", cost_price=Decimal("1000"), stock=50),
        ])
        await session.commit()
    return engine, StorageService(factory)


def test_catalog_and_store_account_are_scoped_per_user(tmp_path):
    async def scenario():
        engine, storage = await _make_storage(tmp_path / "scoped.db")
        try:
            catalog = await storage.fetch_catalog("user-1")
            assert [(v.sku_variant, v.stock) for v in catalog] == [("SKU1-RED-M", 10)]
            assert await storage.fetch_catalog("nobody") == []

            assert (await storage.get_store_account("acc-1", "user-1")).name == "Main Shop"
            assert await storage.get_store_account("acc-1", "user-2") is None

            assert await storage.fetch_variant_stock(["SKU1-RED-M", "MISSING"], "user-2") == {"SKU1-RED-M": 50}
        finally:
            await engine.dispose()

    asyncio.run(scenario())


def test_ingestion_round_trip_through_database(tmp_path):
    async def scenario():
        engine, storage = await _make_storage(tmp_path / "ingest.db")
        try:
            service = OrderIngestionService(storage)
            account = StoreAccountRef(id="acc-1", name="Main Shop", platform="shopee")

            first = await service.ingest(SHOPEE_CSV, "orders.csv", "shopee", account, "user-1")
            assert (first.new_orders_count, first.skipped_count, first.invalid_count) == (1, 0, 0)

            assert await storage.fetch_existing_order_ids("user-1") == {"ORD1"}
            assert await storage.fetch_variant_stock(["SKU1-RED-M"], "user-1") == {"SKU1-RED-M": 7}
            # other user's stock untouched
            assert await storage.fetch_variant_stock(["SKU1-RED-M"], "user-2") == {"SKU1-RED-M": 50}

            uploads = await storage.get_recent_uploads("user-1")
            assert len(uploads) == 1
            assert uploads[0].id == first.upload_id
            assert uploads[0].total_orders == 1

            second = await service.ingest(SHOPEE_CSV, "orders.csv", "shopee", account, "user-1")
            assert (second.new_orders_count, second.skipped_count) == (0, 1)
            assert await storage.fetch_variant_stock(["SKU1-RED-M"], "user-1") == {"SKU1-RED-M": 7}
        finally:
            await engine.dispose()

    asyncio.run(scenario())


def test_stock_movement_updates_stock_and_history(tmp_path):
    async def scenario():
        engine, storage = await _make_storage(tmp_path / "ledger.db")
        try:
            ledger = StockLedgerService(storage)
            entry = await ledger.record_movement("user-1", "sku1-red-m", "out", 4, reason="damaged")
            assert (entry.previous_stock, entry.new_stock) == (10, 6)

            assert await storage.fetch_variant_stock(["SKU1-RED-M"], "user-1") == {"SKU1-RED-M": 6}
            history = await storage.get_stock_history("user-1")
            assert [(h.type, h.quantity, h.reason) for h in history] == [("out", 4, "damaged")]

            product = await storage.get_variant("SKU1-RED-M", "user-1")
            # stale previous stock → nothing written
            assert await storage.apply_stock_movement(product.id, 10, 0, {
                "user_id": "user-1", "product_sku_variant": "SKU1-RED-M", "type": "out",
                "quantity": 10, "previous_stock": 10, "new_stock": 0,
            }) is None
            assert len(await storage.get_stock_history("user-1")) == 1
        finally:
            await engine.dispose()

    asyncio.run(scenario())


def test_lowercase_stored_variant_still_gets_decremented(tmp_path):
    async def scenario():
        engine, storage = await _make_storage(tmp_path / "case.db")
        try:
            async with storage.get_session() as session:
                session.add(MasterProduct(user_id="user-1", sku="sku2", sku_variant="sku2-blue-l",
                                          color="Blue", size="L", stock=5))
                await session.commit()

            catalog = await storage.fetch_catalog("user-1")
            assert "SKU2-BLUE-L" in [v.sku_variant for v in catalog]

            reconciler = StockReconciler(storage)
            new_stock = await reconciler.reconcile(
                [ValidatedLineItem(sku_variant="SKU2-BLUE-L", quantity=2, price=Decimal("0"))], "user-1"
            )
            assert new_stock == {"SKU2-BLUE-L": 3}
            assert await storage.fetch_variant_stock(["sku2-blue-l"], "user-1") == {"SKU2-BLUE-L": 3}
            assert (await storage.get_variant("Sku2-Blue-L", "user-1")).stock == 3
        finally:
            await engine.dispose()

    asyncio.run(scenario())


def test_schema_has_no_local_users_table():
    assert set(Base.metadata.tables) == {
        "store_accounts", "master_products", "daily_uploads", "orders", "order_items", "stock_history",
    }
