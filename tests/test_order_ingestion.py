import asyncio
from decimal import Decimal

import pytest
from conftest import FakeStorage

from schemas import StoreAccountRef
from services.errors import (
    EmptyCatalogError,
    EmptyFileError,
    StorageError,
    UnsupportedFileTypeError,
    UnsupportedPlatformError,
)
from services.order_ingestion import OrderIngestionService

ACCOUNT = StoreAccountRef(id="acc-1", name="Main Shop", platform="shopee")

SHOPEE_CSV = (
    "No. Pesanan,No. Resi,Waktu Pesanan Dibuat,Nomor Referensi SKU,Nama Variasi,Jumlah,Harga Sebelum Diskon,Total Pembayaran\n"
    "ORD1,TRK1,01-02-2024 10:00,SKU1,\"RED, M\",2,5000,15000\n"
    "ORD1,TRK1,01-02-2024 10:00,SKU1,\"RED, M\",1,5000,15000\n"
    "ORD2,TRK2,01-02-2024 11:00,UNKNOWN,,1,5000,5000\n"
).encode("utf-8")


def _ingest(storage, content=SHOPEE_CSV, filename="orders.csv", platform="A"):
    service = OrderIngestionService(storage)
    return asyncio.run(service.ingest(content, filename, platform, ACCOUNT, "user-1"))


def test_ingest_persists_orders_items_and_stock(fake_storage):
    result = _ingest(fake_storage)

    assert result.to_dict()["newOrdersCount"] == 1
    assert (result.skipped_count, result.invalid_count, result.platform) == (0, 1, "shopee")

    upload = fake_storage.uploads[0]
    assert result.upload_id == upload.id
    assert upload.total_orders == 1
    assert upload.total_revenue == Decimal("15000")
    assert upload.account_name == "Main Shop"

    order = fake_storage.orders[0]
    assert (order.order_sn, order.daily_upload_id, order.status) == ("ORD1", upload.id, "processed")
    assert [(li["order_id"], li["quantity"]) for li in fake_storage.line_items] == [(order.id, 2), (order.id, 1)]
    assert fake_storage.stock["SKU1-RED-M"] == 7


def test_reingesting_same_file_is_idempotent(fake_storage):
    first = _ingest(fake_storage)
    second = _ingest(fake_storage)

    assert second.new_orders_count == 0
    assert second.skipped_count == first.new_orders_count
    assert len(fake_storage.uploads) == 1
    assert fake_storage.stock["SKU1-RED-M"] == 7


def test_header_only_file_is_empty(fake_storage):
    with pytest.raises(EmptyFileError):
        _ingest(fake_storage, content=SHOPEE_CSV.split(b"\n")[0] + b"\n")


def test_empty_catalog_rejected():
    with pytest.raises(EmptyCatalogError):
        _ingest(FakeStorage())


def test_unknown_platform_rejected(fake_storage):
    with pytest.raises(UnsupportedPlatformError):
        _ingest(fake_storage, platform="Z")


def test_unsupported_extension_rejected(fake_storage):
    with pytest.raises(UnsupportedFileTypeError):
        _ingest(fake_storage, filename="orders.pdf")


def test_storage_failure_stops_later_stages(fake_storage):
    fake_storage.fail_on.add("insert_orders")
    with pytest.raises(StorageError):
        _ingest(fake_storage)

    # upload batch stays; nothing after it ran
    assert len(fake_storage.uploads) == 1
    assert fake_storage.line_items == []
    assert fake_storage.stock_updates == []


def test_no_new_orders_writes_nothing(fake_storage):
    fake_storage.existing_order_ids.add("ORD1")
    result = _ingest(fake_storage)
    assert (result.new_orders_count, result.skipped_count, result.invalid_count) == (0, 1, 1)
    assert result.upload_id is None
    assert fake_storage.uploads == []
