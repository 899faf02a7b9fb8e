from decimal import Decimal

import pytest
from conftest import make_variant

from services.errors import UnsupportedPlatformError
from services.normalization import normalize_headers, rows_to_records
from services.platform_adapters import get_platform_config, process_orders
from services.variant_matcher import build_catalog_map

SHOPEE_HEADERS = [
    "No. Pesanan", "No. Resi", "Waktu Pesanan Dibuat", "Nomor Referensi SKU",
    "Nama Variasi", "Jumlah", "Harga Sebelum Diskon", "Total Pembayaran",
]


def _records(headers, rows):
    return rows_to_records(normalize_headers(headers), rows)


def _shopee_rows(*rows):
    return _records(SHOPEE_HEADERS, [list(r) for r in rows])


@pytest.fixture
def catalog_map(sku1_catalog):
    return build_catalog_map(sku1_catalog)


def test_two_rows_same_order_become_one_order(catalog_map):
    records = _shopee_rows(
        ("ORD1", "TRK1", "01-02-2024 10:00", "SKU1", "RED, M", "2", "5000", "15000"),
        ("ORD1", "TRK1", "01-02-2024 10:00", "SKU1", "RED, M", "1", "5000", "15000"),
    )
    result = process_orders("shopee", records, catalog_map, set())

    assert (len(result.new_orders), result.skipped_count, result.invalid_count) == (1, 0, 0)
    order = result.new_orders[0]
    assert order.order_sn == "ORD1"
    assert order.tracking_number == "TRK1"
    assert order.total == Decimal("15000")
    assert [i.sku_variant for i in order.items] == ["SKU1-RED-M", "SKU1-RED-M"]
    assert order.total_quantity == 3


def test_existing_order_is_skipped(catalog_map):
    records = _shopee_rows(
        ("ORD1", "TRK1", "", "SKU1", "RED, M", "2", "5000", "15000"),
        ("ORD1", "TRK1", "", "SKU1", "RED, M", "1", "5000", "15000"),
    )
    result = process_orders("shopee", records, catalog_map, {"ORD1"})
    assert (len(result.new_orders), result.skipped_count, result.invalid_count) == (0, 1, 0)


def test_one_unknown_sku_invalidates_whole_order(catalog_map):
    records = _shopee_rows(
        ("ORD1", "", "", "SKU1", "RED, M", "1", "5000", "10000"),
        ("ORD1", "", "", "UNKNOWN", "", "1", "5000", "10000"),
        ("ORD2", "", "", "SKU1", "RED, M", "1", "5000", "5000"),
    )
    result = process_orders("shopee", records, catalog_map, set())
    assert [o.order_sn for o in result.new_orders] == ["ORD2"]
    assert result.invalid_count == 1


@pytest.mark.parametrize("quantity,price", [("0", "5000"), ("-1", "5000"), ("abc", "5000"), ("1", "-5"), ("1", "free")])
def test_bad_quantity_or_price_invalidates_order(catalog_map, quantity, price):
    records = _shopee_rows(("ORD1", "", "", "SKU1", "RED, M", quantity, price, "0"))
    result = process_orders("shopee", records, catalog_map, set())
    assert result.new_orders == []
    assert result.invalid_count == 1


def test_missing_sku_invalidates_order(catalog_map):
    records = _shopee_rows(("ORD1", "", "", "", "RED, M", "1", "5000", "5000"))
    result = process_orders("shopee", records, catalog_map, set())
    assert result.invalid_count == 1


def test_unparseable_date_does_not_invalidate(catalog_map):
    records = _shopee_rows(("ORD1", "", "someday", "SKU1", "RED, M", "1", "5000", "5000"))
    result = process_orders("shopee", records, catalog_map, set())
    assert len(result.new_orders) == 1
    assert result.new_orders[0].order_creation_date is None


def test_lazada_rows_count_one_unit_each():
    catalog_map = build_catalog_map([make_variant("LZ-BLK", "LZ")])
    records = _records(
        ["orderNumber", "trackingCode", "createTime", "sellerSku", "paidPrice", "totalAmount"],
        [
            ["900001", "LZTRK", "2024-02-01 09:00", "LZ-BLK", "25000", ""],
            ["900001", "LZTRK", "2024-02-01 09:00", "LZ-BLK", "", ""],
        ],
    )
    result = process_orders("lazada", records, catalog_map, set())

    order = result.new_orders[0]
    assert [i.quantity for i in order.items] == [1, 1]
    assert [i.price for i in order.items] == [Decimal("25000"), Decimal("0")]
    # total falls back to paid price of the first row
    assert order.total == Decimal("25000")


def test_tiktok_strips_currency_formatting():
    catalog_map = build_catalog_map([make_variant("TT-01", "TT")])
    records = _records(
        ["Order ID", "Tracking ID", "Order Time", "Seller SKU", "Quantity", "SKU Price", "Order Subtotal"],
        [["577000111222333444", "TT-TRK", "05/03/2024 10:00:00 AM", "TT-01", "2", "Rp 1.250.000", "Rp 2.500.000"]],
    )
    result = process_orders("C", records, catalog_map, set())

    order = result.new_orders[0]
    assert order.order_sn == "577000111222333444"
    assert order.items[0].price == Decimal("1250000")
    assert order.total == Decimal("2500000")


def test_unknown_platform_raises():
    with pytest.raises(UnsupportedPlatformError):
        process_orders("amazon", [], {}, set())


def test_platform_aliases_resolve():
    assert get_platform_config("A").name == "shopee"
    assert get_platform_config("b").name == "lazada"
    assert get_platform_config(" TikTok Shop ").name == "tiktok"


def test_tiktok_blank_price_counts_as_zero():
    catalog_map = build_catalog_map([make_variant("TT-01", "TT")])
    records = _records(
        ["Order ID", "Seller SKU", "Quantity", "SKU Price", "Order Subtotal"],
        [["1", "TT-01", "2", "", "0"]],
    )
    result = process_orders("tiktok", records, catalog_map, set())

    assert (len(result.new_orders), result.invalid_count) == (1, 0)
    assert result.new_orders[0].items[0].price == Decimal("0")


def test_lazada_zero_total_falls_back_to_paid_price():
    catalog_map = build_catalog_map([make_variant("LZ-BLK", "LZ")])
    records = _records(
        ["orderNumber", "sellerSku", "paidPrice", "totalAmount"],
        [["900002", "LZ-BLK", 18000, 0]],
    )
    result = process_orders("lazada", records, catalog_map, set())
    assert result.new_orders[0].total == Decimal("18000")
