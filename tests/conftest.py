import sys
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas import CatalogVariant
from services.duplicate_filter import build_existing_id_set
from services.errors import StorageError


class FakeStorage:
    """In-memory stand-in for StorageService, recording every write."""

    def __init__(self, catalog=None, existing_order_ids=(), accounts=None):
        self.catalog = list(catalog or [])
        self.stock = {v.sku_variant: v.stock for v in self.catalog}
        self.existing_order_ids = set(existing_order_ids)
        self.accounts = dict(accounts or {})
        self.uploads = []
        self.orders = []
        self.line_items = []
        self.stock_updates = []
        self.history = []
        self.fail_on = set()

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise StorageError(operation, "simulated failure")

    async def fetch_catalog(self, user_id):
        self._maybe_fail("fetch_catalog")
        return [replace(v, stock=self.stock[v.sku_variant]) for v in self.catalog]

    async def fetch_existing_order_ids(self, user_id):
        return build_existing_id_set(self.existing_order_ids)

    async def insert_upload_batch(self, record):
        self._maybe_fail("insert_upload_batch")
        upload = SimpleNamespace(id=str(uuid.uuid4()), created_at=datetime.now(timezone.utc), **record)
        self.uploads.append(upload)
        return upload

    async def insert_orders(self, records):
        self._maybe_fail("insert_orders")
        inserted = []
        for record in records:
            row = SimpleNamespace(id=str(uuid.uuid4()), **record)
            self.orders.append(row)
            self.existing_order_ids.add(record["order_sn"])
            inserted.append(row)
        return inserted

    async def insert_line_items(self, records):
        self._maybe_fail("insert_line_items")
        self.line_items.extend(records)

    async def fetch_variant_stock(self, sku_variants, user_id):
        return {sku: self.stock[sku] for sku in sku_variants if sku in self.stock}

    async def update_variant_stock(self, sku_variant, user_id, new_stock):
        if sku_variant in self.fail_on:
            raise RuntimeError(f"update rejected for {sku_variant}")
        self.stock_updates.append((sku_variant, new_stock))
        self.stock[sku_variant] = new_stock

    async def get_store_account(self, account_id, user_id):
        return self.accounts.get(account_id)

    async def get_recent_uploads(self, user_id, limit=10):
        return list(reversed(self.uploads))[:limit]

    async def get_variant(self, sku_variant, user_id):
        for v in self.catalog:
            if v.sku_variant == sku_variant.strip().upper():
                return SimpleNamespace(
                    id=f"id-{v.sku_variant}", sku_variant=v.sku_variant,
                    name=v.name, stock=self.stock[v.sku_variant],
                )
        return None

    async def apply_stock_movement(self, product_id, previous_stock, new_stock, history):
        sku = history["product_sku_variant"]
        if self.stock[sku] != previous_stock:
            return None
        self.stock[sku] = new_stock
        entry = SimpleNamespace(id=str(uuid.uuid4()), created_at=datetime.now(timezone.utc), **history)
        self.history.append(entry)
        return entry

    async def get_stock_history(self, user_id, limit=100):
        return list(reversed(self.history))[:limit]


def make_variant(sku_variant, sku, color=None, size=None, stock=10, cost_price="1000", name=None):
    return CatalogVariant(
        sku=sku,
        sku_variant=sku_variant,
        name=name or sku_variant,
        color=color,
        size=size,
        cost_price=Decimal(cost_price),
        category=None,
        stock=stock,
    )


@pytest.fixture
def sku1_catalog():
    return [make_variant("SKU1-RED-M", "SKU1", color="RED", size="M", stock=10)]


@pytest.fixture
def fake_storage(sku1_catalog):
    return FakeStorage(
        catalog=sku1_catalog,
        accounts={"acc-1": SimpleNamespace(id="acc-1", name="Main Shop", platform="shopee")},
    )
