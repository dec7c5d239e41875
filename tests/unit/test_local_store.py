# tests/unit/test_local_store.py
import asyncio

from fakes import FakeStore
from move_inventory.domain.models import Product
from move_inventory.infra.catalogs.local_store import LocalStoreCatalog


class BrokenStore(FakeStore):
    async def find_by_barcode(self, barcode):
        raise RuntimeError("db locked")

    async def search_by_text(self, query, limit=8):
        raise RuntimeError("db locked")


def _store():
    return FakeStore([
        Product(id=1, name="Drip Coffee", barcode="4901234567894", description="200g"),
        Product(id=2, name="Coffee Mug", barcode="49012345"),
        Product(id=3, name="Desk Lamp", barcode="45678901"),
    ])


def test_barcode_hit_carries_existing_id():
    out = asyncio.run(LocalStoreCatalog(_store()).lookup_by_barcode("4901234567894"))
    assert len(out) == 1
    s = out[0]
    assert (s.existing_product_id, s.confidence, s.source, s.reason) == (1, 1.0, "Local DB", "barcode match")


def test_barcode_miss_and_invalid_code():
    cat = LocalStoreCatalog(_store())
    assert asyncio.run(cat.lookup_by_barcode("11111111")) == []
    assert asyncio.run(cat.lookup_by_barcode("abc")) == []


def test_keyword_search_is_case_insensitive():
    out = asyncio.run(LocalStoreCatalog(_store()).lookup_by_keyword("COFFEE"))
    assert {s.existing_product_id for s in out} == {1, 2}
    assert all(s.reason == "already registered" for s in out)


def test_store_failures_become_empty_lists(caplog):
    cat = LocalStoreCatalog(BrokenStore())
    assert asyncio.run(cat.lookup_by_barcode("4901234567894")) == []
    assert asyncio.run(cat.lookup_by_keyword("coffee")) == []
    assert "db locked" in caplog.text
