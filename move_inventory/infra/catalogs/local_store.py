# move_inventory/infra/catalogs/local_store.py
from __future__ import annotations

import logging
from typing import List, Optional

from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.models import Suggestion
from move_inventory.domain.ports import (
    LookupResult, RecordStorePort, SearchableCatalogPort
)

log = logging.getLogger("moveinv.catalog.local")

SOURCE = "Local DB"
NAME_SEARCH_LIMIT = 8


class LocalStoreCatalog(SearchableCatalogPort):
    """Suggestions backed by records already in the store (confidence 1.0)."""

    def __init__(self, store: RecordStorePort):
        self.store = store

    async def _by_barcode(self, barcode: str) -> LookupResult:
        code = normalize_barcode(barcode)
        if not code:
            return LookupResult.success([])
        try:
            product = await self.store.find_by_barcode(code)
        except Exception as e:
            return LookupResult.failure(f"find_by_barcode failed: {e}")
        if product is None:
            return LookupResult.success([])
        return LookupResult.success([
            Suggestion.from_product(product, source=SOURCE, confidence=1.0, reason="barcode match")
        ])

    async def _by_keyword(self, keyword: str, limit: int) -> LookupResult:
        q = (keyword or "").strip()
        if not q:
            return LookupResult.success([])
        try:
            products = await self.store.search_by_text(q, limit=limit)
        except Exception as e:
            return LookupResult.failure(f"search_by_text failed: {e}")
        return LookupResult.success([
            Suggestion.from_product(p, source=SOURCE, confidence=1.0, reason="already registered")
            for p in products[:limit]
        ])

    async def lookup_by_barcode(self, barcode: str, hits: int = 1) -> List[Suggestion]:
        res = await self._by_barcode(barcode)
        if not res.ok:
            log.warning("[local] barcode=%s error=%s", barcode, res.error)
        return res.suggestions

    async def lookup_by_keyword(
        self, keyword: str, hits: int = NAME_SEARCH_LIMIT, preferred_barcode: Optional[str] = None
    ) -> List[Suggestion]:
        res = await self._by_keyword(keyword, max(1, hits))
        if not res.ok:
            log.warning("[local] keyword=%r error=%s", keyword, res.error)
        return res.suggestions
