# move_inventory/application/suggest_use_case.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional

from move_inventory.domain.barcode import BARCODE_PREFIX, digits_only, extract_barcode, extract_keyword, normalize_barcode
from move_inventory.domain.models import Suggestion
from move_inventory.domain.ports import BarcodeCatalogPort, CandidateGeneratorPort, SearchableCatalogPort
from move_inventory.domain.services.suggestion_aggregator import merge

logger = logging.getLogger("moveinv.suggest")

SCAN_COMMERCE_HITS = 4
SCAN_AI_RESULTS = 5
NAME_LOCAL_LIMIT = 8
NAME_COMMERCE_HITS = 6
NAME_AI_RESULTS = 5


def should_use_ai(*, raw_value: str, barcode: Optional[str], keyword: str) -> bool:
    """
    The generative model is skipped only for a scan that is a bare barcode
    with nothing else to go on.
    """
    if not barcode:
        return True
    if keyword:
        return True
    raw = (raw_value or "").strip()
    if not raw:
        return False
    if digits_only(raw) == digits_only(barcode):
        return False
    if raw.lower().startswith(BARCODE_PREFIX):
        return False
    return True


class SuggestProductsUseCase:
    """
    Fans one scan or name query out to every source concurrently, then merges.
    Sources never raise, so the fan-in is a plain gather.
    """

    def __init__(
        self,
        local: SearchableCatalogPort,
        open_catalog: BarcodeCatalogPort,
        commerce: SearchableCatalogPort,
        ai: CandidateGeneratorPort,
    ):
        self.local = local
        self.open_catalog = open_catalog
        self.commerce = commerce
        self.ai = ai

    async def suggest_from_scan(self, raw_value: str, barcode: Optional[str] = None) -> List[Suggestion]:
        raw = (raw_value or "").strip()
        if barcode is None:
            barcode = extract_barcode(raw)
        code = normalize_barcode(barcode) or ((barcode or "").strip() or None)
        keyword = extract_keyword(raw)

        calls: List[Awaitable[List[Suggestion]]] = []
        if code:
            calls += [
                self.local.lookup_by_barcode(code),
                self.open_catalog.lookup_by_barcode(code, hits=1),
                self.commerce.lookup_by_barcode(code, hits=SCAN_COMMERCE_HITS),
            ]
        if keyword:
            calls.append(self.commerce.lookup_by_keyword(keyword, hits=SCAN_COMMERCE_HITS, preferred_barcode=code))

        use_ai = should_use_ai(raw_value=raw, barcode=code, keyword=keyword)
        if use_ai:
            calls.append(self.ai.suggest(
                raw_input=raw, barcode_hint=code, name_hint=keyword or None, max_results=SCAN_AI_RESULTS
            ))

        results = await asyncio.gather(*calls)
        merged = merge(s for batch in results for s in batch)
        logger.info(
            "[suggest] scan raw=%r barcode=%s keyword=%r ai=%s -> %d candidates",
            raw[:80], code, keyword, use_ai, len(merged),
        )
        return merged

    async def suggest_by_name(self, query: str) -> List[Suggestion]:
        q = (query or "").strip()
        if not q:
            return []

        results = await asyncio.gather(
            self.local.lookup_by_keyword(q, hits=NAME_LOCAL_LIMIT),
            self.commerce.lookup_by_keyword(q, hits=NAME_COMMERCE_HITS),
            self.ai.suggest(raw_input=q, name_hint=q, max_results=NAME_AI_RESULTS),
        )

        merged = merge(s for batch in results for s in batch)
        logger.info("[suggest] name query=%r -> %d candidates", q, len(merged))
        return merged
