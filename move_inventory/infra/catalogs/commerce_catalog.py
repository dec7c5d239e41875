# move_inventory/infra/catalogs/commerce_catalog.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from move_inventory.config import Settings, is_likely_application_id, normalize_credential
from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.models import Suggestion
from move_inventory.domain.ports import (
    ConnectionTestResult, LookupResult, SearchableCatalogPort
)
from move_inventory.domain.rules import infer_category

log = logging.getLogger("moveinv.catalog.commerce")

SEARCH_URL = "https://openapi.rakuten.co.jp/ichibams/api/IchibaItem/Search/20170706"

SOURCE_BARCODE = "Commerce API(barcode)"
SOURCE_KEYWORD = "Commerce API(keyword)"
BASE_CONFIDENCE_BARCODE = 0.92
BASE_CONFIDENCE_KEYWORD = 0.74
PING_KEYWORD = "テスト"

BARCODE_FIELDS = ("jan", "JAN", "isbn", "ISBN", "itemCode")

_AFFILIATE_RX = re.compile(r"[0-9a-fA-F]{8}\.[0-9a-fA-F]{8}\.[0-9a-fA-F]{8}\.[0-9a-fA-F]{8}")
_TAGS = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class ConfidenceDecay:
    """Per-rank confidence policy: base - step*rank, clamped to [floor, ceiling]."""
    step: float = 0.05
    floor: float = 0.45
    ceiling: float = 0.99

    def at(self, base: float, rank: int) -> float:
        return max(self.floor, min(self.ceiling, base - rank * self.step))


def is_likely_affiliate_id(value: str) -> bool:
    return bool(_AFFILIATE_RX.fullmatch(normalize_credential(value)))


def strip_html(text: str) -> str:
    s = _TAGS.sub(" ", text).replace("&nbsp;", " ")
    return _SPACES.sub(" ", s).strip()


def _to_float(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v)
        except ValueError:
            return None
    return None


def _api_error(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    parts = [
        str(body.get(k)).strip()
        for k in ("error_description", "error")
        if body.get(k) is not None and str(body.get(k)).strip()
    ]
    return " / ".join(parts) or None


def _short(e: Exception, n: int = 120) -> str:
    s = str(e).strip() or type(e).__name__
    return s if len(s) <= n else s[:n] + "..."


class CommerceCatalogClient(SearchableCatalogPort):
    """Keyword / barcode item search on the Rakuten Ichiba API."""

    def __init__(
        self,
        settings: Settings,
        *,
        decay: Optional[ConfidenceDecay] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.application_id = normalize_credential(settings.rakuten_application_id)
        self.access_key = normalize_credential(settings.rakuten_access_key)
        self.affiliate_id = normalize_credential(settings.rakuten_affiliate_id)
        self.timeout = settings.network_timeout_s
        self.decay = decay or ConfidenceDecay(
            settings.commerce_decay_step, settings.commerce_decay_floor, settings.commerce_decay_ceiling
        )
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _params(self, *, keyword: str, hits: int, affiliate_id: str = "", sort: Optional[str] = None,
                application_id: Optional[str] = None, access_key: Optional[str] = None) -> Dict[str, str]:
        params = {
            "applicationId": application_id or self.application_id,
            "accessKey": access_key or self.access_key,
            "format": "json",
            "keyword": keyword,
            "hits": str(hits),
        }
        if sort:
            params["sort"] = sort
        if affiliate_id:
            params["affiliateId"] = affiliate_id
        return params

    # ──────────────────────────────────────────────────────────────
    #  Search
    # ──────────────────────────────────────────────────────────────
    async def lookup_by_barcode(self, barcode: str, hits: int = 3) -> List[Suggestion]:
        code = (barcode or "").strip()
        if normalize_barcode(code) != code:
            return []
        return await self._search(code, hits=hits, source=SOURCE_BARCODE,
                                  base=BASE_CONFIDENCE_BARCODE, preferred_barcode=code)

    async def lookup_by_keyword(
        self, keyword: str, hits: int = 5, preferred_barcode: Optional[str] = None
    ) -> List[Suggestion]:
        q = (keyword or "").strip()
        if not q:
            return []
        return await self._search(q, hits=hits, source=SOURCE_KEYWORD, base=BASE_CONFIDENCE_KEYWORD,
                                  preferred_barcode=(preferred_barcode or "").strip() or None)

    async def _search(self, keyword: str, *, hits: int, source: str, base: float,
                      preferred_barcode: Optional[str]) -> List[Suggestion]:
        res = await self._search_result(keyword, hits=hits, source=source, base=base,
                                        preferred_barcode=preferred_barcode)
        if not res.ok:
            log.warning("[commerce] keyword=%r source=%s error=%s", keyword, source, res.error)
            return []
        log.info("[commerce] keyword=%r source=%s hits=%d", keyword, source, len(res.suggestions))
        return res.suggestions

    async def _search_result(self, keyword: str, *, hits: int, source: str, base: float,
                             preferred_barcode: Optional[str]) -> LookupResult:
        if not self.application_id or not self.access_key:
            return LookupResult.failure("credentials not configured")

        params = self._params(keyword=keyword, hits=max(1, min(10, hits)), sort="+itemPrice")
        try:
            async with self._client() as client:
                r = await client.get(SEARCH_URL, params=params, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            return LookupResult.failure(f"{type(e).__name__}: {_short(e)}")

        if r.status_code != 200:
            return LookupResult.failure(f"HTTP {r.status_code}")
        try:
            body = r.json()
        except ValueError as e:
            return LookupResult.failure(f"invalid JSON: {_short(e)}")
        if not isinstance(body, dict):
            return LookupResult.success([])

        items = body.get("Items")
        if not isinstance(items, list):
            return LookupResult.success([])

        out: List[Suggestion] = []
        for rank, wrapper in enumerate(items):
            item = self._unwrap(wrapper)
            if item is None:
                continue
            s = self._to_suggestion(item, source=source, confidence=self.decay.at(base, rank),
                                    preferred_barcode=preferred_barcode)
            if s is not None:
                out.append(s)
        return LookupResult.success(out)

    # ──────────────────────────────────────────────────────────────
    #  Item mapping
    # ──────────────────────────────────────────────────────────────
    @staticmethod
    def _unwrap(wrapper: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(wrapper, dict):
            return None
        nested = wrapper.get("Item")
        return nested if isinstance(nested, dict) else wrapper

    @staticmethod
    def _image_url(item: Dict[str, Any]) -> Optional[str]:
        urls = item.get("mediumImageUrls")
        if isinstance(urls, list) and urls:
            first = urls[0]
            if isinstance(first, dict):
                return (first.get("imageUrl") or None)
            if isinstance(first, str) and first:
                return first
        return None

    @staticmethod
    def _barcode(item: Dict[str, Any], preferred_barcode: Optional[str]) -> Optional[str]:
        for key in BARCODE_FIELDS:
            raw = item.get(key)
            code = normalize_barcode(raw) if isinstance(raw, str) else None
            if code:
                return code
        return normalize_barcode(preferred_barcode)

    def _to_suggestion(self, item: Dict[str, Any], *, source: str, confidence: float,
                       preferred_barcode: Optional[str]) -> Optional[Suggestion]:
        name = item.get("itemName")
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            return None

        caption = item.get("itemCaption")
        description = strip_html(caption) if isinstance(caption, str) else None
        shop = item.get("shopName")

        return Suggestion(
            name=name,
            barcode=self._barcode(item, preferred_barcode),
            category=infer_category(f"{name} {description or ''}"),
            price=_to_float(item.get("itemPrice")),
            description=description or None,
            image_url=self._image_url(item),
            brand=shop.strip() if isinstance(shop, str) and shop.strip() else None,
            source=source,
            confidence=confidence,
            reason="commerce search result",
        )

    # ──────────────────────────────────────────────────────────────
    #  Connectivity self-test
    # ──────────────────────────────────────────────────────────────
    async def test_connection(
        self,
        *,
        application_id: Optional[str] = None,
        access_key: Optional[str] = None,
        affiliate_id: Optional[str] = None,
    ) -> ConnectionTestResult:
        app_id = normalize_credential(application_id if application_id is not None else self.application_id)
        if not app_id:
            return ConnectionTestResult.ng("Commerce application id is not configured")
        if not is_likely_application_id(app_id):
            return ConnectionTestResult.ng(
                "Commerce application id looks like a publishable pk_ key, not an application id"
            )
        key = normalize_credential(access_key if access_key is not None else self.access_key)
        if not key:
            return ConnectionTestResult.ng("Commerce access key is not configured")

        affiliate = normalize_credential(affiliate_id if affiliate_id is not None else self.affiliate_id)
        primary = await self._ping_search(app_id, key, affiliate if is_likely_affiliate_id(affiliate) else "")
        if primary.success or not affiliate:
            return primary

        retry = await self._ping_search(app_id, key, "")
        if retry.success:
            if is_likely_affiliate_id(affiliate):
                return ConnectionTestResult.ok("Commerce API OK (succeeded without affiliate id)")
            return ConnectionTestResult.ok("Commerce API OK (affiliate id malformed, not used)")
        return primary

    async def _ping_search(self, app_id: str, key: str, affiliate: str) -> ConnectionTestResult:
        params = self._params(keyword=PING_KEYWORD, hits=1, affiliate_id=affiliate,
                              application_id=app_id, access_key=key)
        try:
            async with self._client() as client:
                r = await client.get(SEARCH_URL, params=params, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            return ConnectionTestResult.ng(f"Commerce API request failed: {_short(e)}")

        try:
            body = r.json()
        except ValueError:
            body = None

        if r.status_code != 200:
            err = _api_error(body)
            msg = f"Commerce API connection failed (HTTP {r.status_code})"
            return ConnectionTestResult.ng(f"{msg}: {err}" if err else msg)
        if not isinstance(body, dict):
            return ConnectionTestResult.ng("Commerce API response has an unexpected shape")
        err = _api_error(body)
        if err:
            return ConnectionTestResult.ng(f"Commerce API error: {err}")
        return ConnectionTestResult.ok("Commerce API OK")
