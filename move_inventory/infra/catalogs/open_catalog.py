# move_inventory/infra/catalogs/open_catalog.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

import httpx

from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.models import Suggestion
from move_inventory.domain.ports import BarcodeCatalogPort, LookupResult

log = logging.getLogger("moveinv.catalog.open")

FIELDS = (
    "code,product_name,product_name_ja,product_name_en,generic_name,generic_name_ja,"
    "brands,categories,quantity,image_url"
)
# localized name > generic name > English name
NAME_KEYS = ("product_name_ja", "product_name", "generic_name_ja", "generic_name", "product_name_en")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class CatalogDescriptor:
    host: str
    source: str
    default_category: str


CATALOGS: List[CatalogDescriptor] = [
    CatalogDescriptor("world.openfoodfacts.org", "OpenFoodFacts(barcode)", "食品・飲料"),
    CatalogDescriptor("world.openbeautyfacts.org", "OpenBeautyFacts(barcode)", "化粧品・美容"),
    CatalogDescriptor("world.openpetfoodfacts.org", "OpenPetFoodFacts(barcode)", "日用品・消耗品"),
    CatalogDescriptor("world.openproductsfacts.org", "OpenProductsFacts(barcode)", "その他"),
]

D = TypeVar("D")


async def first_hit(
    descriptors: Iterable[D],
    fetch: Callable[[D], Awaitable[LookupResult]],
) -> LookupResult:
    """
    Try each descriptor in order and stop at the first one that yields
    suggestions. Failures are remembered but do not stop the walk.
    """
    errors: List[str] = []
    for d in descriptors:
        res = await fetch(d)
        if res.ok and res.suggestions:
            return res
        if not res.ok and res.error:
            errors.append(res.error)
    if errors:
        return LookupResult.failure("; ".join(errors))
    return LookupResult.success([])


def _text(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class OpenCatalogClient(BarcodeCatalogPort):
    """Barcode lookups against the Open*Facts family, first catalog with a hit wins."""

    def __init__(
        self,
        *,
        catalogs: Optional[List[CatalogDescriptor]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.catalogs = list(catalogs or CATALOGS)
        self.timeout = timeout
        self.transport = transport

    def _to_suggestion(self, product: Dict[str, Any], barcode: str, catalog: CatalogDescriptor) -> Optional[Suggestion]:
        name = next((t for t in (_text(product.get(k)) for k in NAME_KEYS) if t), None)
        if not name:
            return None

        quantity = _text(product.get("quantity"))
        categories = _text(product.get("categories"))
        parts = []
        if quantity:
            parts.append(f"Quantity: {quantity}")
        if categories:
            parts.append("Categories: " + _SPACES.sub(" ", categories))

        return Suggestion(
            name=name,
            barcode=barcode,
            category=catalog.default_category,
            description=" / ".join(parts) or None,
            image_url=_text(product.get("image_url")),
            brand=_text(product.get("brands")),
            source=catalog.source,
            confidence=0.95,
            reason="barcode match",
        )

    async def _fetch(self, client: httpx.AsyncClient, barcode: str, catalog: CatalogDescriptor) -> LookupResult:
        url = f"https://{catalog.host}/api/v2/product/{barcode}.json"
        try:
            res = await client.get(url, params={"fields": FIELDS}, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            return LookupResult.failure(f"{catalog.host}: {type(e).__name__}: {e}")

        # 404 is the normal "unknown barcode" answer
        if res.status_code != 200:
            return LookupResult.success([])
        try:
            body = res.json()
        except ValueError as e:
            return LookupResult.failure(f"{catalog.host}: invalid JSON: {e}")

        if not isinstance(body, dict) or body.get("status") != 1:
            return LookupResult.success([])
        product = body.get("product")
        if not isinstance(product, dict):
            return LookupResult.success([])

        s = self._to_suggestion(product, barcode, catalog)
        return LookupResult.success([s] if s else [])

    async def _lookup(self, barcode: str) -> LookupResult:
        code = normalize_barcode(barcode)
        if not code:
            return LookupResult.success([])
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await first_hit(self.catalogs, lambda c: self._fetch(client, code, c))

    async def lookup_by_barcode(self, barcode: str, hits: int = 1) -> List[Suggestion]:
        if hits <= 0:
            return []
        try:
            res = await self._lookup(barcode)
        except Exception as e:
            log.warning("[open-catalog] barcode=%s unexpected error: %s", barcode, e)
            return []
        if not res.ok:
            log.warning("[open-catalog] barcode=%s error=%s", barcode, res.error)
            return []
        log.info("[open-catalog] barcode=%s hits=%d", barcode, len(res.suggestions))
        return res.suggestions[:hits]
