# move_inventory/domain/ports.py
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from move_inventory.domain.models import Product, Suggestion


@dataclass
class LookupResult:
    """
    Outcome of one catalog call. Clients keep the failure reason for logging;
    callers only ever see `.suggestions` (empty on failure).
    """
    ok: bool
    suggestions: List[Suggestion] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def success(cls, suggestions: List[Suggestion]) -> "LookupResult":
        return cls(ok=True, suggestions=list(suggestions))

    @classmethod
    def failure(cls, error: str) -> "LookupResult":
        return cls(ok=False, error=error)


@dataclass
class ConnectionTestResult:
    success: bool
    message: str

    @classmethod
    def ok(cls, message: str = "Connection OK") -> "ConnectionTestResult":
        return cls(True, message)

    @classmethod
    def ng(cls, message: str) -> "ConnectionTestResult":
        return cls(False, message)


class RecordStorePort(ABC):
    """Keyed product table. "Not found" is None / [], never an exception."""
    @abstractmethod
    async def find_by_barcode(self, barcode: str) -> Optional[Product]: ...

    @abstractmethod
    async def find_by_id(self, product_id: int) -> Optional[Product]: ...

    @abstractmethod
    async def search_by_text(self, query: str, limit: int = 8) -> List[Product]: ...

    @abstractmethod
    async def list_unanalyzed(self, limit: int = 100) -> List[Product]: ...

    @abstractmethod
    async def insert(self, product: Product) -> int: ...

    @abstractmethod
    async def update(self, product: Product) -> int: ...


class BarcodeCatalogPort(ABC):
    @abstractmethod
    async def lookup_by_barcode(self, barcode: str, hits: int = 1) -> List[Suggestion]: ...


class KeywordCatalogPort(ABC):
    @abstractmethod
    async def lookup_by_keyword(
        self, keyword: str, hits: int = 5, preferred_barcode: Optional[str] = None
    ) -> List[Suggestion]: ...


class SearchableCatalogPort(BarcodeCatalogPort, KeywordCatalogPort):
    """Catalog answering both barcode and keyword lookups."""


class CandidateGeneratorPort(ABC):
    @abstractmethod
    async def suggest(
        self,
        raw_input: str,
        barcode_hint: Optional[str] = None,
        name_hint: Optional[str] = None,
        max_results: int = 4,
    ) -> List[Suggestion]: ...

    @abstractmethod
    async def analyze(self, product: Product) -> Product: ...


class FlowSessionPort(ABC):
    @abstractmethod
    async def load(self, flow_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def save(self, flow_id: str, data: Dict[str, Any]) -> None: ...
