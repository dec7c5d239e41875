# move_inventory/domain/models.py
from __future__ import annotations

import datetime as dt
import math
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from move_inventory.domain.errors import InvalidProductInput

PRODUCT_CATEGORIES = [
    "食品・飲料",
    "家電・AV機器",
    "家具・インテリア",
    "衣類・ファッション",
    "本・雑誌",
    "ゲーム・おもちゃ",
    "日用品・消耗品",
    "化粧品・美容",
    "スポーツ・アウトドア",
    "その他",
]
DEFAULT_CATEGORY = "その他"

MovingDecision = Literal["keep", "parents_home", "discard", "sell"]
MOVING_DECISIONS = ["keep", "parents_home", "discard", "sell"]

UNNAMED_PRODUCT = "Unnamed item"
MAX_PRODUCT_NAME_LENGTH = 100

_BARCODE_RX = re.compile(r"[0-9]{8,18}")

# Scanner format tags that carry 2D (matrix) symbols rather than linear barcodes.
MATRIX_FORMATS = {"qr_code", "data_matrix", "aztec", "pdf417"}


def _clamp01(value) -> Optional[float]:
    # NaN / inf count as "no value"
    number = float(value)
    if not math.isfinite(number):
        return None
    return max(0.0, min(1.0, number))


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Product(BaseModel):
    id: Optional[int] = None
    barcode: str = ""
    name: str = ""
    category: str = DEFAULT_CATEGORY
    price: Optional[float] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    brand: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    # AI analysis
    moving_decision: Optional[MovingDecision] = None
    storage_location: Optional[str] = None
    analysis_notes: Optional[str] = None
    ai_confidence: Optional[float] = None

    # Inventory
    quantity: int = Field(1, ge=1)
    location: Optional[str] = None
    is_scanned: bool = True
    notes: Optional[str] = None

    @field_validator("ai_confidence", mode="before")
    @classmethod
    def _clamp_ai_confidence(cls, v):
        return None if v is None else _clamp01(v)

    @property
    def has_ai_analysis(self) -> bool:
        return self.moving_decision is not None

    def validate_for_persistence(self) -> None:
        if not (self.name or "").strip():
            raise InvalidProductInput("name", "Product name is required")
        if len(self.name.strip()) > MAX_PRODUCT_NAME_LENGTH:
            raise InvalidProductInput(
                "name", f"Product name must be at most {MAX_PRODUCT_NAME_LENGTH} characters"
            )
        if not _BARCODE_RX.fullmatch((self.barcode or "").strip()):
            raise InvalidProductInput("barcode", "Barcode must be 8-18 digits")
        if self.category not in PRODUCT_CATEGORIES:
            raise InvalidProductInput("category", f"Unknown category: {self.category}")


class Suggestion(BaseModel):
    """Transient candidate from one source. Never written to the store as-is."""
    name: str
    barcode: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    price: Optional[float] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    brand: Optional[str] = None
    source: str
    confidence: float = 0.5
    reason: Optional[str] = None
    existing_product_id: Optional[int] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        clamped = None if v is None else _clamp01(v)
        return 0.5 if clamped is None else clamped

    @property
    def has_valid_barcode(self) -> bool:
        return bool(self.barcode) and bool(_BARCODE_RX.fullmatch(self.barcode.strip()))

    @property
    def dedup_key(self) -> str:
        if self.barcode:
            return f"b:{self.barcode}"
        return f"n:{self.name.strip().lower()}"

    @classmethod
    def from_product(
        cls,
        product: Product,
        *,
        source: str,
        confidence: float = 1.0,
        reason: Optional[str] = None,
    ) -> "Suggestion":
        return cls(
            name=product.name,
            barcode=product.barcode,
            category=product.category,
            price=product.price,
            description=product.description,
            image_url=product.image_url,
            brand=product.brand,
            source=source,
            confidence=confidence,
            reason=reason,
            existing_product_id=product.id,
        )

    def resolve_barcode(self, fallback: Optional[str] = None) -> Optional[str]:
        for raw in (self.barcode, fallback):
            if raw is None:
                continue
            compact = re.sub(r"[^0-9]", "", raw)
            if _BARCODE_RX.fullmatch(compact):
                return compact
        return None

    def to_draft(self, *, fallback_barcode: Optional[str] = None, raw_input: Optional[str] = None) -> Product:
        """
        Draft product for operator confirmation. Barcode is left empty when neither
        the suggestion nor the scan hint carries a valid one.
        """
        notes = [f"Source: {self.source}"]
        if self.reason and self.reason.strip():
            notes.append(self.reason.strip())
        if raw_input and raw_input.strip():
            notes.append(f"Input: {raw_input.strip()}")

        description = (self.description or "").strip() or None
        return Product(
            barcode=self.resolve_barcode(fallback_barcode) or "",
            name=self.name.strip() or UNNAMED_PRODUCT,
            category=self.category if self.category in PRODUCT_CATEGORIES else DEFAULT_CATEGORY,
            price=self.price,
            description=description,
            image_url=self.image_url,
            brand=self.brand,
            notes=" / ".join(notes),
        )


class ScanPayload(BaseModel):
    raw_value: str
    format: str = "unknown"

    @property
    def is_matrix_code(self) -> bool:
        return self.format.strip().lower() in MATRIX_FORMATS
