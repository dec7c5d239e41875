# move_inventory/presentation/schemas.py
from __future__ import annotations
from typing import List

from pydantic import BaseModel, Field
from move_inventory.domain.models import Product


# ── FLOW ─────────────────────────────────────────────────────────
class ScanRequest(BaseModel):
    raw_value: str = Field(..., description="Raw scanner payload (barcode digits, URL, QR text)")
    format: str = Field("unknown", description="Scanner format tag, e.g. ean_13, qr_code")


class SearchRequest(BaseModel):
    query: str = Field(..., description="Product name typed by the operator")


class PickRequest(BaseModel):
    index: int = Field(..., ge=0, description="Position in the presented suggestion list")


class ConfirmRequest(BaseModel):
    product: Product
    analyze: bool = Field(True, description="Run the moving analysis when the product has none")


# ── CONNECTIONS ──────────────────────────────────────────────────
class ConnectionStatus(BaseModel):
    success: bool
    message: str


class ConnectionsResponse(BaseModel):
    commerce: ConnectionStatus
    ai: ConnectionStatus


# ── PRODUCTS ─────────────────────────────────────────────────────
class BatchAnalyzeResponse(BaseModel):
    analyzed: int
    products: List[Product]
