# move_inventory/application/resolution_flow.py
from __future__ import annotations

import asyncio
import datetime as dt
import logging
import uuid
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from move_inventory.application.suggest_use_case import SuggestProductsUseCase
from move_inventory.domain.barcode import extract_barcode, extract_keyword, normalize_barcode
from move_inventory.domain.errors import (
    FlowNotFound, InvalidFlowTransition, InvalidProductInput, ProductPersistenceError
)
from move_inventory.domain.models import DEFAULT_CATEGORY, Product, ScanPayload, Suggestion, utcnow
from move_inventory.domain.ports import CandidateGeneratorPort, FlowSessionPort, RecordStorePort

logger = logging.getLogger("moveinv.flow")

MANUAL_NAME_MATRIX = "QR item"
MANUAL_NAME_SCAN = "Scanned item"

BATCH_LIMIT = 100
BATCH_PAUSE_S = 0.5


class FlowState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    PRESENTING = "presenting"
    NO_CANDIDATES = "no_candidates"
    RESOLVED = "resolved"
    MANUAL_DRAFT = "manual_draft"
    CANCELLED = "cancelled"
    SAVED = "saved"


SEARCHABLE = {FlowState.IDLE, FlowState.PRESENTING, FlowState.NO_CANDIDATES}
DRAFTABLE = {FlowState.PRESENTING, FlowState.NO_CANDIDATES}
CONFIRMABLE = {FlowState.RESOLVED, FlowState.MANUAL_DRAFT}
TERMINAL = {FlowState.CANCELLED, FlowState.SAVED}


class Resolution(BaseModel):
    """
    What the operator ended up with. `existing` records come back unchanged;
    `draft` and `manual` products still need a confirm before they are stored.
    """
    kind: Literal["existing", "draft", "manual"]
    product: Product


class FlowSession(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    state: FlowState = FlowState.IDLE
    mode: Optional[Literal["scan", "name"]] = None
    raw_input: str = ""
    scan_format: Optional[str] = None
    is_matrix_code: bool = False
    barcode_hint: Optional[str] = None
    name_hint: Optional[str] = None
    search_token: Optional[str] = None
    suggestions: List[Suggestion] = Field(default_factory=list)
    printable_payload: Optional[str] = None
    resolution: Optional[Resolution] = None
    product_id: Optional[int] = None
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class ResolutionFlow:
    """
    Operator-driven resolution of one scan or name query.

    Idle -> Searching -> Presenting | NoCandidates -> Resolved | ManualDraft | Cancelled,
    then confirm() persists a Resolved / ManualDraft product (state Saved).
    Sessions live in the FlowSessionPort so each step can be a separate request.
    """

    def __init__(
        self,
        suggest: SuggestProductsUseCase,
        store: RecordStorePort,
        sessions: FlowSessionPort,
        analyzer: CandidateGeneratorPort,
    ):
        self.suggest = suggest
        self.store = store
        self.sessions = sessions
        self.analyzer = analyzer

    # ──────────────────────────────────────────────────────────────
    #  Session plumbing
    # ──────────────────────────────────────────────────────────────
    async def start(self) -> FlowSession:
        session = FlowSession()
        await self._save(session)
        logger.info("[flow] %s started", session.id)
        return session

    async def get(self, flow_id: str) -> FlowSession:
        data = await self.sessions.load(flow_id)
        if not data:
            raise FlowNotFound(flow_id)
        return FlowSession.model_validate(data)

    async def _save(self, session: FlowSession) -> None:
        session.updated_at = utcnow()
        await self.sessions.save(session.id, session.model_dump(mode="json"))

    @staticmethod
    def _require(session: FlowSession, allowed: set, action: str) -> None:
        if session.state not in allowed:
            raise InvalidFlowTransition(session.state.value, action)

    # ──────────────────────────────────────────────────────────────
    #  Searching
    # ──────────────────────────────────────────────────────────────
    async def scan(self, flow_id: str, payload: ScanPayload) -> FlowSession:
        session = await self.get(flow_id)
        self._require(session, SEARCHABLE, "scan")

        raw = payload.raw_value.strip()
        session.mode = "scan"
        session.raw_input = raw
        session.scan_format = payload.format
        session.is_matrix_code = payload.is_matrix_code
        session.barcode_hint = extract_barcode(raw)
        session.name_hint = extract_keyword(raw) or None
        return await self._run_search(
            session, lambda: self.suggest.suggest_from_scan(raw, barcode=session.barcode_hint)
        )

    async def search(self, flow_id: str, query: str) -> FlowSession:
        session = await self.get(flow_id)
        self._require(session, SEARCHABLE, "search")

        q = (query or "").strip()
        if not q:
            raise InvalidProductInput("query", "Search query is required")
        session.mode = "name"
        session.raw_input = q
        session.scan_format = None
        session.is_matrix_code = False
        session.barcode_hint = None
        session.name_hint = q
        return await self._run_search(session, lambda: self.suggest.suggest_by_name(q))

    async def _run_search(self, session: FlowSession, fan_out) -> FlowSession:
        token = uuid.uuid4().hex
        session.state = FlowState.SEARCHING
        session.search_token = token
        session.suggestions = []
        session.printable_payload = None
        session.resolution = None
        await self._save(session)

        try:
            suggestions = await fan_out()
        except Exception:
            # sources are expected to absorb their own failures
            logger.exception("[flow] %s fan-out failed", session.id)
            suggestions = []

        # the operator may have cancelled while sources were still answering
        current = await self.get(session.id)
        if current.state != FlowState.SEARCHING or current.search_token != token:
            logger.info("[flow] %s results discarded (state=%s)", session.id, current.state.value)
            return current

        session.suggestions = suggestions
        if suggestions:
            session.state = FlowState.PRESENTING
        else:
            session.state = FlowState.NO_CANDIDATES
            if session.is_matrix_code:
                session.printable_payload = session.raw_input
        await self._save(session)
        logger.info("[flow] %s %s -> %s (%d)", session.id, session.mode, session.state.value, len(suggestions))
        return session

    # ──────────────────────────────────────────────────────────────
    #  Resolving
    # ──────────────────────────────────────────────────────────────
    async def _find_existing(self, suggestion: Suggestion, fallback_barcode: Optional[str]) -> Optional[Product]:
        if suggestion.existing_product_id is not None:
            found = await self.store.find_by_id(suggestion.existing_product_id)
            if found is not None:
                return found
        barcode = suggestion.resolve_barcode(fallback_barcode)
        if barcode is None:
            return None
        return await self.store.find_by_barcode(barcode)

    async def pick(self, flow_id: str, index: int) -> FlowSession:
        session = await self.get(flow_id)
        self._require(session, {FlowState.PRESENTING}, "pick")
        if not 0 <= index < len(session.suggestions):
            raise InvalidProductInput("index", f"No suggestion at index {index}")

        suggestion = session.suggestions[index]
        existing = await self._find_existing(suggestion, session.barcode_hint)
        if existing is not None:
            session.resolution = Resolution(kind="existing", product=existing)
        else:
            draft = suggestion.to_draft(fallback_barcode=session.barcode_hint, raw_input=session.raw_input)
            session.resolution = Resolution(kind="draft", product=draft)
        session.state = FlowState.RESOLVED
        await self._save(session)
        logger.info("[flow] %s picked #%d (%s) -> %s", session.id, index, suggestion.source, session.resolution.kind)
        return session

    def _manual_name(self, session: FlowSession) -> str:
        if session.mode == "name":
            return session.name_hint or ""
        return MANUAL_NAME_MATRIX if session.is_matrix_code else MANUAL_NAME_SCAN

    async def manual(self, flow_id: str) -> FlowSession:
        session = await self.get(flow_id)
        self._require(session, DRAFTABLE, "open a manual draft")

        draft = Product(
            barcode=normalize_barcode(session.barcode_hint) or "",
            name=self._manual_name(session),
            category=DEFAULT_CATEGORY,
            notes=session.raw_input or None,
        )
        session.resolution = Resolution(kind="manual", product=draft)
        session.state = FlowState.MANUAL_DRAFT
        await self._save(session)
        return session

    async def cancel(self, flow_id: str) -> FlowSession:
        session = await self.get(flow_id)
        if session.state in TERMINAL:
            raise InvalidFlowTransition(session.state.value, "cancel")
        session.state = FlowState.CANCELLED
        session.resolution = None
        await self._save(session)
        logger.info("[flow] %s cancelled", session.id)
        return session

    # ──────────────────────────────────────────────────────────────
    #  Persisting
    # ──────────────────────────────────────────────────────────────
    async def confirm(self, flow_id: str, product: Product, analyze: bool = True) -> Product:
        """
        Store the operator-edited product. Runs the moving analysis first when the
        product has none; insert vs update follows `product.id`.
        """
        session = await self.get(flow_id)
        self._require(session, CONFIRMABLE, "confirm")

        product = product.model_copy(update={
            "name": product.name.strip(),
            "barcode": (product.barcode or "").strip(),
        })
        product.validate_for_persistence()

        if analyze and not product.has_ai_analysis:
            product = await self.analyzer.analyze(product)

        if product.id is not None:
            try:
                affected = await self.store.update(product)
            except Exception as e:
                raise ProductPersistenceError("update", e) from e
            if affected == 0:
                raise ProductPersistenceError("update", LookupError(f"no product with id {product.id}"))
        else:
            try:
                new_id = await self.store.insert(product)
            except Exception as e:
                raise ProductPersistenceError("create", e) from e
            product = product.model_copy(update={"id": new_id})

        session.product_id = product.id
        session.resolution = Resolution(
            kind=session.resolution.kind if session.resolution else "manual", product=product
        )
        session.state = FlowState.SAVED
        await self._save(session)
        logger.info("[flow] %s saved product id=%s", session.id, product.id)
        return product


class AnalyzeProductUseCase:
    """Re-run the moving analysis for stored products and write it back."""

    def __init__(
        self,
        store: RecordStorePort,
        analyzer: CandidateGeneratorPort,
        pause_s: float = BATCH_PAUSE_S,
    ):
        self.store = store
        self.analyzer = analyzer
        self.pause_s = pause_s

    async def _analyze_and_store(self, product: Product) -> Product:
        analyzed = await self.analyzer.analyze(product)
        try:
            await self.store.update(analyzed)
        except Exception as e:
            raise ProductPersistenceError("update", e) from e
        return analyzed

    async def execute(self, product_id: int) -> Optional[Product]:
        product = await self.store.find_by_id(product_id)
        if product is None:
            return None
        return await self._analyze_and_store(product)

    async def execute_all(self, limit: int = BATCH_LIMIT) -> List[Product]:
        """
        Analyze every stored product that has no moving decision yet, one at a
        time with a short pause between model calls. A store failure stops the
        batch; products already written stay analyzed.
        """
        pending = await self.store.list_unanalyzed(limit)
        done: List[Product] = []
        for i, product in enumerate(pending):
            if i and self.pause_s > 0:
                await asyncio.sleep(self.pause_s)
            done.append(await self._analyze_and_store(product))
        logger.info("[analyze] batch analyzed %d of %d pending", len(done), len(pending))
        return done
