# move_inventory/infra/llm/openai_adapter.py
from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, NotFoundError

from move_inventory.config import Settings
from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.errors import ModelUnavailable
from move_inventory.domain.models import MOVING_DECISIONS, PRODUCT_CATEGORIES, Product, Suggestion, utcnow
from move_inventory.domain.ports import CandidateGeneratorPort, ConnectionTestResult
from move_inventory.domain.rules import classify_moving, fallback_candidates, infer_category
from move_inventory.services.prompt_service import PromptService

log = logging.getLogger("moveinv.ai")

SOURCE = "AI estimate"
SOURCE_RULES = "AI estimate (rules)"
SOURCE_HEURISTIC = "AI estimate (heuristic)"

DEFAULT_SUGGEST_CONFIDENCE = 0.55
DEFAULT_ANALYSIS_CONFIDENCE = 0.7
DEFAULT_STORAGE_LOCATION = "その他"
DEFAULT_ANALYSIS_NOTES = "AI analysis"

NOTE_NO_KEY = "No OpenAI API key configured, fell back to rule-based analysis."
NOTE_CALL_FAILED = "OpenAI call failed, fell back to rule-based analysis."
NOTE_UNPARSEABLE = "Could not parse the model response, fell back to rule-based analysis."


def _to_float(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        number = float(v)
    elif isinstance(v, str):
        try:
            number = float(v.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _str_or_none(v: Any) -> Optional[str]:
    if not isinstance(v, str):
        return None
    return v.strip() or None


def _short(e: BaseException, n: int = 120) -> str:
    s = str(e).strip() or type(e).__name__
    return s if len(s) <= n else s[:n] + "..."


def _extract_json_array(text: str) -> Optional[str]:
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _extract_json_object(text: str) -> Optional[str]:
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def is_model_unavailable(error: BaseException) -> bool:
    if isinstance(error, NotFoundError):
        return True
    text = str(error).lower()
    return (
        ("model" in text and "not found" in text)
        or "unsupported model" in text
        or ("model" in text and "does not exist" in text)
    )


def parse_suggestions(text: str) -> List[Suggestion]:
    raw = _extract_json_array(text or "")
    if raw is None:
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(decoded, list):
        return []

    out: List[Suggestion] = []
    for item in decoded:
        if not isinstance(item, dict):
            continue
        name = _str_or_none(item.get("name"))
        if not name:
            continue
        barcode = item.get("barcode")
        description = _str_or_none(item.get("description"))
        category = _str_or_none(item.get("category"))
        if category not in PRODUCT_CATEGORIES:
            category = infer_category(f"{name} {description or ''}")
        confidence = _to_float(item.get("confidence"))
        out.append(Suggestion(
            name=name,
            barcode=normalize_barcode(str(barcode)) if barcode is not None else None,
            category=category,
            price=_to_float(item.get("price")),
            description=description,
            source=SOURCE,
            confidence=DEFAULT_SUGGEST_CONFIDENCE if confidence is None else confidence,
            reason=_str_or_none(item.get("reason")),
        ))
    out.sort(key=lambda s: s.confidence, reverse=True)
    return out


def parse_analysis(text: str) -> Optional[Dict[str, Any]]:
    raw = _extract_json_object(text or "")
    if raw is None:
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(decoded, dict):
        return None

    decision = _str_or_none(decoded.get("movingDecision"))
    if decision not in MOVING_DECISIONS:
        return None
    confidence = _to_float(decoded.get("confidence"))
    return {
        "moving_decision": decision,
        "storage_location": _str_or_none(decoded.get("storageLocation")) or DEFAULT_STORAGE_LOCATION,
        "ai_confidence": DEFAULT_ANALYSIS_CONFIDENCE if confidence is None else confidence,
        "analysis_notes": _str_or_none(decoded.get("notes")) or DEFAULT_ANALYSIS_NOTES,
    }


class OpenAICandidateGenerator(CandidateGeneratorPort):
    """
    Candidate suggestions and moving analysis from OpenAI chat completions.

    Every public call degrades to the keyword rules instead of raising: no key
    means no network call at all, and any model failure or unusable answer is
    replaced by `fallback_candidates` / `classify_moving`.
    """

    def __init__(self, settings: Settings, client: Any = None, prompts: Optional[PromptService] = None):
        self.settings = settings
        self.api_key = settings.openai_api_key
        self.temperature = settings.llm_temperature
        self.prompts = prompts or PromptService()
        self._client = client

    def _client_ok(self) -> bool:
        return bool(self.api_key)

    def _ensure_client(self):
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.settings.network_timeout_s)
        return self._client

    def candidate_models(self) -> List[str]:
        seen, models = set(), []
        for m in [self.settings.llm_model, *self.settings.llm_fallback_models]:
            m = (m or "").strip()
            if m and m not in seen:
                seen.add(m)
                models.append(m)
        return models

    async def _complete_with_model_fallback(self, prompt: str, *, max_tokens: int = 600) -> str:
        client = self._ensure_client()
        last_error: Optional[BaseException] = None
        for model in self.candidate_models():
            try:
                rsp = await client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": self.prompts.system_prompt()},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=max_tokens,
                )
            except Exception as e:
                if not is_model_unavailable(e):
                    raise
                log.info("[ai] model %s unavailable, trying next", model)
                last_error = e
                continue
            return (rsp.choices[0].message.content or "").strip()
        raise ModelUnavailable(f"no usable model: {last_error}" if last_error else "no model configured")

    # ==== Candidate suggestions ====
    async def suggest(
        self,
        raw_input: str,
        barcode_hint: Optional[str] = None,
        name_hint: Optional[str] = None,
        max_results: int = 4,
    ) -> List[Suggestion]:
        raw = (raw_input or "").strip()
        name = (name_hint or "").strip() or None
        barcode = (barcode_hint or "").strip() or None
        limit = max(1, min(8, max_results))

        def fallback(source: str) -> List[Suggestion]:
            return fallback_candidates(
                raw_input=raw, barcode_hint=barcode, name_hint=name, max_results=limit, source=source
            )

        if not self._client_ok():
            return fallback(SOURCE_RULES)

        try:
            prompt = self.prompts.suggest_prompt(
                raw_input=raw, barcode_hint=barcode, name_hint=name, max_results=limit
            )
            text = await self._complete_with_model_fallback(prompt)
        except Exception as e:
            log.warning("[ai] suggest failed: %s", _short(e))
            return fallback(SOURCE_HEURISTIC)

        parsed = parse_suggestions(text)
        if not parsed:
            log.info("[ai] suggest returned no usable entries")
            return fallback(SOURCE_HEURISTIC)
        return parsed[:limit]

    # ==== Moving analysis ====
    def _fallback_analysis(self, product: Product, note: str) -> Product:
        rule = classify_moving(f"{product.name} {product.category} {product.description or ''}")
        return product.model_copy(update={
            "moving_decision": rule.decision,
            "storage_location": rule.location,
            "ai_confidence": rule.confidence,
            "analysis_notes": note,
            "updated_at": utcnow(),
        })

    async def analyze(self, product: Product) -> Product:
        if not self._client_ok():
            return self._fallback_analysis(product, NOTE_NO_KEY)
        try:
            text = await self._complete_with_model_fallback(self.prompts.analyze_prompt(product), max_tokens=300)
        except Exception as e:
            log.warning("[ai] analyze failed for %r: %s", product.name, _short(e))
            return self._fallback_analysis(product, NOTE_CALL_FAILED)

        parsed = parse_analysis(text)
        if parsed is None:
            return self._fallback_analysis(product, NOTE_UNPARSEABLE)
        parsed["ai_confidence"] = max(0.0, min(1.0, parsed["ai_confidence"]))
        return product.model_copy(update={**parsed, "updated_at": utcnow()})

    async def test_connection(self) -> ConnectionTestResult:
        if not self._client_ok():
            return ConnectionTestResult.ng("OpenAI API key is not configured")
        try:
            text = await self._complete_with_model_fallback(self.prompts.ping_prompt(), max_tokens=10)
        except Exception as e:
            return ConnectionTestResult.ng(f"OpenAI connection failed: {_short(e)}")
        if not text:
            return ConnectionTestResult.ng("OpenAI returned an empty response")
        return ConnectionTestResult.ok("OpenAI API OK")
