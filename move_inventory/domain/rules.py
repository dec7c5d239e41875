# move_inventory/domain/rules.py
"""
Keyword rules shared by the commerce catalog, the AI response parser and the
rule-based AI fallback. One table per concern so the call sites cannot drift.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.models import DEFAULT_CATEGORY, PRODUCT_CATEGORIES, Suggestion

# First matching row wins, so order matters.
CATEGORY_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("食品・飲料", ["米", "食品", "飲料", "コーヒー", "お茶", "調味料", "food", "coffee", "beverage"]),
    ("家電・AV機器", ["掃除機", "冷蔵庫", "洗濯機", "テレビ", "イヤホン", "pc", "vacuum", "refrigerator", "television"]),
    ("家具・インテリア", ["ソファ", "椅子", "机", "収納", "インテリア", "カーテン", "sofa", "chair", "curtain"]),
    ("衣類・ファッション", ["シャツ", "パンツ", "ジャケット", "靴", "バッグ", "アパレル", "shirt", "jacket", "shoes"]),
    ("本・雑誌", ["本", "雑誌", "book", "文庫", "コミック", "magazine", "comic"]),
    ("ゲーム・おもちゃ", ["ゲーム", "おもちゃ", "玩具", "フィギュア", "toy"]),
    ("日用品・消耗品", ["洗剤", "日用品", "ティッシュ", "トイレットペーパー", "detergent", "tissue"]),
    ("化粧品・美容", ["化粧", "コスメ", "美容", "スキンケア", "cosmetic", "skincare"]),
    ("スポーツ・アウトドア", ["スポーツ", "アウトドア", "キャンプ", "ランニング", "outdoor", "camping"]),
]


@dataclass(frozen=True)
class MovingRule:
    words: Tuple[str, ...]
    decision: str
    location: str
    confidence: float


MOVING_RULES: List[MovingRule] = [
    MovingRule(("食品", "消耗", "賞味", "飲料", "food", "drink"), "discard", "キッチン", 0.88),
    MovingRule(("思い出", "卒業", "アルバム", "写真", "記念", "memorabilia", "album", "photo"), "parents_home", "実家", 0.86),
    MovingRule(("本", "雑誌", "コミック", "book", "magazine"), "sell", "倉庫", 0.76),
    MovingRule(("衣類", "シャツ", "コート", "靴", "clothing", "shirt", "coat"), "keep", "クローゼット", 0.82),
    MovingRule(("家電", "pc", "テレビ", "モニタ", "appliance", "monitor"), "keep", "リビング", 0.80),
]
DEFAULT_MOVING = MovingRule((), "keep", "その他", 0.72)

FALLBACK_PLACEHOLDER_NAME = "Estimated item"


def _contains_any(text: str, words: Sequence[str]) -> bool:
    return any(w.lower() in text for w in words)


def infer_category(text: Optional[str], categories: Sequence[str] = PRODUCT_CATEGORIES) -> str:
    source = (text or "").lower()
    for category, words in CATEGORY_KEYWORDS:
        if category in categories and _contains_any(source, words):
            return category
    return DEFAULT_CATEGORY


def classify_moving(text: Optional[str]) -> MovingRule:
    source = (text or "").lower()
    for rule in MOVING_RULES:
        if _contains_any(source, rule.words):
            return rule
    return DEFAULT_MOVING


def guess_name_from_raw(raw_input: str) -> str:
    trimmed = (raw_input or "").strip()
    if not trimmed:
        return FALLBACK_PLACEHOLDER_NAME
    try:
        host = urlsplit(trimmed).hostname
    except ValueError:
        host = None
    if host:
        return f"Web item ({host})"
    if len(trimmed) <= 30:
        return trimmed
    return trimmed[:30] + "..."


def fallback_candidates(
    *,
    raw_input: str,
    barcode_hint: Optional[str],
    name_hint: Optional[str],
    max_results: int,
    source: str,
) -> List[Suggestion]:
    """
    Deterministic stand-in for the generative model. Reasons say "heuristic" so
    callers can tell these apart from model answers.
    """
    raw_input = (raw_input or "").strip()
    name_hint = (name_hint or "").strip() or None
    category = infer_category(f"{name_hint or ''} {raw_input}".strip())
    barcode = normalize_barcode(barcode_hint)

    if name_hint:
        primary_name = name_hint
    elif barcode:
        primary_name = f"Scanned item ({barcode})"
    else:
        primary_name = guess_name_from_raw(raw_input)

    description = None
    if raw_input:
        description = raw_input if len(raw_input) <= 120 else raw_input[:120] + "..."

    out = [
        Suggestion(
            name=primary_name,
            barcode=barcode,
            category=category,
            description=description,
            source=source,
            confidence=0.82 if barcode else 0.66,
            reason="Heuristic guess from scanned code" if barcode else "Heuristic guess from input text",
        )
    ]
    if name_hint and max_results >= 2:
        out.append(
            Suggestion(
                name=f"{name_hint} (candidate)",
                barcode=barcode,
                category=category,
                source=source,
                confidence=0.74 if barcode else 0.58,
                reason="Heuristic secondary candidate from name",
            )
        )
    return out[:max(1, max_results)]
