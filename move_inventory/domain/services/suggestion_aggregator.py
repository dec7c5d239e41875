# move_inventory/domain/services/suggestion_aggregator.py
from typing import Dict, Iterable, List

from move_inventory.domain.barcode import normalize_barcode
from move_inventory.domain.models import DEFAULT_CATEGORY, PRODUCT_CATEGORIES, Suggestion


def normalize(s: Suggestion) -> Suggestion:
    return s.model_copy(update={
        "name": s.name.strip(),
        "barcode": normalize_barcode(s.barcode),
        "category": s.category if s.category in PRODUCT_CATEGORIES else DEFAULT_CATEGORY,
    })


def _rank_key(s: Suggestion):
    # confidence desc, local-backed first, then name asc
    return (-s.confidence, 0 if s.existing_product_id is not None else 1, s.name)


def merge(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    merged: Dict[str, Suggestion] = {}
    for item in suggestions:
        if not item.name.strip():
            continue
        norm = normalize(item)
        key = norm.dedup_key
        existing = merged.get(key)
        # strict compare: on a tie the earlier entry stays
        if existing is None or norm.confidence > existing.confidence:
            merged[key] = norm
    return sorted(merged.values(), key=_rank_key)
