# move_inventory/services/prompt_service.py
import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml

from move_inventory.domain.models import PRODUCT_CATEGORIES, Product

log = logging.getLogger("moveinv.prompts")

PROMPT_FILE = Path(
    os.getenv("PROMPT_FILE", Path(__file__).resolve().parents[2] / "config" / "prompts.yaml")
)

# used when the yaml file is absent
DEFAULT_PROMPTS: Dict[str, str] = {
    "system": "You are the input assistant of a household-move inventory app. Always answer with JSON only.",
    "suggest": (
        "Estimate product candidates.\n"
        "rawInput: {raw_input}\nbarcodeHint: {barcode_hint}\nnameHint: {name_hint}\n"
        "Return a JSON array of at most {max_results} entries with keys name, barcode, "
        "category (one of: {categories}), price, description, confidence, reason."
    ),
    "analyze": (
        "Evaluate this item for a household move and answer in JSON with keys "
        "movingDecision (keep/parents_home/discard/sell), storageLocation, confidence, notes.\n"
        "Name: {name}\nCategory: {category}\nPrice: {price}\nDescription: {description}\nQuantity: {quantity}"
    ),
    "ping": "Reply with OK only.",
}


class PromptService:
    def __init__(self, path: Optional[Path] = None):
        path = Path(path) if path else PROMPT_FILE
        self.templates: Dict[str, str] = dict(DEFAULT_PROMPTS)
        if path.exists():
            loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            self.templates.update({k: str(v) for k, v in loaded.items() if v})
        else:
            log.warning("[prompts] %s not found, using built-in templates", path)

    def system_prompt(self) -> str:
        return self.templates["system"].strip()

    def ping_prompt(self) -> str:
        return self.templates["ping"].strip()

    def suggest_prompt(
        self,
        *,
        raw_input: str,
        barcode_hint: Optional[str],
        name_hint: Optional[str],
        max_results: int,
    ) -> str:
        return self.templates["suggest"].format(
            raw_input=raw_input or "none",
            barcode_hint=barcode_hint or "none",
            name_hint=name_hint or "none",
            max_results=max_results,
            categories=", ".join(PRODUCT_CATEGORIES),
        )

    def analyze_prompt(self, product: Product) -> str:
        price = f"{product.price:.0f}" if product.price is not None else "unknown"
        return self.templates["analyze"].format(
            name=product.name,
            category=product.category,
            price=price,
            description=product.description or "no description",
            quantity=product.quantity,
        )
