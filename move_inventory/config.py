# move_inventory/config.py
from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_FALLBACK_MODELS = ["gpt-4.1-mini", "gpt-4o", "gpt-3.5-turbo"]


def normalize_credential(value: str | None) -> str:
    """Trim and strip matching surrounding quotes (pasted keys often carry them)."""
    text = (value or "").strip()
    while len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1].strip()
    return text


def is_likely_application_id(value: str) -> bool:
    # publishable "pk_..." keys are not commerce application ids
    text = normalize_credential(value)
    return bool(text) and not text.lower().startswith("pk_")


class Settings(BaseModel):
    # Generative model
    openai_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_fallback_models: List[str] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_MODELS))
    llm_temperature: float = 0.2

    # Commerce catalog (Rakuten Ichiba)
    rakuten_application_id: str = ""
    rakuten_access_key: str = ""
    rakuten_affiliate_id: str = ""

    # Per-client network timeout
    network_timeout_s: float = 30.0

    # Rank decay for commerce hits
    commerce_decay_step: float = 0.05
    commerce_decay_floor: float = 0.45
    commerce_decay_ceiling: float = 0.99

    flow_ttl_seconds: int = 3600

    @classmethod
    def from_env(cls) -> "Settings":
        app_id = normalize_credential(os.getenv("RAKUTEN_APPLICATION_ID"))
        if not app_id:
            legacy = normalize_credential(os.getenv("RAKUTEN_API_KEY"))
            app_id = legacy if is_likely_application_id(legacy) else ""

        raw_fallbacks = os.getenv("LLM_FALLBACK_MODELS")
        fallbacks = (
            [m.strip() for m in raw_fallbacks.split(",") if m.strip()]
            if raw_fallbacks is not None
            else list(DEFAULT_FALLBACK_MODELS)
        )

        return cls(
            openai_api_key=normalize_credential(os.getenv("OPENAI_API_KEY")),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            llm_fallback_models=fallbacks,
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.2")),
            rakuten_application_id=app_id,
            rakuten_access_key=normalize_credential(os.getenv("RAKUTEN_ACCESS_KEY")),
            rakuten_affiliate_id=normalize_credential(os.getenv("RAKUTEN_AFFILIATE_ID")),
            network_timeout_s=float(os.getenv("NETWORK_TIMEOUT_S", "30")),
            commerce_decay_step=float(os.getenv("COMMERCE_DECAY_STEP", "0.05")),
            commerce_decay_floor=float(os.getenv("COMMERCE_DECAY_FLOOR", "0.45")),
            commerce_decay_ceiling=float(os.getenv("COMMERCE_DECAY_CEILING", "0.99")),
            flow_ttl_seconds=int(os.getenv("FLOW_TTL_SECONDS", "3600")),
        )


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
