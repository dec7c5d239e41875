# move_inventory/container.py
from functools import lru_cache

from move_inventory.config import Settings, get_settings
from move_inventory.infra.cache.redis_cache import RedisCache
from move_inventory.infra.catalogs.commerce_catalog import CommerceCatalogClient
from move_inventory.infra.catalogs.local_store import LocalStoreCatalog
from move_inventory.infra.catalogs.open_catalog import OpenCatalogClient
from move_inventory.infra.llm.openai_adapter import OpenAICandidateGenerator
from move_inventory.infra.repo.mongo_repo import MongoProductRepo

from move_inventory.services.prompt_service import PromptService
from move_inventory.services.session_state import FlowSessionStore

from move_inventory.application.resolution_flow import AnalyzeProductUseCase, ResolutionFlow
from move_inventory.application.suggest_use_case import SuggestProductsUseCase


def _settings() -> Settings: return get_settings()

@lru_cache
def _cache() -> RedisCache: return RedisCache.from_env()

@lru_cache
def _repo() -> MongoProductRepo: return MongoProductRepo()

@lru_cache
def _prompts() -> PromptService: return PromptService()

@lru_cache
def _ai() -> OpenAICandidateGenerator:
    return OpenAICandidateGenerator(_settings(), prompts=_prompts())

@lru_cache
def _commerce() -> CommerceCatalogClient: return CommerceCatalogClient(_settings())

@lru_cache
def _open_catalog() -> OpenCatalogClient:
    return OpenCatalogClient(timeout=_settings().network_timeout_s)

@lru_cache
def _sessions() -> FlowSessionStore:
    return FlowSessionStore(_cache(), ttl=_settings().flow_ttl_seconds)

@lru_cache
def _suggest_uc() -> SuggestProductsUseCase:
    return SuggestProductsUseCase(
        local=LocalStoreCatalog(_repo()),
        open_catalog=_open_catalog(),
        commerce=_commerce(),
        ai=_ai(),
    )

def get_resolution_flow() -> ResolutionFlow:
    return ResolutionFlow(suggest=_suggest_uc(), store=_repo(), sessions=_sessions(), analyzer=_ai())

def get_analyze_uc() -> AnalyzeProductUseCase:
    return AnalyzeProductUseCase(store=_repo(), analyzer=_ai())

def get_repo() -> MongoProductRepo: return _repo()
def get_cache() -> RedisCache: return _cache()
def get_commerce_client() -> CommerceCatalogClient: return _commerce()
def get_ai_generator() -> OpenAICandidateGenerator: return _ai()
