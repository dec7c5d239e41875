# move_inventory/presentation/health.py
from fastapi import APIRouter, Depends
from move_inventory.config import get_settings
from move_inventory.container import get_cache, get_repo

router = APIRouter()

@router.get("/healthz")
async def healthz():
    return {"ok": True}

@router.get("/readyz")
async def readyz(repo = Depends(get_repo), cache = Depends(get_cache)):
    checks = {}; ok = True
    # Mongo
    try:
        checks["mongo"] = await repo.ping()
        ok = ok and checks["mongo"]
    except Exception as e:
        checks["mongo"] = False; checks["mongo_error"] = str(e); ok = False
    # Redis (flow sessions)
    try:
        pong = await cache.ping()
        checks["redis"] = bool(pong); ok = ok and bool(pong)
    except Exception as e:
        checks["redis"] = False; checks["redis_error"] = str(e); ok = False
    # External sources configured (lookups degrade without them)
    settings = get_settings()
    checks["openai_configured"] = bool(settings.openai_api_key)
    checks["commerce_configured"] = bool(settings.rakuten_application_id and settings.rakuten_access_key)
    return {"ok": ok, **checks}
