# move_inventory/infra/api/security.py
from fastapi import Depends, HTTPException, status
from fastapi.security.api_key import APIKeyHeader
import os, logging
log = logging.getLogger("moveinv.api")

API_KEY_NAME = "X-Api-Key"
_api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


def _require_flag() -> bool:
    return os.getenv("REQUIRE_API_KEY", "1") == "1"


async def require_api_key(api_key: str = Depends(_api_key_header)):
    if not _require_flag():
        return
    service_key = os.getenv("SERVICE_API_KEY", "")
    if not service_key:
        log.warning("Auth fail: SERVICE_API_KEY not configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service key not configured")
    if not api_key or api_key != service_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
