# main.py
from dotenv import load_dotenv
load_dotenv()

import os
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# v1 router (X-Api-Key enforced through the router dependencies)
from move_inventory.presentation.routers import router as v1_router
from move_inventory.presentation.health import router as health_router

# --- logging config before anything logs ---
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Move Inventory",
    version=os.getenv("APP_VERSION", "0.1.0"),
)

# application logger, not 'uvicorn.access'
app_logger = logging.getLogger("moveinv.request")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    app_logger.info("Incoming %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        app_logger.info("Completed %s %s -> %s", request.method, request.url.path, response.status_code)
        return response
    except Exception:
        app_logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        raise

# ─────────────────────────────────────────────────────────────
# CORS (CORS_ALLOW_ORIGINS="https://foo.com,https://bar.com")
# ─────────────────────────────────────────────────────────────
raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
allow_origins = [o.strip().rstrip("/") for o in raw_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials="*" not in allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────
app.include_router(v1_router, tags=["api"])
app.include_router(health_router, tags=["health"])

@app.get("/")
async def root():
    return {
        "name": "Move Inventory",
        "version": os.getenv("APP_VERSION", "0.1.0"),
        "ok": True,
    }

# ─────────────────────────────────────────────────────────────
# Startup: product indexes (barcode uniqueness backs the local lookup)
# ─────────────────────────────────────────────────────────────
@app.on_event("startup")
async def ensure_indexes():
    from move_inventory.container import get_repo
    try:
        await get_repo().ensure_indexes()
    except Exception as e:
        app_logger.warning("[startup] mongo indexes not ensured: %s", e)
