# move_inventory/presentation/routers.py
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from move_inventory.infra.api.security import require_api_key

from move_inventory.presentation.schemas import (
    ScanRequest, SearchRequest, PickRequest, ConfirmRequest,
    ConnectionStatus, ConnectionsResponse, BatchAnalyzeResponse,
)

from move_inventory.container import (
    get_resolution_flow, get_analyze_uc, get_commerce_client, get_ai_generator,
)

from move_inventory.application.resolution_flow import AnalyzeProductUseCase, FlowSession, ResolutionFlow
from move_inventory.domain.errors import (
    FlowNotFound, InvalidFlowTransition, InvalidProductInput, ProductPersistenceError
)
from move_inventory.domain.models import Product, ScanPayload


# ──────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────
logger = logging.getLogger("moveinv.api")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, FlowNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidFlowTransition):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidProductInput):
        return HTTPException(status_code=422, detail={"field": e.field, "message": e.message})
    if isinstance(e, ProductPersistenceError):
        logger.error("[flow] persistence failed (%s): %s", e.operation, e.cause)
        return HTTPException(status_code=500, detail={"operation": e.operation, "message": str(e)})
    logger.exception("unhandled error")
    return HTTPException(status_code=500, detail=str(e))


# All endpoints live under /v1 and require X-Api-Key
router = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])

# ── FLOWS ────────────────────────────────────────────────────────
@router.post("/flows", response_model=FlowSession)
async def start_flow(flow: ResolutionFlow = Depends(get_resolution_flow)):
    return await flow.start()

@router.get("/flows/{flow_id}", response_model=FlowSession)
async def get_flow(flow_id: str, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.get(flow_id)
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/scan", response_model=FlowSession)
async def scan(flow_id: str, req: ScanRequest, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.scan(flow_id, ScanPayload(raw_value=req.raw_value, format=req.format))
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/search", response_model=FlowSession)
async def search(flow_id: str, req: SearchRequest, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.search(flow_id, req.query)
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/pick", response_model=FlowSession)
async def pick(flow_id: str, req: PickRequest, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.pick(flow_id, req.index)
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/manual", response_model=FlowSession)
async def manual(flow_id: str, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.manual(flow_id)
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/confirm", response_model=Product)
async def confirm(flow_id: str, req: ConfirmRequest, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.confirm(flow_id, req.product, analyze=req.analyze)
    except Exception as e:
        raise _http_error(e)

@router.post("/flows/{flow_id}/cancel", response_model=FlowSession)
async def cancel(flow_id: str, flow: ResolutionFlow = Depends(get_resolution_flow)):
    try:
        return await flow.cancel(flow_id)
    except Exception as e:
        raise _http_error(e)

# ── PRODUCTS ─────────────────────────────────────────────────────
@router.post("/products/analyze-all", response_model=BatchAnalyzeResponse)
async def analyze_all_products(limit: int = 100, uc: AnalyzeProductUseCase = Depends(get_analyze_uc)):
    try:
        products = await uc.execute_all(limit=max(1, min(limit, 500)))
    except Exception as e:
        raise _http_error(e)
    return BatchAnalyzeResponse(analyzed=len(products), products=products)

@router.post("/products/{product_id}/analyze", response_model=Product)
async def analyze_product(product_id: int, uc: AnalyzeProductUseCase = Depends(get_analyze_uc)):
    try:
        product = await uc.execute(product_id)
    except Exception as e:
        raise _http_error(e)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product

# ── CONNECTIONS ──────────────────────────────────────────────────
@router.get("/connections/test", response_model=ConnectionsResponse)
async def test_connections(commerce=Depends(get_commerce_client), ai=Depends(get_ai_generator)):
    c, a = await asyncio.gather(commerce.test_connection(), ai.test_connection())
    logger.info("[connections] commerce=%s ai=%s", c.success, a.success)
    return ConnectionsResponse(
        commerce=ConnectionStatus(success=c.success, message=c.message),
        ai=ConnectionStatus(success=a.success, message=a.message),
    )
