# capability_adapter/main.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import ORJSONResponse

from capability_adapter.adapter import CapabilityAdapter
from capability_adapter.config import settings
from capability_adapter.errors import (
    AdapterError,
    CircuitOpenError,
    TransportError,
    UnknownOperationError,
    ValidationError,
)
from capability_adapter.logging import setup_logging
from capability_adapter.middleware.correlation import (
    CorrelationIdFilter,
    CorrelationIdMiddleware,
    correlation_id_var,
    request_id_var,
)
from capability_adapter.models.capability import Environment

logger = setup_logging(settings.LOG_LEVEL)
app = FastAPI(default_response_class=ORJSONResponse, title=settings.SERVICE_NAME)
app.add_middleware(CorrelationIdMiddleware)
_corr_filter = CorrelationIdFilter()
for _n in ("", "uvicorn", "uvicorn.access", "uvicorn.error", "capability_adapter"):
    logging.getLogger(_n).addFilter(_corr_filter)


# ---- adapter wiring -----------------------------------------------------
def get_adapter(request: Request) -> CapabilityAdapter:
    adapter = getattr(request.app.state, "adapter", None)
    if adapter is None:
        adapter = CapabilityAdapter(settings)
        request.app.state.adapter = adapter
    return adapter


@app.on_event("shutdown")
async def _shutdown():
    adapter = getattr(app.state, "adapter", None)
    if adapter is not None:
        await adapter.aclose()


def _status_for(err: AdapterError) -> int:
    if isinstance(err, ValidationError):
        return 422
    if isinstance(err, CircuitOpenError):
        return 503
    if isinstance(err, UnknownOperationError):
        return 404
    if isinstance(err, TransportError):
        return 502
    # discovery / generation
    return 502


def _raise(err: AdapterError) -> None:
    headers = None
    if isinstance(err, CircuitOpenError):
        headers = {"Retry-After": str(max(1, int(err.retry_after + 0.999)))}
    raise HTTPException(status_code=_status_for(err), detail=err.to_dict(), headers=headers)


# ---- health -------------------------------------------------------------
@app.get("/health")
async def health():
    return {"ok": True, "service": settings.SERVICE_NAME, "env": settings.ENV}


@app.get("/status")
async def status(adapter: CapabilityAdapter = Depends(get_adapter)):
    return adapter.status()


# ---- operations ---------------------------------------------------------
@app.get("/operations/{environment}")
async def list_operations(environment: Environment, adapter: CapabilityAdapter = Depends(get_adapter)):
    ops = await adapter.get_operations(environment)
    if not ops.ok:
        _raise(ops.error)
    op_set = ops.value
    return {
        "environment": environment.value,
        "count": len(op_set),
        "operations": [d.summary() for d in op_set.descriptors()],
        "failures": op_set.failures,
    }


@app.post("/operations/{environment}/{name}")
async def invoke_operation(
    environment: Environment,
    name: str,
    args: Optional[Dict[str, Any]] = Body(default=None),
    adapter: CapabilityAdapter = Depends(get_adapter),
):
    outcome = await adapter.invoke(environment, name, args)
    if not outcome.ok:
        logger.info("invoke %s/%s -> %s", environment.value, name, outcome.error.code)
        _raise(outcome.error)
    return {
        "environment": environment.value,
        "operation": name,
        "result": outcome.value,
        "request_id": request_id_var.get(),
        "correlation_id": correlation_id_var.get(),
    }


# ---- sync ---------------------------------------------------------------
@app.get("/sync/changes")
async def list_changes(adapter: CapabilityAdapter = Depends(get_adapter)):
    tracker = adapter.tracker()
    records = tracker.drain() if tracker is not None else ()
    return {
        "environment": adapter.source_environment.value,
        "count": len(records),
        "changes": [r.model_dump(mode="json") for r in records],
    }


@app.delete("/sync/changes")
async def clear_changes(adapter: CapabilityAdapter = Depends(get_adapter)):
    tracker = adapter.tracker()
    cleared = tracker.clear() if tracker is not None else 0
    return {"environment": adapter.source_environment.value, "cleared": cleared}


@app.post("/sync/apply")
async def apply_changes(adapter: CapabilityAdapter = Depends(get_adapter)):
    outcome = await adapter.sync()
    if not outcome.ok:
        _raise(outcome.error)
    report = outcome.value
    return ORJSONResponse(
        status_code=200 if report.success else 207,
        content=report.model_dump(mode="json"),
    )


# ---- cache --------------------------------------------------------------
@app.post("/cache/invalidate")
async def invalidate_cache(
    environment: Optional[Environment] = Query(default=None),
    adapter: CapabilityAdapter = Depends(get_adapter),
):
    dropped = adapter.invalidate(environment)
    return {"environment": environment.value if environment else "all", "invalidated": dropped}
