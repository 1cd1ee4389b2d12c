# capability_adapter/middleware/correlation.py
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Reads x-request-id / x-correlation-id from the inbound request (or mints
    fresh ones), exposes them through context vars for logging and outbound
    calls, and echoes them on the response.
    """

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        cid = request.headers.get("x-correlation-id") or rid
        rid_token = request_id_var.set(rid)
        cid_token = correlation_id_var.set(cid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(rid_token)
            correlation_id_var.reset(cid_token)
        response.headers["x-request-id"] = rid
        response.headers["x-correlation-id"] = cid
        return response


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.correlation_id = correlation_id_var.get() or "-"
        return True


def corr_headers(extra: Optional[dict] = None) -> dict:
    """
    Standard outbound headers:
      - x-request-id / x-correlation-id (propagated or fresh)
      - plus any extras.
    """
    rid = request_id_var.get()
    cid = correlation_id_var.get()
    if not rid:
        rid = str(uuid.uuid4())
    if not cid:
        cid = rid
    base = {
        "x-request-id": rid,
        "x-correlation-id": cid,
    }
    if extra:
        base.update(extra)
    return base
