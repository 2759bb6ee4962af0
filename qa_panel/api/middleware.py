from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from qa_panel.core.logger import get_logger
from qa_panel.schemas.response_schemas import new_request_id

logger = get_logger(__name__)

# dashboard polling endpoints, logged at debug level
_QUIET_METHODS = {"GET", "HEAD", "OPTIONS"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = new_request_id()
        request.state.request_id = request_id
        log = logger.debug if request.method in _QUIET_METHODS else logger.info
        start = time.time()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            log("http.request.start", method=request.method, path=request.url.path, query=str(request.url.query))
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("http.request.error", method=request.method, path=request.url.path)
                raise
            duration = time.time() - start
            response.headers["X-Request-Id"] = request_id
            response.headers["X-Process-Time"] = f"{duration:.4f}"
            log(
                "http.request.end",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id")


def register_middleware(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
