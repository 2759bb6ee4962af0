from __future__ import annotations

from fastapi import HTTPException, Request

from qa_panel.engine.bootstrap import AutotestService
from qa_panel.schemas.response_schemas import error_payload


def get_request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", "")
    return rid or "req_local"


def get_autotests(request: Request) -> AutotestService:
    service = getattr(request.app.state, "autotests", None)
    if service is None or not service.started:
        raise HTTPException(status_code=503, detail=error_payload("SERVICE_NOT_READY", "Autotest service is not started"))
    return service
