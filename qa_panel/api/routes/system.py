from __future__ import annotations

from collections import Counter

from fastapi import APIRouter, Depends

from qa_panel.api.dependencies import get_autotests, get_request_id
from qa_panel.config.settings import settings
from qa_panel.core.logger import get_logger
from qa_panel.db.database import get_connection
from qa_panel.engine.bootstrap import AutotestService
from qa_panel.schemas.response_schemas import API_VERSION, response_envelope

router = APIRouter()
logger = get_logger(__name__)


@router.get("/system/health")
async def get_health(
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    logger.info("api.system.health", request_id=request_id)
    db_status = "up"
    try:
        conn = get_connection(service.store.db_path)
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
    except Exception as exc:
        logger.warning("api.system.health.db_down", error=str(exc))
        db_status = "down"

    runs_by_status = Counter(run.status.value for run in service.repository.test_runs)
    results_by_status = Counter(result.status.value for result in service.repository.test_results)
    data = {
        "status": "healthy" if db_status == "up" else "degraded",
        "version": API_VERSION,
        "env": settings.APP_ENV,
        "components": {
            "api": {"status": "up"},
            "database": {"status": db_status, "type": "sqlite", "keys": service.store.keys() if db_status == "up" else []},
            "simulation": {
                "status": "up",
                "active_runs": len(service.engine.active_run_ids()),
                "pending_timers": service.scheduler.pending,
                "tick_interval_ms": service.policy.tick_interval_ms,
            },
        },
        "runs": dict(runs_by_status),
        "results": dict(results_by_status),
    }
    return response_envelope(True, data=data, request_id=request_id)
