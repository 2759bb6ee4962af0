from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from qa_panel.api.dependencies import get_autotests, get_request_id
from qa_panel.core.logger import get_logger
from qa_panel.engine.bootstrap import AutotestService
from qa_panel.schemas.response_schemas import error_payload, response_envelope
from qa_panel.state.autotest_state import ResultStatus, RunStatus, dump_records

router = APIRouter()
logger = get_logger(__name__)


@router.get("/autotests")
async def get_autotests_state(
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    return response_envelope(True, data=service.state(), request_id=request_id)


@router.get("/autotests/markets")
async def list_markets(
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    markets = service.repository.markets
    return response_envelope(True, data={"markets": dump_records(markets), "total": len(markets)}, request_id=request_id)


@router.get("/autotests/runs")
async def list_runs(
    market_id: str | None = None,
    status: RunStatus | None = None,
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    runs = service.repository.test_runs
    if market_id:
        runs = [run for run in runs if run.market_id == market_id]
    if status is not None:
        runs = [run for run in runs if run.status == status]
    return response_envelope(True, data={"testRuns": dump_records(runs), "total": len(runs)}, request_id=request_id)


@router.get("/autotests/runs/{run_id}")
async def get_run(
    run_id: str,
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    run = service.repository.get_test_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=error_payload("TEST_RUN_NOT_FOUND", f"Test run {run_id} does not exist"))
    data = {
        "run": run.to_json_dict(),
        "results": dump_records(service.repository.results_for_run(run_id)),
        "simulating": service.engine.is_active(run_id),
    }
    return response_envelope(True, data=data, request_id=request_id)


@router.get("/autotests/results")
async def list_results(
    test_run_id: str | None = None,
    status: ResultStatus | None = None,
    limit: int = Query(default=500, ge=1, le=5000),
    offset: int = Query(default=0, ge=0),
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    results = service.repository.test_results
    if test_run_id:
        results = [result for result in results if result.test_run_id == test_run_id]
    if status is not None:
        results = [result for result in results if result.status == status]
    page = results[offset : offset + limit]
    data = {"testResults": dump_records(page), "total": len(results), "limit": limit, "offset": offset}
    return response_envelope(True, data=data, request_id=request_id)


@router.post("/autotests/markets/{market_id}/start", status_code=202)
async def post_start(
    market_id: str,
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    logger.info("api.autotests.start", request_id=request_id, market_id=market_id)
    service.start_test_run(market_id)
    run = service.repository.running_run_for_market(market_id)
    data = {"market_id": market_id, "run": run.to_json_dict() if run else None}
    return response_envelope(True, data=data, request_id=request_id)


@router.post("/autotests/runs/{run_id}/stop", status_code=202)
async def post_stop(
    run_id: str,
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    logger.warning("api.autotests.stop", request_id=request_id, run_id=run_id)
    service.stop_test_run(run_id)
    run = service.repository.get_test_run(run_id)
    return response_envelope(True, data={"run": run.to_json_dict() if run else None}, request_id=request_id)


@router.post("/autotests/results/{result_id}/rerun", status_code=202)
async def post_rerun(
    result_id: str,
    service: AutotestService = Depends(get_autotests),
    request_id: str = Depends(get_request_id),
):
    logger.info("api.autotests.rerun", request_id=request_id, result_id=result_id)
    service.rerun_test(result_id)
    result = service.repository.get_test_result(result_id)
    return response_envelope(True, data={"result": result.to_json_dict() if result else None}, request_id=request_id)
