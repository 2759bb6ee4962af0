from __future__ import annotations

from qa_panel.state.autotest_state import (
    ACTUAL_FAILED,
    ACTUAL_RUNNING,
    ACTUAL_SUCCESS,
    Market,
    ResultStatus,
    RunStatus,
    TestResult,
    TestRun,
)

SEED_MARKETS: list[Market] = [
    Market(id="market-1", name="Russia", region="EU", description="Main storefront"),
    Market(id="market-2", name="Kazakhstan", region="ASIA", description="Regional storefront"),
    Market(id="market-3", name="Belarus", region="EU", description="Regional storefront"),
    Market(id="market-4", name="Uzbekistan", region="ASIA", description="Pilot storefront"),
]

SEED_TEST_RUNS: list[TestRun] = [
    TestRun(
        id="run-1",
        market_id="market-1",
        status=RunStatus.COMPLETED,
        progress=100,
        total_tests=4,
        passed_tests=3,
        failed_tests=1,
        start_time="2024-05-01T09:00:00+00:00",
        end_time="2024-05-01T09:00:06+00:00",
    ),
    TestRun(
        id="run-2",
        market_id="market-2",
        status=RunStatus.STOPPED,
        progress=50,
        total_tests=4,
        passed_tests=0,
        failed_tests=0,
        start_time="2024-05-01T10:00:00+00:00",
        end_time="2024-05-01T10:00:03+00:00",
    ),
]

SEED_TEST_RESULTS: list[TestResult] = [
    TestResult(
        id="res-run-1-1",
        test_run_id="run-1",
        test_name="Test 1",
        actual=ACTUAL_SUCCESS,
        status=ResultStatus.PASSED,
        timestamp="2024-05-01T09:00:06+00:00",
    ),
    TestResult(
        id="res-run-1-2",
        test_run_id="run-1",
        test_name="Test 2",
        actual=ACTUAL_SUCCESS,
        status=ResultStatus.PASSED,
        timestamp="2024-05-01T09:00:06+00:00",
    ),
    TestResult(
        id="res-run-1-3",
        test_run_id="run-1",
        test_name="Test 3",
        actual=ACTUAL_FAILED,
        status=ResultStatus.FAILED,
        timestamp="2024-05-01T09:00:06+00:00",
        error_message="Test failed due to timeout",
    ),
    TestResult(
        id="res-run-1-4",
        test_run_id="run-1",
        test_name="Test 4",
        actual=ACTUAL_SUCCESS,
        status=ResultStatus.PASSED,
        timestamp="2024-05-01T09:00:06+00:00",
    ),
    TestResult(
        id="res-run-2-1",
        test_run_id="run-2",
        test_name="Test 1",
        actual=ACTUAL_RUNNING,
        status=ResultStatus.RUNNING,
        timestamp="2024-05-01T10:00:01+00:00",
    ),
    TestResult(
        id="res-run-2-2",
        test_run_id="run-2",
        test_name="Test 2",
        actual=ACTUAL_RUNNING,
        status=ResultStatus.RUNNING,
        timestamp="2024-05-01T10:00:02+00:00",
    ),
]


def seed_markets() -> list[Market]:
    return [market.model_copy() for market in SEED_MARKETS]


def seed_test_runs() -> list[TestRun]:
    return [run.model_copy() for run in SEED_TEST_RUNS]


def seed_test_results() -> list[TestResult]:
    return [result.model_copy() for result in SEED_TEST_RESULTS]
