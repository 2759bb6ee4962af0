from __future__ import annotations

import json
from typing import Any, Callable

from qa_panel.core.logger import get_logger
from qa_panel.db.store import TEST_RESULTS_KEY, TEST_RUNS_KEY, KeyValueStore
from qa_panel.state.autotest_state import (
    Market,
    RunStatus,
    TestResult,
    TestRun,
    dump_records,
)

logger = get_logger(__name__)

MARKETS = "markets"
TEST_RUNS = "testRuns"
TEST_RESULTS = "testResults"

Listener = Callable[[str, "AutotestRepository"], None]


class AutotestRepository:
    """Canonical in-memory collections of markets, runs and results.

    Every mutation notifies subscribers synchronously with the name of the
    collection that changed.
    """

    def __init__(self) -> None:
        self._markets: list[Market] = []
        self._runs: list[TestRun] = []
        self._results: list[TestResult] = []
        self._listeners: list[Listener] = []
        self.loading = False
        self.error: str | None = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners):
            listener(collection, self)

    @property
    def markets(self) -> list[Market]:
        return list(self._markets)

    @property
    def test_runs(self) -> list[TestRun]:
        return list(self._runs)

    @property
    def test_results(self) -> list[TestResult]:
        return list(self._results)

    def set_markets(self, markets: list[Market]) -> None:
        self._markets = list(markets)
        self._notify(MARKETS)

    def set_test_runs(self, runs: list[TestRun]) -> None:
        self._runs = list(runs)
        self._notify(TEST_RUNS)

    def set_test_results(self, results: list[TestResult]) -> None:
        self._results = list(results)
        self._notify(TEST_RESULTS)

    def add_test_run(self, run: TestRun) -> None:
        self._runs.append(run)
        self._notify(TEST_RUNS)

    def update_test_run(self, run: TestRun) -> None:
        for idx, existing in enumerate(self._runs):
            if existing.id == run.id:
                self._runs[idx] = run
                self._notify(TEST_RUNS)
                return

    def add_test_result(self, result: TestResult) -> None:
        self._results.append(result)
        self._notify(TEST_RESULTS)

    def update_test_result(self, result: TestResult) -> None:
        for idx, existing in enumerate(self._results):
            if existing.id == result.id:
                self._results[idx] = result
                self._notify(TEST_RESULTS)
                return

    def get_test_run(self, run_id: str) -> TestRun | None:
        return next((run for run in self._runs if run.id == run_id), None)

    def get_test_result(self, result_id: str) -> TestResult | None:
        return next((result for result in self._results if result.id == result_id), None)

    def running_run_for_market(self, market_id: str) -> TestRun | None:
        return next(
            (run for run in self._runs if run.market_id == market_id and run.status == RunStatus.RUNNING),
            None,
        )

    def results_for_run(self, run_id: str) -> list[TestResult]:
        return [result for result in self._results if result.test_run_id == run_id]

    def snapshot(self) -> dict[str, Any]:
        return {
            "markets": dump_records(self._markets),
            "testRuns": dump_records(self._runs),
            "testResults": dump_records(self._results),
            "loading": self.loading,
            "error": self.error,
        }


class PersistenceSync:
    """Writes the full snapshot of a collection to the store whenever it changes."""

    def __init__(self, repository: AutotestRepository, store: KeyValueStore):
        self._repository = repository
        self._store = store
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._repository.subscribe(self._on_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, collection: str, repository: AutotestRepository) -> None:
        if collection == TEST_RUNS:
            self._write(TEST_RUNS_KEY, dump_records(repository.test_runs))
        elif collection == TEST_RESULTS:
            self._write(TEST_RESULTS_KEY, dump_records(repository.test_results))

    def _write(self, key: str, payload: list[dict[str, Any]]) -> None:
        self._store.set_item(key, json.dumps(payload))
        logger.debug("db.snapshot.write", key=key, count=len(payload))
