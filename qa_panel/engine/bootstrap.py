from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from qa_panel.core.logger import get_logger
from qa_panel.db.repository import AutotestRepository, PersistenceSync
from qa_panel.db.store import TEST_RESULTS_KEY, TEST_RUNS_KEY, KeyValueStore
from qa_panel.engine.controller import RunController
from qa_panel.engine.policy import SimulationPolicy
from qa_panel.engine.scheduler import AsyncioScheduler, Scheduler
from qa_panel.engine.simulation import RandomSource, SimulationEngine, default_random_source
from qa_panel.state.autotest_state import TEST_RESULT_LIST, TEST_RUN_LIST, RunStatus
from qa_panel.state.seed_data import seed_markets, seed_test_results, seed_test_runs

logger = get_logger(__name__)


def _load_snapshot(store: KeyValueStore, key: str, adapter: TypeAdapter) -> list | None:
    raw = store.get_item(key)
    if raw is None:
        logger.info("autotests.hydrate.seed", key=key, reason="missing")
        return None
    try:
        return adapter.validate_json(raw)
    except ValidationError as exc:
        logger.error("autotests.hydrate.parse_failed", key=key, error=str(exc), errors=exc.error_count())
        return None


def hydrate_repository(repository: AutotestRepository, store: KeyValueStore, engine: SimulationEngine) -> list[str]:
    """Load persisted snapshots (or the seed data) and resume in-flight runs.

    Results are loaded before runs so a resumed run can pick up the results
    it emitted before the restart. Returns the ids of resumed runs.
    """
    repository.set_markets(seed_markets())

    results = _load_snapshot(store, TEST_RESULTS_KEY, TEST_RESULT_LIST)
    repository.set_test_results(results if results is not None else seed_test_results())

    runs = _load_snapshot(store, TEST_RUNS_KEY, TEST_RUN_LIST)
    if runs is None:
        repository.set_test_runs(seed_test_runs())
        return []

    repository.set_test_runs(runs)
    resumed: list[str] = []
    for run in runs:
        if run.status == RunStatus.RUNNING:
            engine.begin(run, resume=True)
            resumed.append(run.id)
    logger.info("autotests.hydrate.done", runs=len(runs), results=len(repository.test_results), resumed=len(resumed))
    return resumed


class AutotestService:
    """Process-scoped container wiring the store, repository, engine and controller."""

    def __init__(
        self,
        db_path: Path | None = None,
        scheduler: Scheduler | None = None,
        rng: RandomSource | None = None,
        policy: SimulationPolicy | None = None,
    ):
        self.store = KeyValueStore(db_path)
        self.repository = AutotestRepository()
        self.scheduler = scheduler or AsyncioScheduler()
        self.policy = policy or SimulationPolicy.from_settings()
        rng = rng or default_random_source()
        self.engine = SimulationEngine(self.repository, self.scheduler, rng=rng, policy=self.policy)
        self.controller = RunController(self.repository, self.engine, self.scheduler, rng=rng, policy=self.policy)
        self._sync = PersistenceSync(self.repository, self.store)
        self.resumed_run_ids: list[str] = []
        self.started = False

    def start(self) -> None:
        if self.started:
            return
        self.started = True
        self._sync.attach()
        self.resumed_run_ids = hydrate_repository(self.repository, self.store, self.engine)

    def shutdown(self) -> None:
        # running runs stay "running" in the store and resume on the next start
        self.engine.shutdown()
        self.scheduler.cancel_all()
        self._sync.detach()
        self.started = False

    def start_test_run(self, market_id: str) -> None:
        self.controller.start_test_run(market_id)

    def stop_test_run(self, test_run_id: str) -> None:
        self.controller.stop_test_run(test_run_id)

    def rerun_test(self, test_result_id: str) -> None:
        self.controller.rerun_test(test_result_id)

    def state(self) -> dict[str, Any]:
        return self.repository.snapshot()
