from __future__ import annotations

from qa_panel.core.logger import get_logger
from qa_panel.db.repository import AutotestRepository
from qa_panel.engine.policy import SimulationPolicy
from qa_panel.engine.scheduler import Scheduler
from qa_panel.engine.simulation import RandomSource, SimulationEngine, default_random_source, resolve_outcome
from qa_panel.state.autotest_state import (
    ACTUAL_RUNNING,
    ResultStatus,
    RunStatus,
    TestRun,
    epoch_ms,
    utc_now_iso,
)

logger = get_logger(__name__)


class RunController:
    """Public start/stop/rerun operations.

    Invalid arguments are benign guards: the operation returns without
    touching any state and without raising.
    """

    def __init__(
        self,
        repository: AutotestRepository,
        engine: SimulationEngine,
        scheduler: Scheduler,
        rng: RandomSource | None = None,
        policy: SimulationPolicy | None = None,
    ):
        self._repository = repository
        self._engine = engine
        self._scheduler = scheduler
        self._rng = rng or default_random_source()
        self._policy = policy or engine.policy

    def _new_run_id(self) -> str:
        stamp = epoch_ms()
        while self._repository.get_test_run(f"run-{stamp}") is not None:
            stamp += 1
        return f"run-{stamp}"

    def start_test_run(self, market_id: str) -> None:
        existing = self._repository.running_run_for_market(market_id)
        if existing is not None:
            logger.info("autotests.start.skipped", market_id=market_id, running_run_id=existing.id)
            return

        run = TestRun(
            id=self._new_run_id(),
            market_id=market_id,
            status=RunStatus.RUNNING,
            progress=0,
            total_tests=self._rng.randint(self._policy.run_total_tests_min, self._policy.run_total_tests_max),
            passed_tests=0,
            failed_tests=0,
            start_time=utc_now_iso(),
        )
        self._repository.add_test_run(run)
        logger.info("autotests.start", market_id=market_id, run_id=run.id, total_tests=run.total_tests)
        self._engine.begin(run, resume=False)

    def stop_test_run(self, test_run_id: str) -> None:
        run = self._repository.get_test_run(test_run_id)
        if run is None:
            logger.info("autotests.stop.unknown", run_id=test_run_id)
            return

        # terminal runs are re-stamped as stopped too, counters untouched
        self._repository.update_test_run(
            run.model_copy(update={"status": RunStatus.STOPPED, "end_time": utc_now_iso()})
        )
        had_timer = self._engine.cancel(test_run_id)
        logger.warning("autotests.stop", run_id=test_run_id, progress=run.progress, had_timer=had_timer)

    def rerun_test(self, test_result_id: str) -> None:
        original = self._repository.get_test_result(test_result_id)
        if original is None:
            logger.info("autotests.rerun.unknown", result_id=test_result_id)
            return
        if original.status == ResultStatus.RUNNING:
            logger.info("autotests.rerun.skipped", result_id=test_result_id, reason="already_running")
            return

        self._repository.update_test_result(
            original.model_copy(update={"status": ResultStatus.RUNNING, "actual": ACTUAL_RUNNING})
        )
        logger.info("autotests.rerun", result_id=test_result_id, run_id=original.test_run_id, previous=original.status.value)

        def _resolve() -> None:
            # run-level counters are left untouched
            resolved = resolve_outcome(original, self._rng, self._policy, refresh_timestamp=False)
            self._repository.update_test_result(resolved)
            logger.info("autotests.rerun.resolved", result_id=test_result_id, status=resolved.status.value)

        self._scheduler.call_later(self._policy.rerun_delay_ms, _resolve, name=f"rerun:{test_result_id}")
