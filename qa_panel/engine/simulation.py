from __future__ import annotations

from dataclasses import dataclass, field
import math
import random
import uuid
from typing import Protocol

from qa_panel.core.logger import get_logger
from qa_panel.db.repository import AutotestRepository
from qa_panel.engine.policy import SimulationPolicy, round_half_up
from qa_panel.engine.scheduler import Scheduler, TimerHandle
from qa_panel.state.autotest_state import (
    ACTUAL_FAILED,
    ACTUAL_RUNNING,
    ACTUAL_SUCCESS,
    EXPECTED_SUCCESS,
    ResultStatus,
    RunStatus,
    TestResult,
    TestRun,
    epoch_ms,
    utc_now_iso,
)

logger = get_logger(__name__)


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...

    def random(self) -> float: ...


def default_random_source() -> RandomSource:
    return random.Random()


def resolve_outcome(result: TestResult, rng: RandomSource, policy: SimulationPolicy, refresh_timestamp: bool = True) -> TestResult:
    """Draw a pass/fail outcome for a single result, independently of any other."""
    passed = rng.random() > policy.failure_rate
    update: dict = {
        "status": ResultStatus.PASSED if passed else ResultStatus.FAILED,
        "actual": ACTUAL_SUCCESS if passed else ACTUAL_FAILED,
        "error_message": None if passed else policy.failure_message,
    }
    if refresh_timestamp:
        update["timestamp"] = utc_now_iso()
    return result.model_copy(update=update)


@dataclass
class _RunWork:
    run: TestRun
    total_tests: int
    ticks: int
    completed: int
    results: list[TestResult] = field(default_factory=list)
    timer: TimerHandle | None = None


class SimulationEngine:
    """Drives simulated runs from 0 to 100 percent on periodic timers.

    Working state is keyed by run id and lives only while the run's timer does:
    it is created by ``begin`` and dropped on completion or ``cancel``.
    """

    def __init__(
        self,
        repository: AutotestRepository,
        scheduler: Scheduler,
        rng: RandomSource | None = None,
        policy: SimulationPolicy | None = None,
    ):
        self._repository = repository
        self._scheduler = scheduler
        self._rng = rng or default_random_source()
        self._policy = policy or SimulationPolicy.from_settings()
        self._work: dict[str, _RunWork] = {}

    @property
    def policy(self) -> SimulationPolicy:
        return self._policy

    def is_active(self, run_id: str) -> bool:
        return run_id in self._work

    def active_run_ids(self) -> list[str]:
        return list(self._work)

    def begin(self, run: TestRun, resume: bool = False) -> None:
        if run.id in self._work:
            return

        policy = self._policy
        total_tests = run.total_tests or self._rng.randint(policy.total_tests_min, policy.total_tests_max)
        duration_ms = self._rng.randint(policy.duration_min_ms, policy.duration_max_ms)
        ticks = policy.tick_count(duration_ms)

        completed = run.passed_tests + run.failed_tests
        if resume and run.progress > 0:
            completed = round_half_up(run.progress / 100 * total_tests)

        work = _RunWork(run=run, total_tests=total_tests, ticks=ticks, completed=completed)
        if resume and completed > 0:
            # results emitted before the restart are still owed an outcome
            pending = [result for result in self._repository.results_for_run(run.id) if result.is_running]
            work.results = pending[-completed:]

        self._work[run.id] = work
        work.timer = self._scheduler.call_every(policy.tick_interval_ms, lambda: self._tick(run.id), name=f"sim:{run.id}")
        logger.info(
            "engine.run.begin",
            run_id=run.id,
            market_id=run.market_id,
            resume=resume,
            total_tests=total_tests,
            duration_ms=duration_ms,
            ticks=ticks,
            completed=completed,
        )

    def cancel(self, run_id: str) -> bool:
        work = self._work.pop(run_id, None)
        if work is None:
            return False
        if work.timer is not None:
            work.timer.cancel()
        logger.info("engine.run.cancel", run_id=run_id, completed=work.completed, total_tests=work.total_tests)
        return True

    def shutdown(self) -> None:
        for run_id in list(self._work):
            work = self._work.pop(run_id)
            if work.timer is not None:
                work.timer.cancel()
        logger.info("engine.shutdown")

    def _tick(self, run_id: str) -> None:
        work = self._work.get(run_id)
        if work is None:
            return
        try:
            self._advance(work)
        except Exception as exc:
            logger.exception("engine.run.tick_failed", run_id=run_id)
            self._abort(run_id, exc)

    def _advance(self, work: _RunWork) -> None:
        run_id = work.run.id
        total = work.total_tests
        remaining = total - work.completed
        ticks_left = max(1, work.ticks - math.floor(work.completed / total * work.ticks))
        per_tick = max(1, math.ceil(remaining / ticks_left))

        emitted = 0
        while emitted < per_tick and work.completed < total:
            result = TestResult(
                id=f"res-{run_id}-{epoch_ms()}-{uuid.uuid4().hex[:4]}",
                test_run_id=run_id,
                test_name=f"Test {work.completed + 1}",
                expected=EXPECTED_SUCCESS,
                actual=ACTUAL_RUNNING,
                status=ResultStatus.RUNNING,
                timestamp=utc_now_iso(),
            )
            work.results.append(result)
            work.completed += 1
            emitted += 1
            self._repository.add_test_result(result)

        progress = round_half_up(work.completed / total * 100)
        self._repository.update_test_run(work.run.model_copy(update={"progress": progress, "total_tests": total}))
        logger.debug("engine.run.tick", run_id=run_id, emitted=emitted, completed=work.completed, progress=progress)

        if work.completed >= total:
            self._finalize(work)

    def _abort(self, run_id: str, exc: Exception) -> None:
        """Drop a run whose tick failed and release its market."""
        self.cancel(run_id)
        run = self._repository.get_test_run(run_id)
        if run is None or run.status != RunStatus.RUNNING:
            return
        self._repository.update_test_run(run.model_copy(update={"status": RunStatus.STOPPED, "end_time": utc_now_iso()}))
        logger.warning("engine.run.aborted", run_id=run_id, progress=run.progress, error=str(exc))

    def _finalize(self, work: _RunWork) -> None:
        run_id = work.run.id
        finalized = [resolve_outcome(result, self._rng, self._policy) for result in work.results]
        for result in finalized:
            self._repository.update_test_result(result)

        passed = sum(1 for result in finalized if result.status == ResultStatus.PASSED)
        failed = len(finalized) - passed

        # tests counted by progress before a restart but with no stored result
        unrecorded = max(0, work.total_tests - len(finalized))
        for _ in range(unrecorded):
            if self._rng.random() > self._policy.failure_rate:
                passed += 1
            else:
                failed += 1
        if unrecorded:
            logger.warning("engine.run.unrecorded_results", run_id=run_id, count=unrecorded)

        self._repository.update_test_run(
            work.run.model_copy(
                update={
                    "status": RunStatus.COMPLETED,
                    "progress": 100,
                    "passed_tests": passed,
                    "failed_tests": failed,
                    "end_time": utc_now_iso(),
                    "total_tests": work.total_tests,
                }
            )
        )

        if work.timer is not None:
            work.timer.cancel()
        self._work.pop(run_id, None)
        logger.info("engine.run.completed", run_id=run_id, passed=passed, failed=failed, total_tests=work.total_tests)
