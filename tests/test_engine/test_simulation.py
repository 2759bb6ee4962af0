from __future__ import annotations

import math

import pytest

from qa_panel.db.repository import TEST_RESULTS, TEST_RUNS, AutotestRepository
from qa_panel.engine.simulation import SimulationEngine
from qa_panel.state.autotest_state import ResultStatus, RunStatus, TestResult, TestRun


def _running_run(run_id: str = "run-1", total_tests: int = 10, progress: int = 0) -> TestRun:
    return TestRun(id=run_id, market_id="market-1", status=RunStatus.RUNNING, total_tests=total_tests, progress=progress)


def _assert_run_invariants(collection: str, repo: AutotestRepository) -> None:
    if collection != TEST_RUNS:
        return
    for run in repo.test_runs:
        assert run.finished_tests <= run.total_tests
        assert (run.finished_tests == run.total_tests) == (run.status == RunStatus.COMPLETED)


def _tick_until_done(scheduler, repository: AutotestRepository, run_id: str, interval: int, limit: int = 100) -> int:
    ticks = 0
    while repository.get_test_run(run_id).status == RunStatus.RUNNING and ticks < limit:
        scheduler.advance(interval)
        ticks += 1
    return ticks


def test_run_completes_with_one_result_per_test(engine, repository, scheduler, rng, policy):
    rng.ints = [4000]
    run = _running_run(total_tests=10)
    repository.add_test_run(run)
    repository.subscribe(_assert_run_invariants)

    engine.begin(run)
    scheduler.advance(policy.tick_interval_ms)
    assert repository.get_test_run("run-1").progress == 10
    assert len(repository.results_for_run("run-1")) == 1

    scheduler.advance(9 * policy.tick_interval_ms)
    done = repository.get_test_run("run-1")
    assert done.status == RunStatus.COMPLETED
    assert done.progress == 100
    assert done.end_time is not None
    assert done.passed_tests + done.failed_tests == 10

    results = repository.results_for_run("run-1")
    assert [result.test_name for result in results] == [f"Test {i}" for i in range(1, 11)]
    assert all(result.status in {ResultStatus.PASSED, ResultStatus.FAILED} for result in results)
    assert not engine.is_active("run-1")
    assert scheduler.pending == 0


def test_begin_is_idempotent_per_run_id(engine, repository, scheduler, rng):
    rng.ints = [4000]
    run = _running_run(total_tests=7)
    repository.add_test_run(run)

    engine.begin(run)
    engine.begin(run)
    assert len(scheduler.timers("sim:")) == 1
    assert rng.randint_calls == [(4000, 7999)]

    scheduler.advance(10_000)
    assert len(repository.results_for_run("run-1")) == 7


def test_total_tests_is_drawn_when_unset(engine, repository, scheduler, rng):
    rng.ints = [12, 4000]
    run = _running_run(total_tests=0)
    repository.add_test_run(run)

    engine.begin(run)
    assert rng.randint_calls[0] == (5, 19)
    scheduler.advance(400)
    assert repository.get_test_run("run-1").total_tests == 12

    scheduler.advance(10_000)
    assert len(repository.results_for_run("run-1")) == 12


def test_each_result_draws_its_own_outcome(engine, repository, scheduler, rng):
    rng.ints = [4000]
    rng.floats = [0.1, 0.9, 0.2, 0.5, 0.05]
    run = _running_run(total_tests=5)
    repository.add_test_run(run)

    engine.begin(run)
    scheduler.advance(10_000)

    results = repository.results_for_run("run-1")
    assert [result.status for result in results] == [
        ResultStatus.FAILED,
        ResultStatus.PASSED,
        ResultStatus.FAILED,
        ResultStatus.PASSED,
        ResultStatus.FAILED,
    ]
    for result in results:
        if result.status == ResultStatus.FAILED:
            assert result.actual == "Failed"
            assert result.error_message == "Test failed due to timeout"
        else:
            assert result.actual == "Success"
            assert result.error_message is None

    done = repository.get_test_run("run-1")
    assert (done.passed_tests, done.failed_tests) == (2, 3)


@pytest.mark.parametrize("total_tests", [5, 12, 19])
@pytest.mark.parametrize("duration_ms", [4000, 5999, 7999])
def test_run_terminates_within_tick_budget(repository, scheduler, rng, policy, total_tests, duration_ms):
    rng.ints = [total_tests, duration_ms]
    engine = SimulationEngine(repository, scheduler, rng=rng, policy=policy)
    run = _running_run(total_tests=0)
    repository.add_test_run(run)
    repository.subscribe(_assert_run_invariants)

    engine.begin(run)
    ticks = _tick_until_done(scheduler, repository, "run-1", policy.tick_interval_ms)

    done = repository.get_test_run("run-1")
    assert done.status == RunStatus.COMPLETED
    assert ticks <= math.ceil(duration_ms / policy.tick_interval_ms) + 1
    assert done.passed_tests + done.failed_tests == total_tests
    assert len(repository.results_for_run("run-1")) == total_tests


def test_resume_derives_completed_count_from_progress(engine, repository, scheduler, rng):
    rng.ints = [4000]
    run = _running_run(total_tests=10, progress=40)
    prior = [
        TestResult(id=f"res-run-1-{i}", test_run_id="run-1", test_name=f"Test {i}")
        for i in range(1, 5)
    ]
    repository.set_test_results(prior)
    repository.set_test_runs([run])

    engine.begin(run, resume=True)
    scheduler.advance(400)
    results = repository.results_for_run("run-1")
    assert len(results) == 5
    assert results[-1].test_name == "Test 5"

    ticks = _tick_until_done(scheduler, repository, "run-1", 400)
    assert ticks == 5

    results = repository.results_for_run("run-1")
    assert [result.test_name for result in results] == [f"Test {i}" for i in range(1, 11)]
    assert all(not result.is_running for result in results)
    done = repository.get_test_run("run-1")
    assert done.passed_tests + done.failed_tests == 10


def test_progress_is_ignored_without_resume(engine, repository, scheduler, rng):
    rng.ints = [4000]
    run = _running_run(total_tests=10, progress=40)
    repository.add_test_run(run)

    engine.begin(run, resume=False)
    scheduler.advance(400)
    assert [result.test_name for result in repository.results_for_run("run-1")] == ["Test 1"]
    assert repository.get_test_run("run-1").progress == 10


def test_cancel_drops_timer_and_working_state(engine, repository, scheduler):
    run = _running_run(total_tests=10)
    repository.add_test_run(run)

    assert engine.cancel("run-1") is False
    engine.begin(run)
    scheduler.advance(400)
    assert engine.cancel("run-1") is True
    assert not engine.is_active("run-1")

    scheduler.advance(10_000)
    assert len(repository.results_for_run("run-1")) == 1
    assert repository.get_test_run("run-1").status == RunStatus.RUNNING


def test_shutdown_cancels_every_timer_without_touching_runs(engine, repository, scheduler):
    first = _running_run("run-1")
    second = _running_run("run-2")
    repository.set_test_runs([first, second])
    engine.begin(first)
    engine.begin(second)
    assert sorted(engine.active_run_ids()) == ["run-1", "run-2"]

    engine.shutdown()
    assert engine.active_run_ids() == []
    assert scheduler.pending == 0
    assert all(run.status == RunStatus.RUNNING for run in repository.test_runs)


def test_resume_without_stored_results_still_tallies_every_test(engine, repository, scheduler, rng):
    rng.ints = [4000]
    rng.floats = [0.9] * 6 + [0.1] * 4
    run = _running_run(total_tests=10, progress=40)
    repository.set_test_runs([run])

    engine.begin(run, resume=True)
    _tick_until_done(scheduler, repository, "run-1", 400)

    done = repository.get_test_run("run-1")
    assert done.status == RunStatus.COMPLETED
    assert len(repository.results_for_run("run-1")) == 6
    assert (done.passed_tests, done.failed_tests) == (6, 4)
    assert rng.random_calls == 10


def test_failed_tick_releases_run_and_market(engine, controller, repository, scheduler, rng):
    rng.ints = [4000]
    run = _running_run(total_tests=10)
    repository.add_test_run(run)
    sync_broken = {"on": True}

    def _flaky_sync(collection: str, repo: AutotestRepository) -> None:
        if collection == TEST_RESULTS and sync_broken["on"]:
            raise OSError("disk I/O error")

    repository.subscribe(_flaky_sync)
    engine.begin(run)
    scheduler.advance(400)
    sync_broken["on"] = False

    assert not engine.is_active("run-1")
    assert scheduler.pending == 0
    aborted = repository.get_test_run("run-1")
    assert aborted.status == RunStatus.STOPPED
    assert aborted.end_time is not None

    controller.start_test_run("market-1")
    restarted = repository.running_run_for_market("market-1")
    assert restarted is not None
    assert engine.is_active(restarted.id)
