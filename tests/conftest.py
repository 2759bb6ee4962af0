from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import httpx
import pytest

from qa_panel.api.app import create_app
from qa_panel.db.repository import AutotestRepository
from qa_panel.db.store import KeyValueStore
from qa_panel.engine.bootstrap import AutotestService
from qa_panel.engine.controller import RunController
from qa_panel.engine.policy import SimulationPolicy
from qa_panel.engine.simulation import SimulationEngine


class ManualTimer:
    def __init__(self, seq: int, due: int, period: int | None, callback: Callable[[], None], name: str):
        self.seq = seq
        self.due = due
        self.period = period
        self.callback = callback
        self.name = name
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Fake clock: timers only fire when the test calls ``advance``."""

    def __init__(self) -> None:
        self.now = 0
        self._seq = 0
        self._timers: list[ManualTimer] = []

    def _add(self, due: int, period: int | None, callback: Callable[[], None], name: str) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self._seq, due, period, callback, name)
        self._timers.append(timer)
        return timer

    def call_every(self, period_ms: int, callback: Callable[[], None], name: str = "") -> ManualTimer:
        return self._add(self.now + period_ms, period_ms, callback, name)

    def call_later(self, delay_ms: int, callback: Callable[[], None], name: str = "") -> ManualTimer:
        return self._add(self.now + delay_ms, None, callback, name)

    def _live(self) -> list[ManualTimer]:
        self._timers = [timer for timer in self._timers if not timer.cancelled]
        return self._timers

    @property
    def pending(self) -> int:
        return len(self._live())

    def timers(self, prefix: str = "") -> list[ManualTimer]:
        return [timer for timer in self._live() if timer.name.startswith(prefix)]

    def cancel_all(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._live()

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [timer for timer in self._live() if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.now = timer.due
            if timer.period is None:
                timer.cancel()
            else:
                timer.due += timer.period
            timer.callback()
        self.now = target


class ScriptedRandom:
    """Fixed-sequence random source; falls back to defaults once a script runs out."""

    def __init__(self, ints: Iterable[int] = (), floats: Iterable[float] = (), default_float: float = 0.5):
        self.ints = list(ints)
        self.floats = list(floats)
        self.default_float = default_float
        self.randint_calls: list[tuple[int, int]] = []
        self.random_calls = 0

    def randint(self, a: int, b: int) -> int:
        self.randint_calls.append((a, b))
        value = self.ints.pop(0) if self.ints else a
        assert a <= value <= b, f"scripted {value} outside [{a}, {b}]"
        return value

    def random(self) -> float:
        self.random_calls += 1
        return self.floats.pop(0) if self.floats else self.default_float


@pytest.fixture()
def policy() -> SimulationPolicy:
    return SimulationPolicy()


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def rng() -> ScriptedRandom:
    return ScriptedRandom()


@pytest.fixture()
def repository() -> AutotestRepository:
    return AutotestRepository()


@pytest.fixture()
def engine(repository, scheduler, rng, policy) -> SimulationEngine:
    return SimulationEngine(repository, scheduler, rng=rng, policy=policy)


@pytest.fixture()
def controller(repository, engine, scheduler, rng, policy) -> RunController:
    return RunController(repository, engine, scheduler, rng=rng, policy=policy)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "state.db"


@pytest.fixture()
def store(db_path: Path) -> KeyValueStore:
    return KeyValueStore(db_path)


@pytest.fixture()
def service(db_path, scheduler, rng, policy) -> AutotestService:
    svc = AutotestService(db_path, scheduler=scheduler, rng=rng, policy=policy)
    yield svc
    svc.shutdown()


@pytest.fixture()
async def client(service: AutotestService) -> httpx.AsyncClient:
    service.start()
    app = create_app(service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture()
def make_service(db_path, policy):
    created: list[AutotestService] = []

    def _make(ints: Iterable[int] = ()) -> AutotestService:
        svc = AutotestService(db_path, scheduler=ManualScheduler(), rng=ScriptedRandom(ints=ints), policy=policy)
        created.append(svc)
        return svc

    yield _make
    for svc in created:
        svc.shutdown()
