from __future__ import annotations

from dataclasses import dataclass
import math

from qa_panel.config.settings import Settings, settings as default_settings


@dataclass(frozen=True)
class SimulationPolicy:
    tick_interval_ms: int = 400
    duration_min_ms: int = 4000
    duration_max_ms: int = 7999
    total_tests_min: int = 5
    total_tests_max: int = 19
    run_total_tests_min: int = 6
    run_total_tests_max: int = 15
    failure_rate: float = 0.2
    failure_message: str = "Test failed due to timeout"
    rerun_delay_ms: int = 800

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "SimulationPolicy":
        cfg = cfg or default_settings
        return cls(
            tick_interval_ms=max(1, int(cfg.SIM_TICK_INTERVAL_MS)),
            duration_min_ms=int(cfg.SIM_DURATION_MIN_MS),
            duration_max_ms=max(int(cfg.SIM_DURATION_MIN_MS), int(cfg.SIM_DURATION_MAX_MS)),
            total_tests_min=max(1, int(cfg.SIM_TOTAL_TESTS_MIN)),
            total_tests_max=max(1, int(cfg.SIM_TOTAL_TESTS_MIN), int(cfg.SIM_TOTAL_TESTS_MAX)),
            run_total_tests_min=max(1, int(cfg.RUN_TOTAL_TESTS_MIN)),
            run_total_tests_max=max(1, int(cfg.RUN_TOTAL_TESTS_MIN), int(cfg.RUN_TOTAL_TESTS_MAX)),
            failure_rate=float(cfg.SIM_FAILURE_RATE),
            failure_message=str(cfg.SIM_FAILURE_MESSAGE),
            rerun_delay_ms=max(0, int(cfg.RERUN_DELAY_MS)),
        )

    def tick_count(self, duration_ms: int) -> int:
        return max(1, math.ceil(duration_ms / self.tick_interval_ms))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
