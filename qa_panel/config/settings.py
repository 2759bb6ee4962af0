from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_ENV: str = "production"
    ALLOWED_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    LOG_LEVEL: str = "INFO"

    STATE_DB_PATH: str = "./workspace/state.db"

    SIM_TICK_INTERVAL_MS: int = 400
    SIM_DURATION_MIN_MS: int = 4000
    SIM_DURATION_MAX_MS: int = 7999
    SIM_TOTAL_TESTS_MIN: int = 5
    SIM_TOTAL_TESTS_MAX: int = 19
    RUN_TOTAL_TESTS_MIN: int = 6
    RUN_TOTAL_TESTS_MAX: int = 15
    SIM_FAILURE_RATE: float = 0.2
    SIM_FAILURE_MESSAGE: str = "Test failed due to timeout"
    RERUN_DELAY_MS: int = 800

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def state_db_path(self) -> Path:
        return Path(self.STATE_DB_PATH).expanduser().resolve()


settings = Settings()
