from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional
import time

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


class ResultStatus(str, Enum):
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


EXPECTED_SUCCESS = "Success"
ACTUAL_RUNNING = "Running"
ACTUAL_SUCCESS = "Success"
ACTUAL_FAILED = "Failed"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def epoch_ms() -> int:
    return int(time.time() * 1000)


class _Record(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Market(_Record):
    id: str
    name: str
    region: Optional[str] = None
    description: Optional[str] = None


class TestRun(_Record):
    __test__: ClassVar[bool] = False

    id: str
    market_id: str
    status: RunStatus = RunStatus.RUNNING
    progress: int = Field(default=0, ge=0, le=100)
    total_tests: int = Field(default=0, ge=0)
    passed_tests: int = Field(default=0, ge=0)
    failed_tests: int = Field(default=0, ge=0)
    start_time: str = Field(default_factory=utc_now_iso)
    end_time: Optional[str] = None

    @property
    def finished_tests(self) -> int:
        return self.passed_tests + self.failed_tests


class TestResult(_Record):
    __test__: ClassVar[bool] = False

    id: str
    test_run_id: str
    test_name: str
    expected: str = EXPECTED_SUCCESS
    actual: str = ACTUAL_RUNNING
    status: ResultStatus = ResultStatus.RUNNING
    timestamp: str = Field(default_factory=utc_now_iso)
    error_message: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == ResultStatus.RUNNING


TEST_RUN_LIST = TypeAdapter(list[TestRun])
TEST_RESULT_LIST = TypeAdapter(list[TestResult])


def dump_records(records: list[_Record]) -> list[dict[str, Any]]:
    return [record.to_json_dict() for record in records]
