from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field

from qa_panel.state.autotest_state import utc_now_iso

DISTRIBUTION_NAME = "qa-admin-panel"

try:
    API_VERSION = version(DISTRIBUTION_NAME)
except PackageNotFoundError:
    # running from a source checkout without an install
    API_VERSION = "0.0.0+local"


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class ApiError(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class Envelope(BaseModel):
    """Body shape shared by every endpoint, success or not."""

    success: bool
    data: Any = None
    error: Optional[ApiError] = None
    request_id: str = Field(default_factory=new_request_id)
    timestamp: str = Field(default_factory=utc_now_iso)
    version: str = API_VERSION


def response_envelope(success: bool, data: Any = None, error: dict | None = None, request_id: str | None = None) -> dict:
    envelope = Envelope(success=success, data=data, error=error, request_id=request_id or new_request_id())
    return envelope.model_dump(mode="json")


def error_payload(code: str, message: str, details: dict | None = None) -> dict:
    return ApiError(code=code, message=message, details=details or {}).model_dump()
