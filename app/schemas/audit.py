"""Audit-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.errors.exceptions import ValidationError
from app.schemas.common import AuditMode
from app.services.validators import validate_blocked_patterns, validate_urls


class _CamelModel(BaseModel):
    """Accepts the camelCase keys callers send as well as field names."""

    model_config = ConfigDict(populate_by_name=True)


# === Request Models ===


class AsyncAuditRequest(_CamelModel):
    """Request model for the /audit-async endpoint."""

    urls: list[str]
    blocked_requests: list[str] = Field(default_factory=list, alias="blockedRequests")

    @field_validator("urls")
    @classmethod
    def _check_urls(cls, value: list[str]) -> list[str]:
        try:
            return validate_urls(value)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @field_validator("blocked_requests", mode="before")
    @classmethod
    def _check_blocked(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, list):
            return value  # let pydantic report the type error
        try:
            return validate_blocked_patterns(value)
        except ValidationError as e:
            raise ValueError(str(e)) from e


class AuditRequest(AsyncAuditRequest):
    """Request model for the synchronous /audit endpoint."""

    mode: AuditMode = AuditMode.MOBILE
    store_data: bool = Field(default=False, alias="storeData")


# === Response Models ===


class ScheduledTaskResponse(BaseModel):
    name: str
    urls: list[str]


class AsyncAuditResponse(BaseModel):
    tasks: list[ScheduledTaskResponse]


class ActiveTask(_CamelModel):
    name: str
    id: str
    schedule_time: str | None = Field(default=None, alias="scheduleTime")
    create_time: str | None = Field(default=None, alias="createTime")
    dispatch_count: int = Field(default=0, alias="dispatchCount")
    response_count: int = Field(default=0, alias="responseCount")
    last_attempt_status: str | None = Field(default=None, alias="lastAttemptStatus")
    urls: list[str] = []


class ActiveTasksResponse(_CamelModel):
    tasks: list[ActiveTask]
    next_page_token: str | None = Field(default=None, alias="nextPageToken")


class ErrorDetail(BaseModel):
    code: int
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail
