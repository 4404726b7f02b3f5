"""Error envelope returned by the API for every failed request."""

from datetime import datetime

from pydantic import BaseModel


class ResponseMeta(BaseModel):
    api_version: str = "1.0"
    processing_time_ms: int
    timestamp: datetime


class ErrorLocation(BaseModel):
    """Where an error originated: a form field, an upload, or a pipeline stage."""

    field: str | None = None
    file_name: str | None = None
    stage: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str
    location: ErrorLocation | None = None
    retryable: bool = False
    retry_after_ms: int | None = None
    suggested_fix: str | None = None  # Human-readable fix suggestion


class EnvelopeResponse(BaseModel):
    request_id: str
    error: ErrorInfo
    meta: ResponseMeta
