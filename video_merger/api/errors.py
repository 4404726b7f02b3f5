"""Error envelopes for API responses."""

from datetime import datetime, timezone
from time import perf_counter
from typing import Optional
from uuid import uuid4

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from video_merger.exceptions import MergerError
from video_merger.schemas.envelope import EnvelopeResponse, ResponseMeta


def error_response(
    exc: MergerError,
    started_at: Optional[float] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Render a MergerError as an error envelope with the exception's HTTP status."""
    elapsed_ms = int((perf_counter() - started_at) * 1000) if started_at is not None else 0
    envelope = EnvelopeResponse(
        request_id=request_id or str(uuid4()),
        error=exc.to_error_info(),
        meta=ResponseMeta(
            processing_time_ms=elapsed_ms,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(envelope.model_dump(exclude_none=True)),
    )
