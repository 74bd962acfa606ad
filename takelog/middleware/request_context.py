from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from uuid import uuid4

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from takelog.exceptions import TakeLogError
from takelog.schemas.envelope import EnvelopeResponse, ErrorInfo, ResponseMeta


@dataclass
class RequestContext:
    request_id: str
    start_time: float
    warnings: list[str]


def create_request_context(request: Request | None = None) -> RequestContext:
    # Reuse the caller's X-Request-ID so client and server logs line up
    request_id = request.headers.get("X-Request-ID") if request is not None else None
    return RequestContext(
        request_id=request_id or str(uuid4()),
        start_time=perf_counter(),
        warnings=[],
    )


def build_meta(context: RequestContext, api_version: str = "1.0") -> ResponseMeta:
    processing_time_ms = int((perf_counter() - context.start_time) * 1000)
    return ResponseMeta(
        api_version=api_version,
        processing_time_ms=processing_time_ms,
        timestamp=datetime.now(timezone.utc),
        warnings=context.warnings,
    )


def envelope_success(context: RequestContext, data: object) -> EnvelopeResponse:
    return EnvelopeResponse(
        request_id=context.request_id,
        data=jsonable_encoder(data),
        meta=build_meta(context),
    )


def envelope_error(context: RequestContext, error: ErrorInfo, status_code: int) -> JSONResponse:
    envelope = EnvelopeResponse(
        request_id=context.request_id,
        error=error,
        meta=build_meta(context),
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope.model_dump(exclude_none=True)),
    )


def envelope_error_from_exception(context: RequestContext, exc: TakeLogError) -> JSONResponse:
    """Convert a TakeLogError to an envelope error response."""
    return envelope_error(context, exc.to_error_info(), exc.status_code)
