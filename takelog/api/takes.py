import logging

from fastapi import APIRouter, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from takelog.api.deps import Engine
from takelog.middleware.request_context import (
    RequestContext,
    build_meta,
    create_request_context,
    envelope_success,
)
from takelog.schemas.envelope import EnvelopeResponse
from takelog.schemas.resolution import Committed, Failed, RangeEditRequest
from takelog.schemas.take import TakeEditRequest, TakeSaveRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def save_result_response(context: RequestContext, result) -> JSONResponse:
    """Render a SaveResult; failures carry both the result and its error."""
    if isinstance(result, Failed):
        status_code = 500 if result.error.code == "PERSISTENCE_ERROR" else status.HTTP_409_CONFLICT
        envelope = EnvelopeResponse(
            request_id=context.request_id,
            data=jsonable_encoder(result),
            error=result.error,
            meta=build_meta(context),
        )
    else:
        status_code = status.HTTP_201_CREATED if isinstance(result, Committed) else status.HTTP_200_OK
        envelope = envelope_success(context, result)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(envelope.model_dump(exclude_none=True)),
    )


@router.get("/{project_id}/takes", response_model=EnvelopeResponse)
async def list_takes(
    request: Request,
    project_id: str,
    engine: Engine,
) -> EnvelopeResponse:
    """List takes ordered by scene, take number and camera."""
    context = create_request_context(request)
    takes = await engine.list_takes(project_id)
    return envelope_success(context, {"takes": takes, "total": len(takes)})


@router.post("/{project_id}/takes")
async def save_take(
    request: Request,
    project_id: str,
    body: TakeSaveRequest,
    engine: Engine,
) -> JSONResponse:
    """Save a new take, or edit one when ``take_id`` is given.

    Collisions are not errors: the response carries ``conflicts_pending``
    with a resolution handle for POST /api/resolutions/{handle}.
    """
    context = create_request_context(request)
    edit = TakeEditRequest.model_validate({**body.model_dump(), "project_id": project_id})
    result = await engine.save_take(edit)
    logger.info(f"Save take in project {project_id}: {result.status}")
    return save_result_response(context, result)


@router.delete("/{project_id}/takes/{take_id}", response_model=EnvelopeResponse)
async def delete_take(
    request: Request,
    project_id: str,
    take_id: str,
    engine: Engine,
    close_gap: bool = Query(default=False, description="Shift later takes of the scene down by one"),
) -> EnvelopeResponse:
    context = create_request_context(request)
    shifted = await engine.delete_take(project_id, take_id, close_gap=close_gap)
    return envelope_success(context, {"id": take_id, "renumbered": shifted})


@router.post("/{project_id}/range-edits", response_model=EnvelopeResponse)
async def apply_range_edit(
    request: Request,
    project_id: str,
    body: RangeEditRequest,
    engine: Engine,
) -> EnvelopeResponse:
    """Set one field on every take numbered start..end (all or nothing)."""
    context = create_request_context(request)
    takes = await engine.apply_range_edit(body.range, body.value, project_id, body.disabled_fields)
    return envelope_success(context, {"takes": takes, "total": len(takes)})


@router.post(
    "/{project_id}/takes/{take_id}/cameras/{camera_id}/toggle",
    response_model=EnvelopeResponse,
)
async def toggle_camera_recording(
    request: Request,
    project_id: str,
    take_id: str,
    camera_id: int,
    engine: Engine,
) -> EnvelopeResponse:
    context = create_request_context(request)
    state = await engine.toggle_camera_recording(project_id, take_id, camera_id)
    return envelope_success(context, state)
