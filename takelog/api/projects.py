import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Request, status
from fastapi.responses import StreamingResponse

from takelog.api.deps import Engine
from takelog.middleware.request_context import create_request_context, envelope_success
from takelog.schemas.envelope import EnvelopeResponse
from takelog.schemas.project import ProjectCreate, ProjectSettingsUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=EnvelopeResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: Request,
    body: ProjectCreate,
    engine: Engine,
) -> EnvelopeResponse:
    context = create_request_context(request)
    project = await engine.create_project(body)
    return envelope_success(context, project)


@router.get("/{project_id}", response_model=EnvelopeResponse)
async def get_project(
    request: Request,
    project_id: str,
    engine: Engine,
) -> EnvelopeResponse:
    context = create_request_context(request)
    project = await engine.get_project(project_id)
    return envelope_success(context, project)


@router.patch("/{project_id}/settings", response_model=EnvelopeResponse)
async def update_project_settings(
    request: Request,
    project_id: str,
    body: ProjectSettingsUpdate,
    engine: Engine,
) -> EnvelopeResponse:
    """Update project settings.

    Once the project has takes only the camera count may change, and only
    upwards.
    """
    context = create_request_context(request)
    project = await engine.update_project_settings(project_id, body)
    return envelope_success(context, project)


@router.delete("/{project_id}", response_model=EnvelopeResponse)
async def delete_project(
    request: Request,
    project_id: str,
    engine: Engine,
) -> EnvelopeResponse:
    """Delete a project and all of its takes."""
    context = create_request_context(request)
    await engine.delete_project(project_id)
    return envelope_success(context, {"id": project_id, "deleted": True})


@router.get("/{project_id}/events")
async def stream_project_events(project_id: str, engine: Engine) -> StreamingResponse:
    """Server-Sent Events stream of workflow transitions and commits."""
    await engine.get_project(project_id)

    async def event_stream() -> AsyncGenerator[str, None]:
        async for event in engine.subscribe(project_id):
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
