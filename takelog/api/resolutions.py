from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from takelog.api.deps import Engine
from takelog.api.takes import save_result_response
from takelog.middleware.request_context import create_request_context
from takelog.schemas.resolution import ResolveRequest

router = APIRouter()


@router.post("/{handle}")
async def resolve_conflict(
    request: Request,
    handle: str,
    body: ResolveRequest,
    engine: Engine,
) -> JSONResponse:
    """Finish a pending save with renumber_forward, swap, overwrite or cancel."""
    context = create_request_context(request)
    result = await engine.resolve_conflict(handle, body.strategy)
    return save_result_response(context, result)
