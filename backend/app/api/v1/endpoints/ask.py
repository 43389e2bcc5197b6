from fastapi import APIRouter, Depends

from app.api.deps import get_cache, get_pipeline
from app.schemas.chat import AskRequest, AskResponse, CacheStats, ErrorResponse
from app.services.pipeline import PipelineOrchestrator
from app.utils.cache import ResponseCache

router = APIRouter()


@router.post(
    "",
    response_model=AskResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Answer a question about the database",
)
async def ask(
    request: AskRequest,
    pipeline: PipelineOrchestrator = Depends(get_pipeline),
):
    """
    Translate the question into a read-only SQL query, run it and describe
    the result.

    **Features:**
    - Follow-up questions are resolved against the session's recent turns
    - Repeated questions are served from cache (`cached: true`)
    - Errors carry a stable `kind` tag
    """
    return await pipeline.ask(request.question, request.session_id)


@router.get("/cache/stats", response_model=CacheStats, summary="Response cache statistics")
def cache_stats(cache: ResponseCache = Depends(get_cache)):
    return cache.stats()
