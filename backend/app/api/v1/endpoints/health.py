"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_cache, get_executor, get_retriever, get_session_store
from app.utils.cache import ResponseCache
from db.safe_query import QueryExecutor
from memory.store import SessionStore
from rag.retriever import SchemaRetriever

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Liveness probe.

    Returns:
        Status dict
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness(
    executor: QueryExecutor = Depends(get_executor),
    retriever: SchemaRetriever = Depends(get_retriever),
    cache: ResponseCache = Depends(get_cache),
    sessions: SessionStore = Depends(get_session_store),
):
    """Report on every backing service; never raises."""
    database = await executor.health_check()
    schema_index = await retriever.stats()
    active = await sessions.size()
    session_info = {"active": active} if active >= 0 else {"active": None, "error": "Session store is not reachable."}
    healthy = database["healthy"] and schema_index["is_connected"] and active >= 0
    return {
        "status": "ok" if healthy else "degraded",
        "database": database,
        "schema_index": schema_index,
        "cache": {"keys": len(cache)},
        "sessions": session_info,
    }
