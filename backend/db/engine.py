from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from core.config import settings


def make_engine(url: str = None) -> Engine:
    """
    Pooled SQL Server engine. The pool never grows past DB_POOL_MAX; a
    caller waits up to DB_POOL_TIMEOUT for a free connection.
    """
    return create_engine(
        url or settings.DATABASE_URL,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_MAX,
        max_overflow=0,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_IDLE_TIMEOUT,
        pool_pre_ping=True,
        echo=False,
        connect_args={
            "login_timeout": settings.DB_CONNECTION_TIMEOUT,
            # server-side statement timeout, seconds
            "timeout": max(1, settings.QUERY_TIMEOUT_MS // 1000),
        },
    )


@lru_cache
def get_engine() -> Engine:
    # Nothing connects until the first query.
    return make_engine()
