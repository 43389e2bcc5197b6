import threading
import time
from collections import OrderedDict
from typing import List, Optional

import redis.asyncio as redis

from core.config import settings
from core.logging import get_logger
from memory.models import SessionState, Turn

logger = get_logger(__name__)


class SessionStore:
    """Per-conversation turn history with expiry."""

    async def get(self, session_id: str) -> List[Turn]:
        raise NotImplementedError

    async def put(self, session_id: str, turns: List[Turn]) -> None:
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemorySessionStore(SessionStore):
    """
    Process-local store. Expiry is checked on read; expired sessions are
    also purged opportunistically on write. When more than `max_sessions`
    are held, the least recently touched session is dropped.
    """

    def __init__(self, ttl_seconds: int = 3600, max_sessions: int = 10000, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: "OrderedDict[str, SessionState]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, state: SessionState, now: float) -> bool:
        return now - state.last_access > self.ttl_seconds

    async def get(self, session_id: str) -> List[Turn]:
        now = self._clock()
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return []
            if self._expired(state, now):
                del self._sessions[session_id]
                return []
            return list(state.turns)

    async def put(self, session_id: str, turns: List[Turn]) -> None:
        now = self._clock()
        with self._lock:
            state = self._sessions.pop(session_id, None)
            if state is None or self._expired(state, now):
                state = SessionState(created_at=now)
            state.turns = list(turns)
            state.last_access = now
            self._sessions[session_id] = state

            self._purge_expired(now)
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug(f"Session store full, evicted session {evicted}")

    def _purge_expired(self, now: float) -> None:
        # Ordered by last write, so expired sessions sit at the front.
        while self._sessions:
            oldest_id, oldest = next(iter(self._sessions.items()))
            if not self._expired(oldest, now):
                break
            del self._sessions[oldest_id]

    async def size(self) -> int:
        with self._lock:
            return len(self._sessions)


class RedisSessionStore(SessionStore):
    """Redis-backed store; TTL is enforced by SETEX and refreshed on every put."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 3600, prefix: str = "asksql:session:"):
        self._redis = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def get(self, session_id: str) -> List[Turn]:
        try:
            raw = await self._redis.get(self._key(session_id))
        except Exception as e:
            logger.error(f"Redis get failed: {e}")
            return []
        if not raw:
            return []
        return list(SessionState.model_validate_json(raw).turns)

    async def put(self, session_id: str, turns: List[Turn]) -> None:
        state = SessionState(turns=list(turns))
        try:
            await self._redis.setex(self._key(session_id), self.ttl_seconds, state.model_dump_json())
        except Exception as e:
            logger.error(f"Redis set failed: {e}")

    async def size(self) -> int:
        """Number of live sessions, or -1 when Redis cannot be scanned."""
        count = 0
        try:
            async for _ in self._redis.scan_iter(match=f"{self.prefix}*"):
                count += 1
        except Exception as e:
            logger.error(f"Redis scan failed: {e}")
            return -1
        return count

    async def close(self) -> None:
        await self._redis.aclose()


def build_session_store(backend: Optional[str] = None) -> SessionStore:
    backend = (backend or settings.SESSION_BACKEND).lower()
    if backend == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisSessionStore(client, ttl_seconds=settings.SESSION_TTL_SECONDS)
    return MemorySessionStore(
        ttl_seconds=settings.SESSION_TTL_SECONDS,
        max_sessions=settings.SESSION_MAX_SESSIONS,
    )
