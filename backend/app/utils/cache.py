import copy
import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional

from core.logging import get_logger

logger = get_logger(__name__)


def normalize_question(question: str) -> str:
    return (question or "").strip().casefold()


def make_cache_key(question: str) -> str:
    """Content address of the normalized question."""
    return f"ask:{hashlib.sha256(normalize_question(question).encode('utf-8')).hexdigest()}"


class ResponseCache:
    """
    In-process memo of full pipeline output, keyed by the user's original
    question. Entries expire after `ttl_seconds`; past `max_entries` the
    oldest insert is evicted first.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1000, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def get(self, question: str) -> Optional[Dict[str, Any]]:
        key = make_cache_key(question)
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                self.misses += 1
                return None
            if item["expires_at"] <= now:
                del self._entries[key]
                self.expirations += 1
                self.misses += 1
                logger.debug(f"Cache EXPIRED: {key}")
                return None
            self.hits += 1
            return copy.deepcopy(item["value"])

    def set(self, question: str, value: Dict[str, Any]) -> None:
        if self.ttl_seconds <= 0 or self.max_entries <= 0:
            return
        key = make_cache_key(question)
        now = self._clock()
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = {"expires_at": now + self.ttl_seconds, "value": copy.deepcopy(value)}
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
        logger.debug(f"Cache SET: {key}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "hits": self.hits,
                "misses": self.misses,
                "keys": len(self._entries),
                "evictions": self.evictions,
                "expirations": self.expirations,
                "ttl_seconds": self.ttl_seconds,
                "max_entries": self.max_entries,
            }
