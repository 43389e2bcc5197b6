"""
Retry and deadline helpers shared by every stage that calls out of process.

A RetryPolicy is {max_attempts, exponential backoff, per-attempt timeout}.
The per-attempt deadline only stops the local wait; the remote call may keep
running on the other side.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.utils.exceptions import ExternalCallTimeout
from core.logging import get_logger

logger = get_logger(__name__)


async def with_deadline(awaitable: Awaitable[Any], seconds: Optional[float], label: str) -> Any:
    """Await `awaitable`, raising ExternalCallTimeout once `seconds` elapse."""
    if not seconds or seconds <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise ExternalCallTimeout(label, seconds) from exc


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    attempt_timeout: Optional[float] = None
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    should_retry: Optional[Callable[[BaseException], bool]] = None

    def _retryable(self, exc: BaseException) -> bool:
        if not isinstance(exc, self.retry_on):
            return False
        if self.should_retry is not None:
            return self.should_retry(exc)
        return True

    def backoff(self, attempt: int) -> float:
        """Delay slept after failed attempt number `attempt` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    async def run(self, fn: Callable[..., Awaitable[Any]], *args, label: str = "call", **kwargs) -> Any:
        """
        Call `fn(*args, **kwargs)` until it succeeds or attempts run out.

        The exception of the last attempt is re-raised unchanged so that the
        caller can wrap it in its own error kind.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(self._retryable),
            before_sleep=lambda state: logger.warning(
                f"{label} attempt {state.attempt_number}/{self.max_attempts} failed: "
                f"{state.outcome.exception()}"
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await with_deadline(fn(*args, **kwargs), self.attempt_timeout, label)
