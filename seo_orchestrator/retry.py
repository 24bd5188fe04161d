import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from .json_tools import JsonParsingError
from .race import AggregateProviderError


logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("rate limit", "resource_exhausted", "quota")


def status_code_of(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_rate_limit_error(error: BaseException) -> bool:
    if status_code_of(error) == 429:
        return True
    text = (str(error) or repr(error)).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


def is_timeout_error(error: BaseException) -> bool:
    return isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))


def is_transient_error(error: BaseException) -> bool:
    """Rate limits, unusable JSON and timeouts are worth another attempt."""
    if isinstance(error, AggregateProviderError):
        return any(is_transient_error(err) for err in error.errors)
    if is_rate_limit_error(error):
        return True
    if isinstance(error, JsonParsingError):
        return True
    return is_timeout_error(error)


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_s: float = 2.0,
        max_jitter_s: float = 1.0,
        *,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        jitter: Optional[Callable[[], float]] = None,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay_s = base_delay_s
        self.max_jitter_s = max_jitter_s
        self._sleep = sleep or asyncio.sleep
        self._jitter = jitter or random.random

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay_s=config.base_delay_s,
            max_jitter_s=config.max_jitter_s,
            **kwargs,
        )

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_s * (2 ** attempt) + self._jitter() * self.max_jitter_s

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except Exception as exc:
                if not is_transient_error(exc):
                    logger.error("Encountered non-retriable error: %s", exc)
                    raise
                if attempt == self.max_attempts - 1:
                    logger.error("Failed to execute function after %s attempts: %s", self.max_attempts, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Transient error detected: %s. Retrying in %.1fs... (attempt %s/%s)",
                    exc,
                    delay,
                    attempt + 2,
                    self.max_attempts,
                )
                await self._sleep(delay)
        raise RuntimeError("Retry loop finished without a result.")


async def with_retry(fn: Callable[[], Awaitable[T]], policy: Optional[RetryPolicy] = None) -> T:
    return await (policy or RetryPolicy()).run(fn)
