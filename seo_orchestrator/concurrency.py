import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Generic, List, Optional, Sequence, Tuple, TypeVar, cast


logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], Any]


@dataclass
class TaskResult(Generic[R]):
    status: str
    value: Optional[R] = None
    reason: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == "fulfilled"

    @classmethod
    def fulfilled(cls, value: R) -> "TaskResult[R]":
        return cls(status="fulfilled", value=value)

    @classmethod
    def rejected(cls, reason: BaseException) -> "TaskResult[R]":
        return cls(status="rejected", reason=reason)


async def _notify(on_progress: Optional[ProgressCallback], completed: int, total: int) -> None:
    if on_progress is None:
        return
    result = on_progress(completed, total)
    if inspect.isawaitable(result):
        await result


async def execute_concurrent(
    items: Sequence[T],
    task_fn: Callable[[T, int], Awaitable[R]],
    concurrency: int,
    on_progress: Optional[ProgressCallback] = None,
) -> List[TaskResult[R]]:
    """Run task_fn over items with at most `concurrency` tasks in flight.

    Results keep the input order. A failing task is recorded as a rejected
    TaskResult and never stops its siblings.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    total = len(items)
    if total == 0:
        return []
    results: List[Optional[TaskResult[R]]] = [None] * total
    queue: Deque[Tuple[int, T]] = deque(enumerate(items))
    completed = 0

    async def _worker() -> None:
        nonlocal completed
        while queue:
            index, item = queue.popleft()
            try:
                value = await task_fn(item, index)
                results[index] = TaskResult.fulfilled(value)
            except Exception as exc:
                logger.warning("Task failed for item at index %s: %s", index, exc)
                results[index] = TaskResult.rejected(exc)
            finally:
                completed += 1
                try:
                    await _notify(on_progress, completed, total)
                except Exception as exc:
                    logger.warning("Progress callback failed: %s", exc)

    workers = min(concurrency, total)
    await asyncio.gather(*(_worker() for _ in range(workers)))
    return cast(List[TaskResult[R]], results)
