import asyncio
from typing import Any, Awaitable, List, Optional, Sequence, TypeVar


T = TypeVar("T")


class AggregateProviderError(Exception):
    """Every racing candidate failed; errors keep the candidates' input order."""

    def __init__(
        self,
        errors: Sequence[BaseException],
        message: str = "All candidates were rejected",
        labels: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.errors: List[BaseException] = list(errors)
        self.labels: List[str] = list(labels) if labels else [str(i) for i in range(len(self.errors))]

    def breakdown(self) -> List[str]:
        return [f"{label}: {err}" for label, err in zip(self.labels, self.errors)]


async def first_success(
    awaitables: Sequence[Awaitable[T]],
    labels: Optional[Sequence[str]] = None,
) -> T:
    """Resolve with the first awaitable that succeeds.

    Candidates still running once a winner is found are cancelled. If every
    candidate fails, AggregateProviderError lists each failure in input order.
    """
    if not awaitables:
        raise AggregateProviderError([], "No candidates provided.")
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    order = {task: idx for idx, task in enumerate(tasks)}
    errors: List[Optional[BaseException]] = [None] * len(tasks)
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=order.__getitem__):
                exc = task.exception()
                if exc is None:
                    return task.result()
                errors[order[task]] = exc
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                task.exception()
    collected: List[Any] = [err for err in errors if err is not None]
    raise AggregateProviderError(collected, labels=labels)
