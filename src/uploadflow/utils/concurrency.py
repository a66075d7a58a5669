"""Bounded worker pool for per-item batch work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 3


@dataclass(slots=True)
class CancelToken:
    """Boolean flag checked between suspension points."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass(slots=True)
class BatchOutcome(Generic[R]):
    successes: dict[int, R] = field(default_factory=dict)
    failures: dict[int, str] = field(default_factory=dict)

    def ordered_successes(self) -> list[tuple[int, R]]:
        return sorted(self.successes.items())

    def ordered_failures(self) -> list[tuple[int, str]]:
        return sorted(self.failures.items())


async def run_bounded(
    items: Sequence[T],
    handler: Callable[[int, T], Awaitable[R]],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    cancel: CancelToken | None = None,
) -> BatchOutcome[R]:
    """Run ``handler`` over ``items`` with at most ``concurrency`` in flight.

    Results and failures are keyed by the item's original index. A handler
    exception marks only that item as failed. After ``cancel`` is set no new
    item starts and results that land later are dropped.
    """
    outcome: BatchOutcome[R] = BatchOutcome()
    queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    def is_cancelled() -> bool:
        return cancel is not None and cancel.cancelled

    async def worker(worker_id: int) -> None:
        while not is_cancelled():
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                result = await handler(index, item)
            except Exception as exc:
                logger.warning(
                    "batch.item_failed",
                    extra={"index": index, "worker_id": worker_id, "error": str(exc)},
                )
                if not is_cancelled():
                    outcome.failures[index] = str(exc) or exc.__class__.__name__
            else:
                if not is_cancelled():
                    outcome.successes[index] = result
            finally:
                queue.task_done()

    pool_size = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(worker(worker_id) for worker_id in range(pool_size)))
    return outcome
