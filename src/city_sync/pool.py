"""Bounded-concurrency worker pool fed by a priority queue.

Items are dequeued in priority order by at most ``max_concurrency``
workers, and the outcomes are handed back in that same priority order no
matter which call finishes first.  Used for external geocoding calls; store
writes stay sequential on the stage's session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Outcome(Generic[T, R]):
    item: T
    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_prioritized(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    priority: Callable[[T], Any],
    max_concurrency: int = 4,
    capture: tuple[type[Exception], ...] = (Exception,),
) -> list[Outcome[T, R]]:
    """Run ``worker`` over ``items`` and return outcomes in priority order.

    Exceptions matching ``capture`` are stored on the outcome; anything
    else cancels the remaining workers and propagates.

    Args:
        items: Work items.
        worker: Async callable applied to each item.
        priority: Sort key; lower values are processed first.  Ties keep
            input order.
        max_concurrency: Upper bound on in-flight ``worker`` calls.
        capture: Exception types recorded per item instead of raised.
    """
    queue: asyncio.PriorityQueue[tuple[Any, int, T]] = asyncio.PriorityQueue()
    for seq, item in enumerate(items):
        queue.put_nowait((priority(item), seq, item))

    outcomes: dict[int, tuple[Any, Outcome[T, R]]] = {}

    async def consume() -> None:
        while True:
            try:
                key, seq, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                outcomes[seq] = (key, Outcome(item=item, value=await worker(item)))
            except capture as e:
                outcomes[seq] = (key, Outcome(item=item, error=e))
            finally:
                queue.task_done()

    worker_count = min(max(1, max_concurrency), queue.qsize())
    tasks = [asyncio.create_task(consume()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    ordered = sorted(outcomes.items(), key=lambda kv: (kv[1][0], kv[0]))
    return [outcome for _, (_, outcome) in ordered]
