"""Order-preserving concurrent map over a thread pool.

``p_map`` fans every item out to a worker, waits for all of them and returns
one :class:`Outcome` per input item, in input order. Mapper exceptions are
captured in the outcome instead of propagating, so one failing item never
aborts a batch; callers decide what a failure means for them.

Without a ``concurrency`` value every item gets its own worker.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass(frozen=True)
class Outcome(Generic[OutT]):
    value: Optional[OutT] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run(mapper: Callable[[InT], OutT], item: InT) -> Outcome[OutT]:
    try:
        return Outcome(value=mapper(item))
    except Exception as e:  # noqa: BLE001
        return Outcome(error=e)


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: Optional[int] = None,
) -> list[Outcome[OutT]]:
    """Map ``iterable`` through ``mapper`` concurrently, keeping input order."""
    if concurrency is not None and concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if not items:
        return []

    workers = min(concurrency or len(items), len(items))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_run, mapper, item) for item in items]
        return [f.result() for f in futures]


__all__ = ["Outcome", "p_map"]
