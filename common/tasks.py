"""Simple synchronous task utilities."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar


T = TypeVar("T")


def run_concurrently(tasks: Sequence[Callable[[], T]], *, max_workers: int = 1) -> list[T]:
    """Run independent callables and return their results in submission order.

    With ``max_workers <= 1`` the tasks run inline on the calling thread. The
    first exception raised by any task propagates to the caller.
    """

    if max_workers <= 1 or len(tasks) <= 1:
        return [task() for task in tasks]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(tasks))) as executor:
        futures = [executor.submit(task) for task in tasks]
        return [future.result() for future in futures]


__all__ = ["run_concurrently"]
