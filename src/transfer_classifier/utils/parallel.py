"""Thread-pool fan-out over images with ordered fan-in."""

from __future__ import annotations

import concurrent.futures
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import TypeVar

from tqdm import tqdm

from transfer_classifier.errors import TrainingCancelledError

T = TypeVar("T")
R = TypeVar("R")


def default_num_threads() -> int:
    cpu_count = os.cpu_count() or 1
    return min(32, cpu_count + 4)


def parallel_map(
    fn: Callable[[T], R],
    items: Sequence[T],
    num_threads: int | None = None,
    desc: str = "Images",
    cancel_event: threading.Event | None = None,
) -> Iterator[R]:
    """Apply ``fn`` to every item on a thread pool, yielding results in input order.

    Completion order is irrelevant: results are re-associated with their input
    position.  ``cancel_event`` is checked between items; when set, pending work
    is cancelled and :class:`TrainingCancelledError` is raised.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise TrainingCancelledError(f"{desc}: cancelled by caller")
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=num_threads or default_num_threads()
    )
    try:
        results = executor.map(fn, items)
        for result in tqdm(results, total=len(items), desc=desc, unit="img"):
            if cancel_event is not None and cancel_event.is_set():
                raise TrainingCancelledError(f"{desc}: cancelled by caller")
            yield result
    finally:
        executor.shutdown(wait=True, cancel_futures=True)
