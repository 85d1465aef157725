# /// script
# requires-python = ">=3.12"
# dependencies = []
# ///
"""Bounded worker pool over an ordered list of units.

Workers pull the next index from a shared cursor and process that unit to
completion (network round-trip and retries included) before taking another.
Results are written back by index, so the output order is the input order no
matter which worker finished first.  An optional ``threading.Event`` lets an
operator stop a long batch: once it is set, no further units are started and
the unstarted slots come back as ``None``.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def run_indexed(
    units: Sequence[T],
    handler: Callable[[int, T], R],
    *,
    concurrency: int = 1,
    cancel: threading.Event | None = None,
    label: str = "unit",
) -> list[R | None]:
    """Apply *handler* to every unit with at most *concurrency* workers.

    Args:
        units: Ordered work list.
        handler: Called as ``handler(index, unit)``.  It is expected to turn
            its own failures into return values; an exception escaping it is
            a bug and is re-raised here.
        concurrency: Maximum number of simultaneous workers.
        cancel: When set, workers stop taking new units.
        label: Name used in log messages.

    Returns:
        One slot per unit, ``None`` where the unit was never started.
    """
    results: list[R | None] = [None] * len(units)
    if not units:
        return results

    cursor = itertools.count()
    cursor_lock = threading.Lock()
    total = len(units)

    def worker(worker_id: int) -> None:
        while True:
            if cancel is not None and cancel.is_set():
                logger.info("[w%d] cancelled; leaving remaining %ss unstarted", worker_id, label)
                return
            with cursor_lock:
                i = next(cursor)
            if i >= total:
                return
            logger.debug("[w%d] %s %d/%d", worker_id, label, i + 1, total)
            results[i] = handler(i, units[i])

    n_workers = max(1, min(concurrency, total))
    if n_workers == 1:
        worker(1)
        return results

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(worker, k + 1) for k in range(n_workers)]
        for future in futures:
            future.result()
    return results
