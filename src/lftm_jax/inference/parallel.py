from __future__ import annotations

"""lftm_jax.inference.parallel
===============================

Parallel-for over the topic index range.  Used for the per-topic vector
re-estimation only; the Gibbs sweeps stay on the calling thread.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, TypeVar

__all__ = ["TopicParallel", "default_workers"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_workers() -> int:
    return os.cpu_count() or 1


class TopicParallel:
    """Bounded worker pool whose :meth:`map_topics` doubles as a barrier.

    ``max_workers=1`` runs tasks inline, in topic order.  Use as a context
    manager, or call :meth:`close` when done.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers or default_workers()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.max_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="topic-vector"
            )
        logger.debug("topic-vector pool with %i worker(s)", self.max_workers)

    def map_topics(self, fn: Callable[[int], T], num_topics: int) -> List[T]:
        """Run ``fn(t)`` for every topic and wait for all of them.

        Results are indexed by topic.  The first exception raised by a task
        propagates once every task has finished.
        """
        if self._executor is None:
            return [fn(t) for t in range(num_topics)]
        futures = [self._executor.submit(fn, t) for t in range(num_topics)]
        errors = [f.exception() for f in futures]
        for err in errors:
            if err is not None:
                raise err
        return [f.result() for f in futures]

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "TopicParallel":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
