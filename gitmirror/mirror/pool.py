"""
Worker Pool — Fixed number of threads draining one shared queue.

    pool = WorkerPool(handler, workers=5)
    run = pool.run(items)   # blocks until every item was handled

The queue holds at most one pending item, so submission keeps pace with
the workers. After the last item one stop sentinel per worker is queued;
that is the only way workers exit. A handler exception is logged and
collected, and the worker moves on to the next item.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_STOP = object()


@dataclass
class PoolRun(Generic[T, R]):
    """Handler results and handler exceptions of one pool run."""

    results: List[R] = field(default_factory=list)
    errors: List[Tuple[T, BaseException]] = field(default_factory=list)

    @property
    def handled(self) -> int:
        return len(self.results) + len(self.errors)


class WorkerPool(Generic[T, R]):
    """Run a handler over items with at most ``workers`` running at once."""

    def __init__(
        self,
        handler: Callable[[T], R],
        workers: int = 5,
        name: str = "mirror-worker",
    ):
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.handler = handler
        self.workers = workers
        self.name = name

    def run(self, items: Iterable[T]) -> PoolRun[T, R]:
        work: queue.Queue = queue.Queue(maxsize=1)
        run: PoolRun[T, R] = PoolRun()
        lock = threading.Lock()

        threads = [
            threading.Thread(
                target=self._work,
                args=(work, run, lock),
                name=f"{self.name}-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        for thread in threads:
            thread.start()

        submitted = 0
        for item in items:
            work.put(item)
            submitted += 1

        for _ in threads:
            work.put(_STOP)

        for thread in threads:
            thread.join()

        logger.debug(f"[pool] {self.name}: handled {run.handled}/{submitted} items")
        return run

    def _work(self, work: queue.Queue, run: PoolRun[T, R], lock: threading.Lock) -> None:
        while True:
            item = work.get()
            if item is _STOP:
                return

            try:
                result = self.handler(item)
            except Exception as e:
                logger.exception(f"[pool] Handler failed for {item!r}")
                with lock:
                    run.errors.append((item, e))
                continue

            with lock:
                run.results.append(result)
