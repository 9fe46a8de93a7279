"""
Bounded-concurrency execution of enrichment tasks.

Tasks are zero-argument callables. Results come back in a list whose slot i
belongs to task i, whatever order they finish in. A task that raises leaves
None in its slot; the rest of the batch carries on.

Workers are plain threads pulling from a queue rather than a
ThreadPoolExecutor, so each worker can hold a per-thread resource (a browser
page, which must stay on the thread that created it) for its whole lifetime
via `worker_scope`.
"""

import logging
import queue
import threading
from contextlib import nullcontext
from typing import Callable, ContextManager, List, Optional, Sequence, TypeVar

from tqdm import tqdm

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_bounded(
    tasks: Sequence[Callable[[], T]],
    max_concurrency: int,
    worker_scope: Optional[Callable[[], ContextManager]] = None,
    desc: Optional[str] = None,
) -> List[Optional[T]]:
    """
    Run tasks with at most max_concurrency in flight.

    Args:
        tasks: Zero-argument callables
        max_concurrency: Upper bound on simultaneously running tasks
        worker_scope: Optional factory of a context manager entered once per
            worker thread around all the tasks it runs
        desc: Progress bar label (no bar when None)

    Returns:
        One result per task, None where the task raised
    """
    results: List[Optional[T]] = [None] * len(tasks)
    if not tasks:
        return results

    pending: "queue.Queue" = queue.Queue()
    for i, task in enumerate(tasks):
        pending.put((i, task))

    progress = tqdm(total=len(tasks), desc=desc, disable=desc is None)
    progress_lock = threading.Lock()

    def worker():
        scope = worker_scope() if worker_scope else nullcontext()
        try:
            with scope:
                while True:
                    try:
                        i, task = pending.get_nowait()
                    except queue.Empty:
                        return
                    try:
                        results[i] = task()
                    except Exception as e:
                        logger.error(f"Task {i} failed: {type(e).__name__}: {e}")
                        results[i] = None
                    with progress_lock:
                        progress.update(1)
        except Exception as e:
            # Scope setup/teardown failed; remaining tasks go to other workers
            logger.error(f"Worker {threading.current_thread().name} aborted: {type(e).__name__}: {e}")

    n = max(1, min(max_concurrency, len(tasks)))
    threads = [
        threading.Thread(target=worker, name=f"enrich-{k}", daemon=True)
        for k in range(n)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    progress.close()

    return results
