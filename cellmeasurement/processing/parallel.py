"""
Bounded worker-pool fan-out for per-region and per-cell work.

Each call builds its own ThreadPoolExecutor; there is no process-wide pool.
Results always come back in input order, so a run with ``n_workers=1`` and
a run with ``n_workers=8`` produce identical output.

Threads rather than processes: tasks share large read-only inputs (region
lists, the loaded image) and the heavy lifting is NumPy/GEOS/OpenCV code
that releases the GIL.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from tqdm import tqdm

from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def validate_worker_count(n_workers: Any) -> int:
    """
    Check a worker count at the configuration boundary.

    Raises:
        ValueError: If n_workers is not an integer >= 1
    """
    if isinstance(n_workers, bool) or not isinstance(n_workers, int):
        raise ValueError(f"Worker count must be an integer, got {n_workers!r}")
    if n_workers < 1:
        raise ValueError(f"Worker count must be >= 1, got {n_workers}")
    return n_workers


def parallel_map(
    items: Sequence[T],
    fn: Callable[[T], R],
    n_workers: int = 1,
    show_progress: bool = False,
    desc: Optional[str] = None,
) -> List[R]:
    """
    Apply ``fn`` to every item using a bounded thread pool.

    Args:
        items: Items to process. Read-only from the tasks' point of view.
        fn: Function applied to each item. Must only write to its own result.
        n_workers: Number of worker threads. 1 runs sequentially in the
            calling thread.
        show_progress: Show a tqdm progress bar
        desc: Progress bar label

    Returns:
        Results in the same order as ``items``, regardless of completion order.

    Raises:
        ValueError: If n_workers < 1
        Exception: Exceptions raised by ``fn`` propagate to the caller
    """
    validate_worker_count(n_workers)
    items = list(items)
    if not items:
        return []

    if n_workers == 1 or len(items) == 1:
        iterator = tqdm(items, desc=desc) if show_progress else items
        return [fn(item) for item in iterator]

    results: List[Any] = [None] * len(items)
    workers = min(n_workers, len(items))
    logger.debug(f"Dispatching {len(items)} tasks to {workers} workers ({desc or 'tasks'})")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(fn, item): i for i, item in enumerate(items)}
        iterator = as_completed(futures)
        if show_progress:
            iterator = tqdm(iterator, total=len(items), desc=desc)
        for future in iterator:
            results[futures[future]] = future.result()

    return results
