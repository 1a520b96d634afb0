"""
Bounded worker pool for deep resolution.

``run_pool`` starts ``concurrency`` workers that pop items from one shared
queue. Every item gets its own browsing session from ``open_session`` (an
async context manager, normally ``BrowserSession.new_page``), so cookies,
storage and ad redirects never leak between matches. Results come back in
input order; a task that raises or overruns ``task_timeout`` yields
``default`` and the rest of the pool carries on.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, List, Optional, Sequence

logger = logging.getLogger("WorkerPool")


async def run_pool(
    open_session: Callable[[], Any],
    items: Sequence[Any],
    task: Callable[[Any, Any, int], Awaitable[Any]],
    concurrency: int = 2,
    task_timeout: Optional[float] = None,
    default: Any = None,
    label: str = "DEEP",
) -> List[Any]:
    total = len(items)
    if not total:
        return []

    queue = deque(enumerate(items))
    results: List[Any] = [default] * total
    workers = max(1, min(concurrency, total))

    async def _run_one(idx, item):
        async with open_session() as page:
            return await task(page, item, idx)

    async def _worker(worker_id):
        while queue:
            idx, item = queue.popleft()
            logger.info(f"[{label}] [W{worker_id}] ({idx + 1}/{total})")
            try:
                results[idx] = await asyncio.wait_for(_run_one(idx, item), timeout=task_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[WARN] [{label}] task {idx + 1} timed out after {task_timeout}s")
            except Exception as e:
                # Failure stays local to this task
                logger.warning(f"[WARN] [{label}] task {idx + 1} failed: {e}")

    await asyncio.gather(*(_worker(i + 1) for i in range(workers)))
    return results
