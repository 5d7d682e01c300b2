"""Single-thread worker that serializes blocking inference jobs."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferenceWorker:
    """Runs blocking jobs one at a time, in submission order, off the event loop.

    Jobs queue up behind each other; ``pending`` counts queued plus running
    jobs so callers can observe backpressure.
    """

    def __init__(self, name: str = "inference"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._pending = 0

    @property
    def pending(self) -> int:
        return self._pending

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` on the worker thread and await its result."""
        loop = asyncio.get_running_loop()
        self._pending += 1
        if self._pending > 1:
            logger.debug(f"Inference job queued behind {self._pending - 1} others")
        try:
            return await loop.run_in_executor(self._executor, partial(func, *args, **kwargs))
        finally:
            self._pending -= 1

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
