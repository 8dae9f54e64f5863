"""Cooperative execution layer for the pipeline.

Architecture:
    FastAPI (async) -> asyncio.Lock (one request at a time) -> ThreadPoolExecutor(1) -> Pillow decode/encode

Decode and encode are the suspension points: they run in the worker thread
while the event loop stays free. Requests beyond the one in flight wait on
the lock without a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineExecutor:
    """Serializes requests and offloads blocking image work to a single thread."""

    def __init__(self) -> None:
        self._request_lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="normalizex-pipeline",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the pipeline for the duration of one request."""
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await self._request_lock.acquire()
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            yield
        finally:
            self._request_lock.release()
            with self._counter_lock:
                self._active_count -= 1

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a synchronous function in the pipeline thread and await its result."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    @property
    def active_count(self) -> int:
        """Number of requests currently being processed (0 or 1)."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for the pipeline."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the pipeline thread."""
        self._executor.shutdown(wait=True)
        logger.debug("Pipeline executor shut down")
