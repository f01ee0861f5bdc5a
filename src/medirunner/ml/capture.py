"""Capture concurrency layer.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> extractor

Requests beyond the semaphore limit queue with a 5s timeout, then get 503.
A capture that runs past the capture timeout fails with a timeout error. Its
worker keeps the slot until it returns and its result is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from medirunner.face.errors import CaptureError, CaptureFailure

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    import numpy as np
    from numpy.typing import NDArray

    from medirunner.config import Settings
    from medirunner.ml.extractor import DescriptorExtractor

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEMAPHORE_TIMEOUT_SECONDS: float = 5.0


class PoolSaturatedError(TimeoutError):
    """No capture slot became free within the queue timeout."""


@dataclass(frozen=True)
class CapturedFace:
    """The single face captured from a frame."""

    descriptor: Sequence[float] | NDArray[np.floating]
    score: float


class CapturePool:
    """Manages the semaphore and thread pool for descriptor extraction."""

    def __init__(self, settings: Settings) -> None:
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="face-capture",
        )
        self._capture_timeout = settings.capture_timeout
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object, timeout: float | None = None) -> T:
        """Submit a synchronous function to the capture thread pool.

        Acquires the semaphore (with timeout) and runs the function in the
        executor. The slot is released when the worker returns, not when the
        caller stops waiting, so an abandoned call still counts as active.

        Raises:
            PoolSaturatedError: If the semaphore cannot be acquired within the timeout.
            TimeoutError: If the function outlives ``timeout``.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(
                self._semaphore.acquire(),
                timeout=SEMAPHORE_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            raise PoolSaturatedError("No capture slot available") from None
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self._executor, func, *args)
        except RuntimeError:
            self._release_slot()
            raise
        future.add_done_callback(self._release_slot)
        # One worker per slot, so the job starts as soon as it is submitted.
        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)

    def _release_slot(self, future: asyncio.Future[Any] | None = None) -> None:
        if future is not None and not future.cancelled():
            # A late failure has no awaiter left.
            future.exception()
        self._semaphore.release()
        with self._counter_lock:
            self._active_count -= 1

    async def capture(self, extractor: DescriptorExtractor, frame: bytes) -> CapturedFace:
        """Extract exactly one face descriptor from ``frame``.

        Fails closed: a frame with several faces is rejected rather than
        guessing which one to use.

        Raises:
            CaptureError: ``no_face``, ``multiple_faces`` or ``timeout``.
            PoolSaturatedError: If every capture slot stays busy past the queue timeout.
        """
        try:
            detections = await self.run(extractor.extract, frame, timeout=self._capture_timeout)
        except PoolSaturatedError:
            raise
        except TimeoutError:
            logger.warning("Capture with %s timed out after %.1fs", extractor.model_name, self._capture_timeout)
            raise CaptureError(CaptureFailure.TIMEOUT) from None

        if not detections:
            logger.info("Capture found no face")
            raise CaptureError(CaptureFailure.NO_FACE)
        if len(detections) > 1:
            logger.info("Capture found %d faces, rejecting", len(detections))
            raise CaptureError(CaptureFailure.MULTIPLE_FACES)

        detection = detections[0]
        return CapturedFace(descriptor=detection.descriptor, score=detection.score)

    async def capture_descriptor(
        self, extractor: DescriptorExtractor, frame: bytes
    ) -> Sequence[float] | NDArray[np.floating]:
        """Like :meth:`capture`, returning only the descriptor."""
        captured = await self.capture(extractor, frame)
        return captured.descriptor

    @property
    def active_count(self) -> int:
        """Number of currently running captures."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of captures waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
