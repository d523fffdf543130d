from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, List, Optional

from repvision.counter.pose_core import Landmark

logger = logging.getLogger(__name__)


class PoseEstimator(ABC):
    """
    Async adapter over a blocking, non-reentrant pose model.

    At most one estimation is in flight. estimate() awaits the model on a
    single worker thread; if the caller stops waiting (timeout) the call keeps
    running in the background, and frames offered before it finishes are
    answered with None instead of being queued behind it.
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose")
        self._pending: Optional[Future] = None
        self._closed = False

    @abstractmethod
    def _detect(self, frame: Any) -> Optional[List[Landmark]]:
        """Blocking call into the model; returns 33 landmarks or None."""

    def _release(self):
        pass

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def estimate(self, frame: Any) -> Optional[List[Landmark]]:
        if self._closed:
            raise RuntimeError("pose estimator is closed")
        if self.busy:
            logger.debug("estimator busy; skipping frame")
            return None
        # close() hooks the worker-side future, which completes without a loop
        self._pending = self._executor.submit(self._detect, frame)
        fut = asyncio.wrap_future(self._pending)
        fut.add_done_callback(_consume_exception)
        try:
            return await asyncio.shield(fut)
        except Exception as e:
            logger.warning("pose estimation failed: %s", e)
            return None

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self.busy:
            # release the model once the stalled call returns
            self._pending.add_done_callback(lambda _f: self._release())
        else:
            self._release()


def _consume_exception(fut: asyncio.Future):
    if not fut.cancelled():
        fut.exception()
