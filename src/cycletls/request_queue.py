"""FIFO buffer for frames submitted while the channel is down."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from typing import Protocol

from .errors import TransportError

logger = logging.getLogger(__name__)


class FlushTarget(Protocol):
    """Where queued frames go once the channel is up."""

    @property
    def is_connected(self) -> bool: ...

    async def write(self, payload: str) -> None:
        """Write one frame, raising TransportError on failure."""
        ...


class RequestQueue:
    """Holds outbound frames until they can be written, in submission order.

    The first ``enqueue`` starts a flush timer that checks the target every
    ``flush_interval`` seconds and writes everything buffered once it is
    connected; the timer stops itself after a complete flush. Each frame is
    written at most once, and frames are never dropped while waiting.
    """

    def __init__(self, target: FlushTarget, flush_interval: float = 0.1) -> None:
        self._target = target
        self._flush_interval = flush_interval
        self._buffer: deque[str] = deque()
        self._flush_lock = asyncio.Lock()
        self._timer: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return bool(self._buffer)

    @property
    def timer_running(self) -> bool:
        """Check if the flush timer is active."""
        return self._timer is not None and not self._timer.done()

    def snapshot(self) -> list[str]:
        return list(self._buffer)

    def enqueue(self, payload: str) -> None:
        """Buffer ``payload`` and make sure the flush timer is running."""
        self._buffer.append(payload)
        logger.debug(f"Queued request ({len(self._buffer)} waiting)")
        if not self.timer_running:
            self._timer = asyncio.create_task(self._flush_timer(), name="cycletls-queue-flush")

    async def flush(self) -> bool:
        """Write buffered frames in order while the target accepts them.

        A frame enqueued during the flush is written by the same flush.

        Returns:
            True if the buffer was fully drained
        """
        async with self._flush_lock:
            sent = 0
            while self._buffer:
                if not self._target.is_connected:
                    break
                payload = self._buffer.popleft()
                try:
                    await self._target.write(payload)
                except TransportError as e:
                    self._buffer.appendleft(payload)
                    logger.debug(f"Flush interrupted after {sent} requests: {e}")
                    break
                sent += 1

            if sent:
                logger.debug(f"Flushed {sent} queued requests")
            return not self._buffer

    async def close(self) -> list[str]:
        """Stop the flush timer and hand back whatever was never written."""
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        remaining = list(self._buffer)
        self._buffer.clear()
        return remaining

    async def _flush_timer(self) -> None:
        """Tick until a flush drains the buffer."""
        while True:
            await asyncio.sleep(self._flush_interval)
            if self._target.is_connected and await self.flush():
                return
