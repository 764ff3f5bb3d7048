"""Connection supervisor for the worker control channel.

Keeps one transport to the worker open for the lifetime of the client:

    DISCONNECTED -> CONNECTING -> CONNECTED -> (transport error) -> CONNECTING -> ...
                                                   shutdown() -> CLOSED

Connection attempts are retried forever with a fixed delay; the worker is
local and expected to show up eventually. Frames sent while the channel is
down wait in the RequestQueue and are flushed, in order, on (re)connect.
Every inbound frame is decoded and handed to the ResponseDispatcher.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum

from .dispatcher import ResponseDispatcher
from .errors import ChannelClosedError, TransportError
from .request_queue import RequestQueue
from .transport import ChannelTransport, Connector

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class ConnectionSupervisor:
    """Owns the transport and the request queue for one client."""

    def __init__(
        self,
        host: str,
        port: int,
        dispatcher: ResponseDispatcher,
        connector: Connector,
        reconnect_delay: float = 0.1,
        flush_interval: float = 0.1,
    ):
        self.host = host
        self.port = port
        self._dispatcher = dispatcher
        self._connector = connector
        self._reconnect_delay = reconnect_delay
        self._state = ChannelState.DISCONNECTED
        self._transport: ChannelTransport | None = None
        self._queue = RequestQueue(self, flush_interval=flush_interval)
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._run_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self.connect_attempts = 0

    @property
    def state(self) -> ChannelState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if a transport is connected."""
        return self._state == ChannelState.CONNECTED and self._transport is not None

    @property
    def is_ready(self) -> bool:
        """Check if the channel has connected at least once."""
        return self._ready.is_set()

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    def start(self) -> None:
        """Start the connect/reconnect loop. Does nothing if already running."""
        if self._state == ChannelState.CLOSED:
            raise ChannelClosedError("Supervisor has been shut down")
        if self._run_task is None:
            self._run_task = asyncio.create_task(self._run(), name="cycletls-supervisor")

    async def wait_ready(self) -> None:
        """Wait until the first connection has been established."""
        await self._ready.wait()

    async def send(self, payload: str) -> None:
        """Write ``payload`` now if connected, otherwise queue it.

        Transport failures are not raised; the payload is queued instead.

        Raises:
            ChannelClosedError: If the supervisor has been shut down
        """
        if self._state == ChannelState.CLOSED:
            raise ChannelClosedError("Channel is closed")

        # Frames already waiting go first
        if self.is_connected and not self._queue:
            try:
                await self.write(payload)
                return
            except TransportError as e:
                logger.debug(f"Send failed, queueing request: {e}")

        self._queue.enqueue(payload)

    async def write(self, payload: str) -> None:
        """Write directly to the current transport."""
        transport = self._transport
        if transport is None or self._state != ChannelState.CONNECTED:
            raise TransportError("Channel not connected")
        await transport.send(payload)

    async def shutdown(self) -> list[str]:
        """Stop reconnecting and close the transport.

        No inbound message is dispatched once this returns.

        Returns:
            Frames that were still queued and never sent
        """
        async with self._lock:
            if self._state == ChannelState.CLOSED:
                return []

            self._state = ChannelState.CLOSED
            self._closing.set()

            if self._run_task:
                self._run_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._run_task
                self._run_task = None

            if self._transport is not None:
                await self._close_transport(self._transport)
                self._transport = None

            unsent = await self._queue.close()
            if unsent:
                logger.info(f"Discarding {len(unsent)} unsent requests on shutdown")
            logger.info(f"Channel to {self.host}:{self.port} closed")
            return unsent

    # Internal

    def _set_state(self, state: ChannelState) -> None:
        if self._state != ChannelState.CLOSED:
            self._state = state

    async def _run(self) -> None:
        """Connect, pump inbound frames, and reconnect until shut down."""
        while not self._closing.is_set():
            self._set_state(ChannelState.CONNECTING)
            self.connect_attempts += 1
            try:
                transport = await self._connector(self.host, self.port)
            except (TransportError, OSError) as e:
                logger.debug(
                    f"Connect to {self.host}:{self.port} failed "
                    f"(attempt {self.connect_attempts}): {e}"
                )
                await self._backoff()
                continue

            self._transport = transport
            self._set_state(ChannelState.CONNECTED)
            logger.info(f"Connected to worker at {self.host}:{self.port}")

            try:
                await self._queue.flush()
                self._ready.set()
                await self._pump(transport)
                logger.info("Worker closed the channel")
            except TransportError as e:
                logger.info(f"Channel lost: {e}")
            except Exception as e:
                logger.error(f"Receive loop error: {e}")
            finally:
                self._transport = None
                self._set_state(ChannelState.CONNECTING)
                await self._close_transport(transport)

            await self._backoff()

    async def _pump(self, transport: ChannelTransport) -> None:
        async for frame in transport.receive():
            if self._closing.is_set():
                return
            self._handle_frame(frame)

    def _handle_frame(self, frame: str | bytes) -> None:
        if isinstance(frame, bytes):
            try:
                frame = frame.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.debug(f"Dropping undecodable binary frame: {e}")
                return

        try:
            message = json.loads(frame)
        except ValueError as e:
            logger.debug(f"Dropping non-JSON frame: {e} (frame: {frame[:50]})")
            return

        if not isinstance(message, dict):
            logger.debug(f"Dropping non-object frame: {frame[:50]}")
            return

        self._dispatcher.deliver(message)

    async def _backoff(self) -> None:
        """Sleep the reconnect delay, waking early on shutdown."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._closing.wait(), timeout=self._reconnect_delay)

    async def _close_transport(self, transport: ChannelTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport: {e}")
