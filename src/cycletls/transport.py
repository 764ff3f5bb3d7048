"""Channel transports to the worker process.

A ChannelTransport is one open, ordered, message-framed connection to the
worker. Transports are created by a Connector, an async callable taking
``(host, port)``. The connection supervisor owns the transport and replaces
it whenever it fails.

Implementations:
- WebSocketChannelTransport: text frames over ``ws://host:port`` (production)
- MockChannelTransport: in-memory, for tests
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from .config import ClientConfig
from .errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class ChannelTransport(Protocol):
    """Protocol for control-channel transports.

    All transports must implement:
    - send: write one text frame
    - receive: yield inbound frames until the connection ends
    - close: release the connection

    ``send`` and ``receive`` raise TransportError when the connection fails.
    ``receive`` returning normally means the peer closed the channel.
    """

    @property
    def is_open(self) -> bool:
        """Check if the connection is usable."""
        ...

    async def send(self, message: str) -> None:
        """Send one text frame."""
        ...

    def receive(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames as received."""
        ...

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        ...


Connector = Callable[[str, int], Awaitable[ChannelTransport]]


class WebSocketChannelTransport:
    """Transport over a WebSocket connection to the worker.

    Wire format:
    - One JSON document per text frame, both directions
    """

    def __init__(self, ws: Any):
        self._ws = ws  # websockets.asyncio.client.ClientConnection

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        ping_interval: float | None = 30.0,
        ping_timeout: float | None = 10.0,
    ) -> WebSocketChannelTransport:
        """Connect to ``ws://host:port``.

        Raises:
            TransportError: If the connection cannot be established
        """
        url = f"ws://{host}:{port}"
        try:
            ws = await websockets.connect(
                url,
                ping_interval=ping_interval,
                ping_timeout=ping_timeout,
                max_size=None,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e

        logger.debug(f"WebSocket connected to {url}")
        return cls(ws)

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN

    async def send(self, message: str) -> None:
        try:
            await self._ws.send(message)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket closed while sending: {e}") from e

    async def receive(self) -> AsyncIterator[str | bytes]:
        try:
            async for data in self._ws:
                yield data
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket connection lost: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


def websocket_connector(config: ClientConfig | None = None) -> Connector:
    """Create a connector opening WebSocket transports with ``config``'s keep-alive."""
    config = config or ClientConfig()

    async def connect(host: str, port: int) -> ChannelTransport:
        return await WebSocketChannelTransport.open(
            host,
            port,
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
        )

    return connect


_CLOSED = object()

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]


class MockChannelTransport:
    """Mock transport for testing.

    Records sent frames and lets tests inject inbound frames or simulate a
    dropped connection. No actual I/O - everything is in-memory.

    Usage:
        transport = MockChannelTransport()
        transport.inject({"RequestID": "abc", "Status": 200, "Body": "ok"})
        transport.drop()  # receive() raises TransportError

    With a ``responder``, every sent frame is decoded and the responder's
    return value (if any) is injected as the reply.
    """

    def __init__(self, responder: Responder | None = None) -> None:
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._sent: list[str] = []
        self._open = True
        self._responder = responder

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def sent(self) -> list[str]:
        """Raw frames sent through this transport."""
        return self._sent.copy()

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        """Sent frames, decoded."""
        return [json.loads(frame) for frame in self._sent]

    def inject(self, message: str | bytes | dict[str, Any]) -> None:
        """Queue an inbound frame. Dicts are JSON-encoded, bytes are sent as-is."""
        if not isinstance(message, (str, bytes)):
            message = json.dumps(message)
        self._inbox.put_nowait(message)

    def drop(self, reason: str = "connection reset") -> None:
        """Simulate the connection failing."""
        self._open = False
        self._inbox.put_nowait(TransportError(reason))

    async def send(self, message: str) -> None:
        if not self._open:
            raise TransportError("Mock transport closed")
        self._sent.append(message)
        if self._responder is not None:
            reply = self._responder(json.loads(message))
            if reply is not None:
                self.inject(reply)

    async def receive(self) -> AsyncIterator[str | bytes]:
        while True:
            item = await self._inbox.get()
            if item is _CLOSED:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def close(self) -> None:
        if self._open:
            self._open = False
            self._inbox.put_nowait(_CLOSED)


class MockConnector:
    """Connector handing out MockChannelTransports.

    ``fail_times`` makes the first N connection attempts raise TransportError.
    Every attempt is recorded in ``attempts`` as ``(host, port)``.
    """

    def __init__(self, fail_times: int = 0, responder: Responder | None = None) -> None:
        self.fail_times = fail_times
        self.responder = responder
        self.attempts: list[tuple[str, int]] = []
        self.transports: list[MockChannelTransport] = []

    @property
    def transport(self) -> MockChannelTransport | None:
        """The most recently created transport."""
        return self.transports[-1] if self.transports else None

    async def __call__(self, host: str, port: int) -> ChannelTransport:
        self.attempts.append((host, port))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise TransportError(f"Connection refused: {host}:{port}")
        transport = MockChannelTransport(responder=self.responder)
        self.transports.append(transport)
        return transport
