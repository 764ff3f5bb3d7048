"""CycleTLS client.

The public request API. Each call gets its own request id, is sent to the
worker through the connection supervisor, and resumes when the worker's
response for that id arrives.

Usage:
    client = await init_cycletls()
    response = await client("https://example.com", {"headers": {"Accept": "*/*"}})
    print(response.status, response.body)

    response = await client.post("https://example.com/api", {"body": '{"a": 1}'})
    await client.exit()

    # Or as an async context manager
    async with await init_cycletls(port=9119) as client:
        response = await client.get("https://example.com")

The core never times a call out. Wrap calls in ``asyncio.wait_for`` when a
bounded wait is needed; the ``timeout`` option is only a hint to the worker.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from .config import ClientConfig
from .dispatcher import ResponseDispatcher
from .errors import ChannelClosedError
from .negotiator import Role, probe_role
from .protocol import Method, RequestOptions, Response, WorkerRequest, WorkerResponse, new_request_id
from .supervisor import ChannelState, ConnectionSupervisor
from .transport import Connector, websocket_connector

logger = logging.getLogger(__name__)

Options = RequestOptions | Mapping[str, Any] | None

WorkerStarter = Callable[[str, int], Awaitable[None]]


class CycleTLSClient:
    """Request/response client for a CycleTLS worker.

    Works with any Connector:
    - websocket_connector(): talk to a worker over ``ws://host:port``
    - MockConnector: for testing

    The client is callable: ``await client(url, options, method)``.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        connector: Connector | None = None,
        role: Role = Role.CLIENT,
    ):
        self.config = config or ClientConfig()
        self._role = role
        self._dispatcher = ResponseDispatcher()
        self._supervisor = ConnectionSupervisor(
            self.config.host,
            self.config.port,
            self._dispatcher,
            connector or websocket_connector(self.config),
            reconnect_delay=self.config.reconnect_delay,
            flush_interval=self.config.flush_interval,
        )
        self._closed = False

    @property
    def role(self) -> Role:
        """Role negotiated for the control-channel port."""
        return self._role

    @property
    def state(self) -> ChannelState:
        """Current channel state."""
        return self._supervisor.state

    @property
    def is_connected(self) -> bool:
        return self._supervisor.is_connected

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    @property
    def dispatcher(self) -> ResponseDispatcher:
        return self._dispatcher

    async def start(self, wait_ready: bool = True) -> None:
        """Start supervising the channel.

        Args:
            wait_ready: Wait for the first successful connection
        """
        self._supervisor.start()
        if wait_ready:
            await self._supervisor.wait_ready()

    async def request(self, url: str, options: Options = None, method: Method = "get") -> Response:
        """Send a request through the worker and wait for its response.

        Args:
            url: Target URL
            options: Request options (dict with camelCase or snake_case keys,
                     or a RequestOptions). Missing ja3, user agent, body and
                     proxy get defaults; a ``{name: value}`` cookie dict is
                     expanded into cookie records.
            method: HTTP method

        Raises:
            WorkerError: If the worker reported an error for this request
            ProtocolError: If the worker's response could not be interpreted
            ChannelClosedError: If the client is closed before a response arrives
        """
        if self._closed:
            raise ChannelClosedError("Client has exited")

        request_id = new_request_id(url)
        request_options = RequestOptions.coerce(options)
        frame = WorkerRequest(
            request_id=request_id,
            options=request_options.to_wire(url, method),
        ).to_json()

        completion = self._dispatcher.register(request_id)
        try:
            await self._supervisor.send(frame)
            message = await completion
        finally:
            # No-op after delivery; cleans up if the caller gave up
            self._dispatcher.discard(request_id)

        return WorkerResponse.from_message(message).to_response()

    async def __call__(self, url: str, options: Options = None, method: Method = "get") -> Response:
        return await self.request(url, options, method)

    async def head(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "head")

    async def get(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "get")

    async def post(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "post")

    async def put(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "put")

    async def delete(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "delete")

    async def trace(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "trace")

    async def options(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "options")

    async def connect(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "connect")

    async def patch(self, url: str, options: Options = None) -> Response:
        return await self.request(url, options, "patch")

    async def exit(self) -> None:
        """Close the channel.

        Calls still waiting for a response fail with ChannelClosedError.
        """
        if self._closed:
            return
        self._closed = True

        await self._supervisor.shutdown()
        failed = self._dispatcher.fail_all(
            ChannelClosedError("Channel closed before a response arrived")
        )
        if failed:
            logger.info(f"Failed {failed} pending requests on exit")

    async def __aenter__(self) -> CycleTLSClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.exit()


# Factory functions


async def init_cycletls(
    host: str | None = None,
    port: int | None = None,
    debug: bool | None = None,
    *,
    config: ClientConfig | None = None,
    connector: Connector | None = None,
    worker_starter: WorkerStarter | None = None,
) -> CycleTLSClient:
    """Create a client and connect it to the worker.

    The control-channel port is probed first. If a worker already listens
    there (client role), this waits until the channel is connected. If the
    port is free (host role), ``worker_starter(host, port)`` is awaited to get
    a worker listening and the client then connects to it; without a
    ``worker_starter`` the client is returned unconnected and requests are
    queued until ``client.start()`` is called.

    Args:
        host: Control-channel host (default: localhost, or CYCLETLS_HOST)
        port: Control-channel port (default: 9119, or CYCLETLS_PORT)
        debug: Enable DEBUG logging for cycletls (adds a stderr handler
               if the cycletls logger has none)
        config: Base configuration (default: ClientConfig.from_env())
        connector: Transport connector (default: WebSocket)
        worker_starter: Coroutine function starting a worker in host role

    Returns:
        CycleTLSClient
    """
    config = (config or ClientConfig.from_env()).with_overrides(host=host, port=port, debug=debug)
    if config.debug:
        package_logger = logging.getLogger("cycletls")
        package_logger.setLevel(logging.DEBUG)
        if not package_logger.handlers:
            # Without a handler only WARNING and above reach stderr
            package_logger.addHandler(logging.StreamHandler())

    role = probe_role(config.host, config.port)
    client = CycleTLSClient(config, connector=connector, role=role)

    if role == Role.HOST:
        if worker_starter is None:
            logger.info(f"No worker on {config.host}:{config.port}; acting as host")
            return client
        logger.info(f"Starting worker on {config.host}:{config.port}")
        await worker_starter(config.host, config.port)

    await client.start()
    return client
