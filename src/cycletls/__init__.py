"""cycletls - asyncio client for a TLS-fingerprinting HTTP worker.

Requests are sent over a persistent WebSocket control channel to a worker
process that performs them with a configurable JA3 fingerprint and user
agent. The client supervises the channel, queues requests while it is down
and matches every response to the call that issued it.
"""

from .client import CycleTLSClient, init_cycletls
from .config import DEFAULT_HOST, DEFAULT_JA3, DEFAULT_PORT, DEFAULT_USER_AGENT, ClientConfig
from .dispatcher import ResponseDispatcher
from .errors import (
    ChannelClosedError,
    CycleTLSError,
    ProtocolError,
    TransportError,
    WorkerError,
)
from .negotiator import Role, probe_role
from .protocol import (
    Cookie,
    Method,
    RequestOptions,
    Response,
    WorkerRequest,
    WorkerResponse,
    normalize_cookies,
)
from .request_queue import RequestQueue
from .supervisor import ChannelState, ConnectionSupervisor
from .transport import (
    ChannelTransport,
    Connector,
    MockChannelTransport,
    MockConnector,
    WebSocketChannelTransport,
    websocket_connector,
)

__all__ = [
    # Client (recommended entry point)
    "CycleTLSClient",
    "init_cycletls",
    # Configuration
    "ClientConfig",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_JA3",
    "DEFAULT_USER_AGENT",
    # Core components
    "ConnectionSupervisor",
    "ChannelState",
    "RequestQueue",
    "ResponseDispatcher",
    "Role",
    "probe_role",
    # Transports
    "ChannelTransport",
    "Connector",
    "WebSocketChannelTransport",
    "MockChannelTransport",
    "MockConnector",
    "websocket_connector",
    # Wire types
    "Cookie",
    "Method",
    "RequestOptions",
    "Response",
    "WorkerRequest",
    "WorkerResponse",
    "normalize_cookies",
    # Errors
    "CycleTLSError",
    "TransportError",
    "ProtocolError",
    "WorkerError",
    "ChannelClosedError",
]
