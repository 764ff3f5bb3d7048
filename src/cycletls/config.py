"""Client configuration and request defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9119

# Chrome 101 fingerprint used when a request does not carry its own.
DEFAULT_JA3 = (
    "771,4865-4867-4866-49195-49199-52393-52392-49196-49200-49162-49161-49171-49172-51-57-47-53-10,"
    "0-23-65281-10-11-35-16-5-51-43-13-45-28-21,29-23-24-25-256-257,0"
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/101.0.4951.54 Safari/537.36"
)

# The worker joins repeated Set-Cookie headers with this separator.
SET_COOKIE_SEPARATOR = "/,/"

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a CycleTLS client.

    ``host``/``port`` address the worker's control channel. ``debug`` turns
    on DEBUG logging for the ``cycletls`` logger.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False

    # Reconnection
    reconnect_delay: float = 0.1

    # Queued requests are re-checked at this interval while disconnected
    flush_interval: float = 0.1

    # WebSocket keep-alive
    ping_interval: float | None = 30.0
    ping_timeout: float | None = 10.0

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a config from ``CYCLETLS_HOST``/``CYCLETLS_PORT``/``CYCLETLS_DEBUG``."""
        config = cls()
        if host := os.getenv("CYCLETLS_HOST"):
            config = replace(config, host=host)
        if port := os.getenv("CYCLETLS_PORT"):
            try:
                config = replace(config, port=int(port))
            except ValueError as e:
                raise ValueError(f"CYCLETLS_PORT must be an integer, got {port!r}") from e
        if os.getenv("CYCLETLS_DEBUG", "").lower() in _TRUTHY:
            config = replace(config, debug=True)
        return config

    def with_overrides(
        self,
        host: str | None = None,
        port: int | None = None,
        debug: bool | None = None,
    ) -> ClientConfig:
        """Return a copy with every explicitly given (truthy) value applied."""
        config = self
        if host:
            config = replace(config, host=host)
        if port:
            config = replace(config, port=port)
        if debug is not None:
            config = replace(config, debug=debug)
        return config

    @property
    def url(self) -> str:
        """WebSocket URL of the control channel."""
        return f"ws://{self.host}:{self.port}"
