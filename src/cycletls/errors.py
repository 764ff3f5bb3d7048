"""Exception hierarchy for the cycletls client."""

from __future__ import annotations


class CycleTLSError(Exception):
    """Base class for all cycletls errors."""


class TransportError(CycleTLSError, ConnectionError):
    """Raised by channel transports when the connection fails or drops.

    The connection supervisor handles these itself; callers of the request
    API never see them.
    """


class ProtocolError(CycleTLSError):
    """Raised when the worker sends an envelope that cannot be interpreted."""


class WorkerError(CycleTLSError):
    """Raised when the worker reports an error for a request."""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.request_id = request_id


class ChannelClosedError(CycleTLSError):
    """Raised for requests that cannot complete because the client was closed."""
