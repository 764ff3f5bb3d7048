"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
import socket
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import pytest

from cycletls import ClientConfig, CycleTLSClient, MockConnector


def echo_responder(message: dict[str, Any]) -> dict[str, Any]:
    """Worker stand-in: answers every request with 200 and the options it received."""
    return {
        "RequestID": message["requestId"],
        "Status": 200,
        "Body": json.dumps(message["options"]),
        "Headers": {"Content-Type": "application/json"},
    }


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds (fails the test after a timeout)."""
    return _eventually


@pytest.fixture
def config() -> ClientConfig:
    """Fast timings so reconnect and flush tests finish quickly."""
    return ClientConfig(host="127.0.0.1", port=9119, reconnect_delay=0.01, flush_interval=0.01)


@pytest.fixture
def connector() -> MockConnector:
    """Connector whose transports never answer on their own."""
    return MockConnector()


@pytest.fixture
def echo_connector() -> MockConnector:
    """Connector whose transports answer every request."""
    return MockConnector(responder=echo_responder)


@pytest.fixture
def client(config: ClientConfig, connector: MockConnector) -> CycleTLSClient:
    return CycleTLSClient(config, connector=connector)


@pytest.fixture
def busy_port() -> Iterator[int]:
    """A port with a listening socket on it."""
    with socket.create_server(("127.0.0.1", 0)) as server:
        yield server.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
