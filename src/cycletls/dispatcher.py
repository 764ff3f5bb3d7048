"""One-shot response dispatch keyed by request id."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

REQUEST_ID_FIELD = "RequestID"


class ResponseDispatcher:
    """Routes each inbound envelope to the single caller waiting for it.

    ``register`` hands out a future for a request id; ``deliver`` resolves and
    forgets it. Envelopes for ids nobody is waiting on are dropped.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def register(self, request_id: str) -> asyncio.Future[dict[str, Any]]:
        """Create the completion for ``request_id``.

        Raises:
            ValueError: If a completion for this id is still pending
        """
        existing = self._pending.get(request_id)
        if existing is not None and not existing.done():
            raise ValueError(f"Request {request_id!r} is already pending")

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    def deliver(self, message: Mapping[str, Any]) -> bool:
        """Resolve the completion matching ``message``'s request id.

        Returns:
            True if a waiting caller received the message
        """
        request_id = message.get(REQUEST_ID_FIELD)
        if not isinstance(request_id, str):
            logger.debug(f"Dropping message without {REQUEST_ID_FIELD}")
            return False

        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return False

        future.set_result(dict(message))
        return True

    def discard(self, request_id: str) -> None:
        """Forget ``request_id`` without resolving it."""
        self._pending.pop(request_id, None)

    def fail_all(self, exc: BaseException) -> int:
        """Fail every pending completion with ``exc``.

        Returns:
            Number of completions failed
        """
        pending = list(self._pending.values())
        self._pending.clear()

        failed = 0
        for future in pending:
            if not future.done():
                future.set_exception(exc)
                failed += 1
        return failed
