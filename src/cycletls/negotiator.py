"""Host/Client role negotiation for the control-channel port.

The probe tries to bind the port: if nothing is listening there, this process
is the *host* and is responsible for getting a worker to listen on it;
otherwise a worker is already there and this process connects as a *client*.

This is a liveness heuristic, not a lock. The port can change hands between
the probe and the first connection attempt.
"""

from __future__ import annotations

import logging
import socket
from enum import Enum

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Which side of the control channel this process plays."""

    HOST = "host"
    CLIENT = "client"


def probe_role(host: str, port: int) -> Role:
    """Decide the role by trying to listen on ``(host, port)``.

    The probe socket is closed again immediately.
    """
    try:
        with socket.create_server((host, port)):
            pass
    except OSError as e:
        logger.debug(f"Port {host}:{port} is busy ({e}), acting as client")
        return Role.CLIENT

    logger.debug(f"Port {host}:{port} is free, acting as host")
    return Role.HOST
