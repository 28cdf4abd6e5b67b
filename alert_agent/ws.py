"""WebSocket helpers for the alert agent transport."""

from __future__ import annotations

import asyncio
import socket

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from .errors import (
    AlertAgentConfigError,
    AlertAgentConnectionError,
    AlertAgentHandshakeError,
    AlertAgentResolveError,
    AlertAgentTimeout,
)


def build_ws_url(host: str, port: int, path: str = "") -> str:
    """Return the ``ws://`` URL for an endpoint."""
    if path and not path.startswith("/"):
        path = f"/{path}"
    return f"ws://{host}:{port}{path}"


async def connect_websocket(
    host: str,
    port: int,
    *,
    path: str = "",
    ping_interval: int | None = 20,
    timeout: float = 15.0,
) -> ClientConnection:
    """Connect to the control endpoint.

    Args:
        host: Control endpoint host
        port: Control endpoint port
        path: WebSocket path (default: none)
        ping_interval: Interval for keepalive ping frames
        timeout: Connection timeout

    Raises:
        AlertAgentTimeout: The opening handshake did not finish in time
        AlertAgentConfigError: The endpoint does not form a valid URL
        AlertAgentHandshakeError: The server rejected the upgrade
        AlertAgentResolveError: The host name could not be resolved
        AlertAgentConnectionError: The TCP connection could not be made
    """
    ws_url = build_ws_url(host, port, path)
    try:
        return await asyncio.wait_for(
            websockets.connect(
                ws_url,
                ping_interval=ping_interval,
                # The handshake deadline is enforced by wait_for below.
                open_timeout=None,
                close_timeout=5,
                max_size=None,
            ),
            timeout=timeout,
        )
    except TimeoutError as err:
        raise AlertAgentTimeout("WebSocket connection timed out") from err
    except InvalidURI as err:
        raise AlertAgentConfigError(f"Invalid endpoint URL: {ws_url}") from err
    except InvalidHandshake as err:
        raise AlertAgentHandshakeError("WebSocket handshake failed") from err
    except socket.gaierror as err:
        raise AlertAgentResolveError(f"Cannot resolve host {host!r}") from err
    except (OSError, WebSocketException) as err:
        raise AlertAgentConnectionError("WebSocket connection failed") from err
