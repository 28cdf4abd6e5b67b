"""WebSocket client wrapper for the control endpoint connection."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import AlertAgentConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

NORMAL_CLOSURE = 1000


class AgentWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    BINARY = "binary"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class AgentWsMessage:
    """Normalized WebSocket message payload."""

    type: AgentWsMessageType
    data: str | bytes | None = None


class AgentWsClient:
    """Wrapper around the websockets library for one agent session."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None
        self._closed = False

    async def connect(
        self,
        host: str,
        port: int,
        *,
        path: str = "",
        ping_interval: int | None = 20,
        timeout: float = 15.0,
    ) -> None:
        """Connect to the control endpoint."""
        self._ws = await connect_websocket(
            host,
            port,
            path=path,
            ping_interval=ping_interval,
            timeout=timeout,
        )
        self._closed = False

    @property
    def is_open(self) -> bool:
        """Return True while the connection has not been closed."""
        return self._ws is not None and not self._closed

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the websocket connection with a close code and reason."""
        if self._ws is None or self._closed:
            return
        self._closed = True
        await self._ws.close(code=code, reason=reason)

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload as a text frame.

        Raises:
            AlertAgentConnectionError: If not connected or the send fails
        """
        if self._ws is None or self._closed:
            raise AlertAgentConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(json.dumps(payload))
        except (ConnectionClosed, WebSocketException, OSError) as err:
            raise AlertAgentConnectionError("WebSocket send failed") from err

    def __aiter__(self) -> AsyncIterator[AgentWsMessage]:
        if self._ws is None:
            raise AlertAgentConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[AgentWsMessage]:
        if self._ws is None:
            raise AlertAgentConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized: AgentWsMessage | None = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield AgentWsMessage(type=AgentWsMessageType.CLOSED)
        except Exception:
            yield AgentWsMessage(type=AgentWsMessageType.ERROR)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield AgentWsMessage(type=AgentWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> AgentWsMessage | None:
        """Normalize backend frames into AgentWsMessage."""
        if isinstance(msg, (bytes, bytearray, memoryview)):
            return AgentWsMessage(AgentWsMessageType.BINARY, bytes(msg))
        if isinstance(msg, str):
            return AgentWsMessage(AgentWsMessageType.TEXT, msg)
        return None
