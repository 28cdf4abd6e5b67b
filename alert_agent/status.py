"""Connection state and its human-readable projection."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .collaborators import StatusSink

_LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connectivity of the agent, owned by the reconnection supervisor."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"


STATUS_TEXT: dict[ConnectionState, str] = {
    ConnectionState.IDLE: "Idle",
    ConnectionState.CONNECTING: "Connecting...",
    ConnectionState.CONNECTED: "Connected - Ready for alerts",
    ConnectionState.DISCONNECTING: "Disconnecting...",
    ConnectionState.DISCONNECTED: "Disconnected - Retrying...",
}


def status_text(state: ConnectionState) -> str:
    """Return the status line shown for ``state``."""
    return STATUS_TEXT[state]


class StatusReporter:
    """Project connection state transitions onto a status sink.

    Holds no state of its own; register :meth:`on_state_changed` as a
    supervisor state listener.
    """

    def __init__(self, sink: StatusSink) -> None:
        self._sink = sink

    def on_state_changed(self, state: ConnectionState) -> None:
        """Push the status line for ``state`` to the sink."""
        try:
            self._sink.update(status_text(state))
        except Exception as err:
            _LOGGER.exception("Status sink error: %s", err)
