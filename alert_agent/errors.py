"""Error types for the alert agent."""

from __future__ import annotations


class AlertAgentError(Exception):
    """Base error for alert agent failures."""


class AlertAgentClientError(AlertAgentError):
    """Base error for failures talking to a remote endpoint."""


class AlertAgentTimeout(AlertAgentClientError):
    """Timeout while communicating with the endpoint."""


class AlertAgentConnectionError(AlertAgentClientError):
    """Network connection to the endpoint failed."""


class AlertAgentResolveError(AlertAgentConnectionError):
    """Endpoint host name could not be resolved."""


class AlertAgentHandshakeError(AlertAgentClientError):
    """WebSocket handshake failed."""


class AlertAgentResponseError(AlertAgentClientError):
    """HTTP response error from the display service."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class AlertAgentProtocolError(AlertAgentError):
    """Inbound frame does not match the envelope format."""


class AlertAgentConfigError(AlertAgentError):
    """Agent configuration is missing or invalid."""
