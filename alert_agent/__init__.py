"""Alert agent: relay emergency alerts from a control endpoint to local outputs."""

__version__ = "0.1.0"

from .agent import AlertAgent
from .collaborators import (
    AlertPresenter,
    ConfigStore,
    HapticDevice,
    ReadyNotifier,
    SpeechEngine,
    StatusSink,
)
from .config import AgentConfig, Endpoint, YamlConfigStore, load_config
from .dispatcher import DispatchResult, MessageDispatcher
from .errors import (
    AlertAgentClientError,
    AlertAgentConfigError,
    AlertAgentConnectionError,
    AlertAgentError,
    AlertAgentHandshakeError,
    AlertAgentProtocolError,
    AlertAgentResolveError,
    AlertAgentResponseError,
    AlertAgentTimeout,
)
from .protocol import AlertPayload, InboundEnvelope, build_registration, parse_envelope
from .status import ConnectionState, StatusReporter
from .supervisor import ReconnectionSupervisor
from .triggers import AlertTrigger, AnnouncementTrigger
from .ws import connect_websocket
from .ws_client import AgentWsClient, AgentWsMessage, AgentWsMessageType

__all__ = [
    "AgentConfig",
    "AgentWsClient",
    "AgentWsMessage",
    "AgentWsMessageType",
    "AlertAgent",
    "AlertAgentClientError",
    "AlertAgentConfigError",
    "AlertAgentConnectionError",
    "AlertAgentError",
    "AlertAgentHandshakeError",
    "AlertAgentProtocolError",
    "AlertAgentResolveError",
    "AlertAgentResponseError",
    "AlertAgentTimeout",
    "AlertPayload",
    "AlertPresenter",
    "AlertTrigger",
    "AnnouncementTrigger",
    "ConfigStore",
    "ConnectionState",
    "DispatchResult",
    "Endpoint",
    "HapticDevice",
    "InboundEnvelope",
    "MessageDispatcher",
    "ReadyNotifier",
    "ReconnectionSupervisor",
    "SpeechEngine",
    "StatusReporter",
    "StatusSink",
    "YamlConfigStore",
    "__version__",
    "build_registration",
    "connect_websocket",
    "load_config",
    "parse_envelope",
]
