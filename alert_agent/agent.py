"""Alert agent assembly.

Wires the supervisor, dispatcher, triggers and status reporter to a set
of collaborators and owns their shutdown order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .collaborators import (
    LoggingAlertPresenter,
    LoggingHapticDevice,
    LoggingSpeechEngine,
    LoggingStatusSink,
    ReadyNotifier,
    StaticConfigStore,
    release,
)
from .dispatcher import MessageDispatcher
from .status import StatusReporter
from .supervisor import CLOSE_TIMEOUT, ReconnectionSupervisor, SleepFunc
from .triggers import AlertTrigger, AnnouncementTrigger
from .ws_client import AgentWsClient

if TYPE_CHECKING:
    from .collaborators import (
        AlertPresenter,
        ConfigStore,
        HapticDevice,
        SpeechEngine,
        StatusSink,
    )
    from .config import AgentConfig, Endpoint

_LOGGER = logging.getLogger(__name__)


class AlertAgent:
    """A field agent relaying control endpoint alerts to local outputs."""

    def __init__(
        self,
        config: AgentConfig,
        *,
        presenter: AlertPresenter | None = None,
        speech: SpeechEngine | None = None,
        haptic: HapticDevice | None = None,
        status_sink: StatusSink | None = None,
        config_store: ConfigStore | None = None,
        endpoint_provider: Callable[[], Endpoint] | None = None,
        sleep: SleepFunc = asyncio.sleep,
        client_factory: Callable[[], AgentWsClient] = AgentWsClient,
    ) -> None:
        self.config = config
        self.presenter = presenter or LoggingAlertPresenter()
        self.speech = speech or LoggingSpeechEngine()
        self.haptic = haptic or LoggingHapticDevice()
        self.status_sink = status_sink or LoggingStatusSink()
        self.config_store = config_store or StaticConfigStore(config.location_label)

        self.announcement_trigger = AnnouncementTrigger(self.speech)
        self.alert_trigger = AlertTrigger(
            self.presenter, self.haptic, self.announcement_trigger
        )
        self.dispatcher = MessageDispatcher(
            self.alert_trigger, self.announcement_trigger
        )
        self.status_reporter = StatusReporter(self.status_sink)

        self.supervisor = ReconnectionSupervisor(
            endpoint_provider or (lambda: config.endpoint),
            self.config_store,
            self.dispatcher,
            device_class=config.device_class,
            reconnect_interval=config.reconnect_interval,
            attempt_failure_interval=config.attempt_failure_interval,
            connect_timeout=config.connect_timeout,
            ping_interval=config.ping_interval or None,
            sleep=sleep,
            client_factory=client_factory,
        )
        self.supervisor.add_state_listener(self.status_reporter.on_state_changed)

        self._remove_ready_listener: Callable[[], None] | None = None
        if isinstance(self.speech, ReadyNotifier):
            self._remove_ready_listener = self.speech.add_ready_listener(
                self._on_speech_ready
            )

    def _on_speech_ready(self) -> None:
        """Speak the utterance held back while the engine started up."""
        _LOGGER.debug("Speech engine ready")
        self.announcement_trigger.flush_pending()

    def start(self) -> asyncio.Task[None]:
        """Start the supervisor in the background."""
        return self.supervisor.start()

    async def run(self) -> None:
        """Run until :meth:`shutdown` is called from another task."""
        await self.start()

    async def shutdown(self) -> None:
        """Stop the supervisor, then release collaborator handles.

        Collaborators that queue work in the background (the display
        service adapters) get a bounded chance to flush the final status
        lines before they are closed.
        """
        await self.supervisor.shutdown()
        if self._remove_ready_listener is not None:
            self._remove_ready_listener()
            self._remove_ready_listener = None
        self.announcement_trigger.stop()
        collaborators = (self.presenter, self.speech, self.haptic, self.status_sink)
        for collaborator in collaborators:
            drain = getattr(collaborator, "drain", None)
            if drain is None:
                continue
            try:
                await asyncio.wait_for(drain(), timeout=CLOSE_TIMEOUT)
            except TimeoutError:
                _LOGGER.warning("Timed out flushing %r", collaborator)
        for collaborator in collaborators:
            release(collaborator)
        _LOGGER.info("Agent stopped")
