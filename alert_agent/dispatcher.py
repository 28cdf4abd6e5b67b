"""Inbound frame classification and routing."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .errors import AlertAgentProtocolError
from .protocol import MSG_TYPE_ALERT, MSG_TYPE_SPEAK, parse_envelope

if TYPE_CHECKING:
    from .triggers import AlertTrigger, AnnouncementTrigger

_LOGGER = logging.getLogger(__name__)


class DispatchResult(Enum):
    """Outcome of dispatching one inbound frame."""

    HANDLED = "handled"
    MALFORMED = "malformed"
    UNKNOWN_TYPE = "unknown_type"
    MISSING_DATA = "missing_data"
    IGNORED_BINARY = "ignored_binary"
    HANDLER_ERROR = "handler_error"


class MessageDispatcher:
    """Route inbound frames to the alert and announcement triggers.

    Nothing raised while handling a frame escapes this class: a bad frame
    is logged and discarded so the session stays open.
    """

    def __init__(
        self,
        alert_trigger: AlertTrigger,
        announcement_trigger: AnnouncementTrigger,
    ) -> None:
        self._alert_trigger = alert_trigger
        self._announcement_trigger = announcement_trigger

    def dispatch_text(self, raw: str) -> DispatchResult:
        """Parse a text frame and hand its payload to the matching trigger."""
        try:
            envelope = parse_envelope(raw)
        except AlertAgentProtocolError as err:
            _LOGGER.warning("Discarding malformed frame: %s", err)
            return DispatchResult.MALFORMED

        if envelope.type not in (MSG_TYPE_ALERT, MSG_TYPE_SPEAK):
            _LOGGER.debug("Ignoring unknown message type: %s", envelope.type)
            return DispatchResult.UNKNOWN_TYPE

        # TODO: report recognized frames without data to the status sink once
        # product decides whether they count as protocol errors.
        if not envelope.has_data:
            _LOGGER.debug("Discarding '%s' frame without data", envelope.type)
            return DispatchResult.MISSING_DATA

        try:
            if envelope.type == MSG_TYPE_ALERT:
                self._alert_trigger.handle(envelope.data)
            else:
                self._announcement_trigger.handle(envelope.data)
        except Exception as err:
            _LOGGER.exception("Error handling '%s' frame: %s", envelope.type, err)
            return DispatchResult.HANDLER_ERROR

        return DispatchResult.HANDLED

    def dispatch_binary(self, data: bytes) -> DispatchResult:
        """Accept a binary frame without acting on it."""
        _LOGGER.debug("Received %d bytes of binary data", len(data))
        return DispatchResult.IGNORED_BINARY
