"""Side-effect triggers for inbound alert and speak messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .protocol import ALERT_VIBRATION_PATTERN, AlertPayload, parse_speak_text

if TYPE_CHECKING:
    from .collaborators import AlertPresenter, HapticDevice, SpeechEngine

_LOGGER = logging.getLogger(__name__)


class AnnouncementTrigger:
    """Forward utterances to the speech engine with flush-queue semantics.

    A new utterance replaces whatever is queued or playing. While the
    engine is not ready, only the newest utterance is held back.
    """

    def __init__(self, speech: SpeechEngine) -> None:
        self._speech = speech
        self._pending: str | None = None

    @property
    def pending(self) -> str | None:
        """Utterance held back until the engine becomes ready."""
        return self._pending

    def handle(self, data: Any) -> bool:
        """Handle a ``speak`` payload. Returns True if speech was requested."""
        return self.announce(parse_speak_text(data))

    def announce(self, text: str) -> bool:
        """Speak ``text``, replacing any pending utterance."""
        text = text.strip() if text else ""
        if not text:
            _LOGGER.debug("Ignoring empty utterance")
            return False

        self._pending = text
        return self.flush_pending()

    def flush_pending(self) -> bool:
        """Speak the held utterance if the engine is ready."""
        if self._pending is None:
            return False

        try:
            if not self._speech.ready():
                _LOGGER.debug("Speech engine not ready, holding utterance")
                return False
            text, self._pending = self._pending, None
            self._speech.speak(text, True)
        except Exception as err:
            _LOGGER.exception("Speech engine error: %s", err)
            return False
        return True

    def stop(self) -> None:
        """Drop the held utterance and silence the engine."""
        self._pending = None
        try:
            self._speech.stop()
        except Exception as err:
            _LOGGER.exception("Speech engine stop error: %s", err)


class AlertTrigger:
    """Surface an alert on screen, buzz, and optionally announce it.

    The three side effects are isolated from each other: a haptic failure
    never suppresses the visual alert and vice versa.
    """

    def __init__(
        self,
        presenter: AlertPresenter,
        haptic: HapticDevice,
        announcer: AnnouncementTrigger,
        *,
        vibration_pattern: tuple[int, ...] = ALERT_VIBRATION_PATTERN,
    ) -> None:
        self._presenter = presenter
        self._haptic = haptic
        self._announcer = announcer
        self._vibration_pattern = vibration_pattern

    def handle(self, data: Any) -> AlertPayload:
        """Handle an ``alert`` payload and return the rendered alert."""
        payload = AlertPayload.from_data(data)
        _LOGGER.info(
            "Alert received: %s at %s (%s)",
            payload.code_name,
            payload.location_name,
            payload.priority,
        )

        try:
            self._presenter.show(payload)
        except Exception as err:
            _LOGGER.exception("Alert presenter error: %s", err)

        try:
            self._haptic.vibrate(self._vibration_pattern)
        except Exception as err:
            _LOGGER.exception("Haptic device error: %s", err)

        if payload.should_speak:
            self._announcer.announce(payload.voice_text)

        return payload
