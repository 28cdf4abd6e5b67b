"""Collaborator boundary.

This module defines the interfaces the agent core uses to reach the
outside world: the alert screen, the speech engine, the vibration motor,
the status display and the configuration store.

Key principles:
- The core calls collaborators, collaborators never call back into the core
- Collaborator calls are fire-and-forget and must not block the caller
- A failing collaborator never affects the other collaborators
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .protocol import AlertPayload

_LOGGER = logging.getLogger(__name__)

DEFAULT_LOCATION_LABEL = "Mobile Device"

# --------------------------------------------------------------------------
# Interfaces
# --------------------------------------------------------------------------


class AlertPresenter(Protocol):
    """Renders a full-screen, high-salience alert."""

    def show(self, payload: AlertPayload) -> None:
        """Present an alert. Each call is a new presentation instance."""
        ...

    def acknowledge(self) -> None:
        """Close the currently shown alert (user interaction)."""
        ...


class SpeechEngine(Protocol):
    """Text-to-speech output."""

    def ready(self) -> bool:
        """Return True once the engine can accept utterances."""
        ...

    def speak(self, text: str, flush_pending: bool) -> None:
        """Speak ``text``; with ``flush_pending`` drop anything queued."""
        ...

    def stop(self) -> None:
        """Stop speaking and discard queued utterances."""
        ...


class HapticDevice(Protocol):
    """Vibration motor."""

    def vibrate(self, pattern: Sequence[int]) -> None:
        """Play alternating off/on durations in milliseconds."""
        ...


class StatusSink(Protocol):
    """Persistent status line (notification text, kiosk banner)."""

    def update(self, text: str) -> None:
        """Replace the status text."""
        ...


class ConfigStore(Protocol):
    """Persisted agent settings."""

    def get_location_label(self) -> str:
        """Return the location label, or the placeholder when unset."""
        ...


@runtime_checkable
class ReadyNotifier(Protocol):
    """Speech engine that reports when it becomes ready.

    Engines that initialize asynchronously implement this so an utterance
    held back while they start up is spoken as soon as they can take it.
    """

    def add_ready_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a readiness listener. Returns a cleanup function."""
        ...


@runtime_checkable
class Closeable(Protocol):
    """Collaborator that owns a releasable handle."""

    def close(self) -> None:
        """Release the handle."""
        ...


def release(collaborator: object) -> None:
    """Close a collaborator if it owns a handle, logging any failure."""
    if not isinstance(collaborator, Closeable):
        return
    try:
        collaborator.close()
    except Exception as err:
        _LOGGER.exception("Failed to release %r: %s", collaborator, err)


# --------------------------------------------------------------------------
# Logging implementations (headless default)
# --------------------------------------------------------------------------


class LoggingAlertPresenter:
    """Presenter that writes alerts to the log."""

    def show(self, payload: AlertPayload) -> None:
        """Log the alert at WARNING so it stands out."""
        _LOGGER.warning(
            "ALERT %s at %s (priority %s)%s",
            payload.code_name,
            payload.location_name,
            payload.priority,
            f": {payload.message}" if payload.message else "",
        )

    def acknowledge(self) -> None:
        """Log the acknowledgement."""
        _LOGGER.info("Alert acknowledged")


class LoggingSpeechEngine:
    """Speech engine that logs utterances instead of speaking them."""

    def ready(self) -> bool:
        return True

    def speak(self, text: str, flush_pending: bool) -> None:
        _LOGGER.info("Speak (flush=%s): %s", flush_pending, text)

    def stop(self) -> None:
        _LOGGER.debug("Speech stopped")


class LoggingHapticDevice:
    """Haptic device that logs the requested pattern."""

    def vibrate(self, pattern: Sequence[int]) -> None:
        _LOGGER.info("Vibrate pattern=%s", list(pattern))


class LoggingStatusSink:
    """Status sink that logs every status change."""

    def update(self, text: str) -> None:
        _LOGGER.info("Status: %s", text)


class StaticConfigStore:
    """Config store holding a fixed location label."""

    def __init__(self, location_label: str | None = None) -> None:
        self._location_label = location_label

    def get_location_label(self) -> str:
        return self._location_label or DEFAULT_LOCATION_LABEL


# --------------------------------------------------------------------------
# Recording and callback implementations
# --------------------------------------------------------------------------


class RecordingAlertPresenter:
    """In-memory presenter for testing and dev tools.

    Keeps every presented alert in delivery order.
    """

    def __init__(self) -> None:
        self.shown: list[AlertPayload] = []
        self.acknowledged = 0

    def show(self, payload: AlertPayload) -> None:
        self.shown.append(payload)

    def acknowledge(self) -> None:
        self.acknowledged += 1


class RecordingSpeechEngine:
    """In-memory speech engine with a controllable ready flag.

    Setting ``is_ready`` from False to True notifies ready listeners.
    """

    def __init__(self, *, is_ready: bool = True) -> None:
        self._is_ready = is_ready
        self._ready_listeners: list[Callable[[], None]] = []
        self.spoken: list[tuple[str, bool]] = []
        self.stopped = 0
        self.closed = False

    @property
    def is_ready(self) -> bool:
        return self._is_ready

    @is_ready.setter
    def is_ready(self, value: bool) -> None:
        became_ready = value and not self._is_ready
        self._is_ready = value
        if became_ready:
            for listener in list(self._ready_listeners):
                listener()

    def add_ready_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._ready_listeners.append(listener)

        def remove() -> None:
            if listener in self._ready_listeners:
                self._ready_listeners.remove(listener)

        return remove

    def ready(self) -> bool:
        return self.is_ready

    def speak(self, text: str, flush_pending: bool) -> None:
        self.spoken.append((text, flush_pending))

    def stop(self) -> None:
        self.stopped += 1

    def close(self) -> None:
        self.closed = True


class RecordingHapticDevice:
    """In-memory haptic device."""

    def __init__(self) -> None:
        self.patterns: list[tuple[int, ...]] = []

    def vibrate(self, pattern: Sequence[int]) -> None:
        self.patterns.append(tuple(pattern))


class CallbackStatusSink:
    """Status sink that calls a callback function.

    Useful for forwarding status into a UI toolkit or notifier.
    """

    def __init__(self, callback: Callable[[str], None]) -> None:
        self._callback = callback

    def update(self, text: str) -> None:
        self._callback(text)
