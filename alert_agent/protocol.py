"""Wire protocol helpers for control endpoint frames.

Frames are JSON objects of the form ``{"type": ..., "data": ...}``. The agent
sends a single registration frame per connection and receives ``alert`` and
``speak`` frames. Unknown optional fields MUST be ignored by the recipient.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from .errors import AlertAgentProtocolError

MSG_TYPE_REGISTRATION = "agent-registration"
MSG_TYPE_ALERT = "alert"
MSG_TYPE_SPEAK = "speak"

DEFAULT_DEVICE_CLASS = "android"

DEFAULT_CODE_NAME = "EMERGENCY ALERT"
DEFAULT_CODE_COLOR = "#3B82F6"
DEFAULT_LOCATION_NAME = "Unknown Location"
DEFAULT_PRIORITY = "HIGH"

# Haptic waveform: off/on durations in milliseconds, starting with "off".
ALERT_VIBRATION_PATTERN: tuple[int, ...] = (0, 500, 200, 500)

_COLOR_RE = re.compile(r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")


def build_registration(
    *,
    location_label: str,
    device_class: str = DEFAULT_DEVICE_CLASS,
) -> dict[str, Any]:
    """Build the registration frame sent right after a connection opens."""
    return {
        "type": MSG_TYPE_REGISTRATION,
        "device": device_class,
        "location": location_label,
    }


@dataclass(frozen=True)
class InboundEnvelope:
    """Outer ``{type, data}`` structure of an inbound frame.

    ``has_data`` distinguishes an explicit ``"data": null`` from a frame
    that omits the field entirely.
    """

    type: str
    data: Any = None
    has_data: bool = False


def parse_envelope(raw: str) -> InboundEnvelope:
    """Parse a raw text frame into an envelope.

    Raises:
        AlertAgentProtocolError: The frame is not a JSON object with a
            string ``type`` field.
    """
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as err:
        raise AlertAgentProtocolError(f"Frame is not valid JSON: {err}") from err

    if not isinstance(decoded, dict):
        raise AlertAgentProtocolError("Frame is not a JSON object")

    msg_type = decoded.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise AlertAgentProtocolError("Frame has no 'type' field")

    return InboundEnvelope(
        type=msg_type,
        data=decoded.get("data"),
        has_data="data" in decoded,
    )


def _opt_str(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or default


def _opt_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


@dataclass(frozen=True)
class AlertPayload:
    """Fully populated alert ready for presentation.

    Built with :meth:`from_data`, which never raises: every absent or
    malformed field falls back to the generic emergency rendering.
    """

    code_name: str = DEFAULT_CODE_NAME
    code_color: str = DEFAULT_CODE_COLOR
    location_name: str = DEFAULT_LOCATION_NAME
    message: str = ""
    priority: str = DEFAULT_PRIORITY
    voice_enabled: bool = False
    voice_text: str = ""

    @classmethod
    def from_data(cls, data: Any) -> AlertPayload:
        """Parse an alert ``data`` object, defaulting missing fields."""
        if not isinstance(data, dict):
            return cls()

        code_color = _opt_str(data, "codeColor", DEFAULT_CODE_COLOR)
        if not _COLOR_RE.match(code_color):
            code_color = DEFAULT_CODE_COLOR

        return cls(
            code_name=_opt_str(data, "codeName", DEFAULT_CODE_NAME),
            code_color=code_color,
            location_name=_opt_str(data, "locationName", DEFAULT_LOCATION_NAME),
            message=_opt_str(data, "message", ""),
            priority=_opt_str(data, "priority", DEFAULT_PRIORITY).upper(),
            voice_enabled=_opt_bool(data, "voiceEnabled"),
            voice_text=_opt_str(data, "voiceText", ""),
        )

    @property
    def should_speak(self) -> bool:
        """Return True when the alert carries a voice announcement."""
        return self.voice_enabled and bool(self.voice_text)

    def to_wire(self) -> dict[str, Any]:
        """Return the payload in wire (camelCase) form."""
        return {
            "codeName": self.code_name,
            "codeColor": self.code_color,
            "locationName": self.location_name,
            "message": self.message,
            "priority": self.priority,
            "voiceEnabled": self.voice_enabled,
            "voiceText": self.voice_text,
        }


def parse_speak_text(data: Any) -> str:
    """Return the utterance of a speak ``data`` object, or an empty string."""
    if not isinstance(data, dict):
        return ""
    text = data.get("text")
    if not isinstance(text, str):
        return ""
    return text.strip()
