"""Agent configuration loading.

Settings come from three layers, later layers winning:

1. ``agent.yaml`` (or any YAML file passed in)
2. ``ALERT_AGENT_*`` environment variables
3. explicit overrides (command-line flags)

Configuration is treated as data: values are validated once here and the
rest of the agent only sees the frozen :class:`AgentConfig`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .collaborators import DEFAULT_LOCATION_LABEL
from .errors import AlertAgentConfigError
from .protocol import DEFAULT_DEVICE_CLASS
from .ws import build_ws_url

_LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "192.168.1.100"
DEFAULT_PORT = 3002

ENV_PREFIX = "ALERT_AGENT_"
_ENV_KEYS: dict[str, str] = {
    "HOST": "host",
    "PORT": "port",
    "PATH": "path",
    "DEVICE_CLASS": "device_class",
    "LOCATION": "location_label",
    "RECONNECT_INTERVAL": "reconnect_interval",
    "ATTEMPT_FAILURE_INTERVAL": "attempt_failure_interval",
    "CONNECT_TIMEOUT": "connect_timeout",
    "PING_INTERVAL": "ping_interval",
    "DISPLAY_URL": "display_url",
}


@dataclass(frozen=True)
class Endpoint:
    """Control endpoint address."""

    host: str
    port: int = DEFAULT_PORT
    path: str = ""

    @property
    def url(self) -> str:
        """Return the ``ws://`` URL of the endpoint."""
        return build_ws_url(self.host, self.port, self.path)


@dataclass(frozen=True)
class AgentConfig:
    """Validated agent settings.

    Attributes:
        host: Control endpoint host.
        port: Control endpoint port.
        path: Optional WebSocket path on the endpoint.
        device_class: Device class sent at registration.
        location_label: Location label sent at registration.
        reconnect_interval: Wait after a session drops or a connect fails (s).
        attempt_failure_interval: Wait after an attempt fails to start (s).
        connect_timeout: Opening handshake timeout (s).
        ping_interval: Keepalive ping interval (s), 0 disables pings.
        display_url: Base URL of a local display service, if any.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = ""
    device_class: str = DEFAULT_DEVICE_CLASS
    location_label: str = DEFAULT_LOCATION_LABEL
    reconnect_interval: float = 5.0
    attempt_failure_interval: float = 3.0
    connect_timeout: float = 15.0
    ping_interval: int = 20
    display_url: str | None = None

    @property
    def endpoint(self) -> Endpoint:
        """Return the configured control endpoint."""
        return Endpoint(host=self.host, port=self.port, path=self.path)


_FIELD_TYPES: dict[str, type] = {
    "host": str,
    "port": int,
    "path": str,
    "device_class": str,
    "location_label": str,
    "reconnect_interval": float,
    "attempt_failure_interval": float,
    "connect_timeout": float,
    "ping_interval": int,
    "display_url": str,
}


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw setting to its field type."""
    if value is None:
        if key == "display_url":
            return None
        if key == "path":
            return ""
        raise AlertAgentConfigError(f"Setting '{key}' must not be empty")

    expected = _FIELD_TYPES[key]
    if isinstance(value, bool):
        raise AlertAgentConfigError(f"Setting '{key}' must be a {expected.__name__}")
    try:
        coerced = expected(value)
    except (TypeError, ValueError) as err:
        raise AlertAgentConfigError(
            f"Setting '{key}' must be a {expected.__name__}, got {value!r}"
        ) from err

    if expected is str:
        coerced = coerced.strip()
        if key == "display_url":
            return coerced or None
        if not coerced and key != "path":
            raise AlertAgentConfigError(f"Setting '{key}' must not be empty")
    elif key == "port" and not 0 < coerced < 65536:
        raise AlertAgentConfigError(f"Setting 'port' out of range: {coerced}")
    elif key == "ping_interval" and coerced < 0:
        raise AlertAgentConfigError("Setting 'ping_interval' must be >= 0")
    elif expected is float and coerced < 0:
        raise AlertAgentConfigError(f"Setting '{key}' must be >= 0")
    return coerced


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, raising AlertAgentConfigError on bad input."""
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as err:
        raise AlertAgentConfigError(f"Cannot read config file {path}: {err}") from err
    except yaml.YAMLError as err:
        raise AlertAgentConfigError(f"Invalid YAML in {path}: {err}") from err
    if not isinstance(data, dict):
        raise AlertAgentConfigError(f"Config file {path} must contain a mapping")
    return data


def _apply(config: AgentConfig, values: Mapping[str, Any], source: str) -> AgentConfig:
    known = {f.name for f in fields(AgentConfig)}
    changes: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            _LOGGER.warning("Ignoring unknown setting '%s' from %s", key, source)
            continue
        changes[key] = _coerce(key, value)
    return replace(config, **changes) if changes else config


def env_settings(environ: Mapping[str, str]) -> dict[str, str]:
    """Extract ``ALERT_AGENT_*`` settings from an environment mapping."""
    settings: dict[str, str] = {}
    for suffix, key in _ENV_KEYS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value is not None:
            settings[key] = value
    return settings


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> AgentConfig:
    """Build the agent configuration.

    Args:
        path: Optional YAML file. A missing file is an error.
        environ: Environment mapping (default: ``os.environ``).
        overrides: Final overrides; ``None`` values are skipped.

    Raises:
        AlertAgentConfigError: A setting is missing or invalid.
    """
    config = AgentConfig()
    if path is not None:
        config = _apply(config, _load_yaml(path), str(path))

    env = os.environ if environ is None else environ
    config = _apply(config, env_settings(env), "environment")

    if overrides:
        config = _apply(
            config,
            {k: v for k, v in overrides.items() if v is not None},
            "overrides",
        )
    return config


class YamlConfigStore:
    """Location label persisted in a YAML file.

    The file is re-read on every lookup so a label edited between
    reconnects is picked up by the next registration.
    """

    def __init__(self, path: Path, *, default: str = DEFAULT_LOCATION_LABEL) -> None:
        self._path = path
        self._default = default

    @property
    def path(self) -> Path:
        return self._path

    def get_location_label(self) -> str:
        """Return the stored label, or the default when unset or unreadable."""
        if not self._path.exists():
            return self._default
        try:
            data = _load_yaml(self._path)
        except AlertAgentConfigError as err:
            _LOGGER.warning("Using default location label: %s", err)
            return self._default
        label = data.get("location_label")
        if not isinstance(label, str) or not label.strip():
            return self._default
        return label.strip()

    def save_location_label(self, label: str) -> None:
        """Persist ``label``, keeping the other settings in the file."""
        label = label.strip()
        if not label:
            raise AlertAgentConfigError("Location label must not be empty")
        data = _load_yaml(self._path) if self._path.exists() else {}
        data["location_label"] = label
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
