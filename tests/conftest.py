"""Pytest configuration and fixtures for alert_agent tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from alert_agent.collaborators import (
    RecordingAlertPresenter,
    RecordingHapticDevice,
    RecordingSpeechEngine,
    StaticConfigStore,
)
from alert_agent.dispatcher import MessageDispatcher
from alert_agent.triggers import AlertTrigger, AnnouncementTrigger
from alert_agent.ws_client import AgentWsMessage, AgentWsMessageType

CODE_BLUE: dict[str, Any] = {
    "type": "alert",
    "data": {
        "codeName": "CODE BLUE",
        "codeColor": "#FF0000",
        "locationName": "ICU",
        "priority": "CRITICAL",
        "voiceEnabled": True,
        "voiceText": "Code Blue, ICU",
    },
}


def text(payload: dict[str, Any] | str) -> AgentWsMessage:
    """Build a TEXT message from a dict or raw string."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return AgentWsMessage(type=AgentWsMessageType.TEXT, data=data)


CLOSED = AgentWsMessage(type=AgentWsMessageType.CLOSED)
ERROR = AgentWsMessage(type=AgentWsMessageType.ERROR)


class FakeWsClient:
    """Scripted stand-in for AgentWsClient.

    Yields ``messages`` in order. When ``hold_open`` is set, iteration then
    blocks until :meth:`close` is called and yields CLOSED.
    """

    def __init__(
        self,
        messages: list[AgentWsMessage] | None = None,
        *,
        connect_error: Exception | None = None,
        send_error: Exception | None = None,
        hold_open: bool = False,
    ) -> None:
        self.messages = list(messages or [])
        self.connect_error = connect_error
        self.send_error = send_error
        self.hold_open = hold_open
        self.connect = AsyncMock(side_effect=self._connect)
        self.sent: list[dict[str, Any]] = []
        self.close_calls: list[tuple[int, str]] = []
        self.connected = False
        self._closed = asyncio.Event()

    async def _connect(self, host: str, port: int, **kwargs: Any) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    @property
    def is_open(self) -> bool:
        return self.connected and not self._closed.is_set()

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        self._closed.set()

    def __aiter__(self):  # type: ignore[no-untyped-def]
        return self._iter()

    async def _iter(self):  # type: ignore[no-untyped-def]
        for message in self.messages:
            if self._closed.is_set():
                break
            yield message
        if self.hold_open:
            await self._closed.wait()
            yield CLOSED


class ClientSequence:
    """Client factory handing out prepared fake clients in order."""

    def __init__(self, *clients: FakeWsClient) -> None:
        self.clients = list(clients)
        self.created: list[FakeWsClient] = []
        self.overlapping = 0

    def __call__(self) -> FakeWsClient:
        if self.clients:
            client = self.clients.pop(0)
        else:
            client = FakeWsClient(hold_open=True)
        if any(c.is_open for c in self.created):
            self.overlapping += 1
        self.created.append(client)
        return client


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class FakeSleep:
    """Injectable sleep recording requested delays.

    Returns immediately unless ``block`` is set, in which case it waits
    until the surrounding task is cancelled.
    """

    def __init__(self, *, block: bool = False) -> None:
        self.block = block
        self.delays: list[float] = []
        self.entered = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.entered.set()
        if self.block:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(0)


@pytest.fixture
def presenter() -> RecordingAlertPresenter:
    return RecordingAlertPresenter()


@pytest.fixture
def speech() -> RecordingSpeechEngine:
    return RecordingSpeechEngine()


@pytest.fixture
def haptic() -> RecordingHapticDevice:
    return RecordingHapticDevice()


@pytest.fixture
def config_store() -> StaticConfigStore:
    return StaticConfigStore("ICU")


@pytest.fixture
def announcer(speech: RecordingSpeechEngine) -> AnnouncementTrigger:
    return AnnouncementTrigger(speech)


@pytest.fixture
def alert_trigger(
    presenter: RecordingAlertPresenter,
    haptic: RecordingHapticDevice,
    announcer: AnnouncementTrigger,
) -> AlertTrigger:
    return AlertTrigger(presenter, haptic, announcer)


@pytest.fixture
def dispatcher(
    alert_trigger: AlertTrigger, announcer: AnnouncementTrigger
) -> MessageDispatcher:
    return MessageDispatcher(alert_trigger, announcer)


def create_mock_response(status: int = 200) -> AsyncMock:
    """Create a mock aiohttp response usable as an async context manager.

    Args:
        status: HTTP status code

    Returns:
        Configured AsyncMock response
    """
    response = AsyncMock()
    response.status = status
    response.__aenter__.return_value = response
    response.__aexit__.return_value = None
    return response


@pytest.fixture
def mock_http_session() -> MagicMock:
    """Create a mock aiohttp ClientSession."""
    import aiohttp

    return MagicMock(spec=aiohttp.ClientSession)
