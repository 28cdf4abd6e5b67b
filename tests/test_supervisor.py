"""Tests for ReconnectionSupervisor."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from alert_agent.collaborators import (
    CallbackStatusSink,
    RecordingAlertPresenter,
    RecordingSpeechEngine,
    StaticConfigStore,
)
from alert_agent.config import Endpoint
from alert_agent.dispatcher import MessageDispatcher
from alert_agent.errors import (
    AlertAgentConfigError,
    AlertAgentConnectionError,
    AlertAgentHandshakeError,
    AlertAgentResolveError,
    AlertAgentTimeout,
)
from alert_agent.protocol import AlertPayload
from alert_agent.status import ConnectionState, StatusReporter
from alert_agent.supervisor import ReconnectionSupervisor
from alert_agent.ws_client import AgentWsMessage, AgentWsMessageType

from .conftest import (
    CODE_BLUE,
    ERROR,
    ClientSequence,
    FakeSleep,
    FakeWsClient,
    eventually,
    text,
)

REGISTRATION = {"type": "agent-registration", "device": "android", "location": "ICU"}


def make_supervisor(
    dispatcher: MessageDispatcher,
    factory: ClientSequence,
    sleep: FakeSleep | None = None,
    *,
    config_store: StaticConfigStore | None = None,
    endpoint_provider=None,  # type: ignore[no-untyped-def]
) -> ReconnectionSupervisor:
    return ReconnectionSupervisor(
        endpoint_provider or (lambda: Endpoint("10.0.0.5")),
        config_store or StaticConfigStore("ICU"),
        dispatcher,
        sleep=sleep or FakeSleep(),
        client_factory=factory,  # type: ignore[arg-type]
    )


class TestSupervisorSession:
    """Session lifecycle on a healthy connection."""

    async def test_initial_state(self, dispatcher: MessageDispatcher) -> None:
        supervisor = make_supervisor(dispatcher, ClientSequence())
        assert supervisor.state is ConnectionState.IDLE
        assert not supervisor.is_connected
        assert not supervisor.running

    async def test_code_blue_scenario(
        self,
        dispatcher: MessageDispatcher,
        presenter: RecordingAlertPresenter,
        speech: RecordingSpeechEngine,
    ) -> None:
        client = FakeWsClient([text(CODE_BLUE)], hold_open=True)
        factory = ClientSequence(client)
        supervisor = make_supervisor(dispatcher, factory)

        supervisor.start()
        await eventually(lambda: len(presenter.shown) == 1)

        assert supervisor.is_connected
        assert client.sent == [REGISTRATION]
        assert presenter.shown == [AlertPayload.from_data(CODE_BLUE["data"])]
        assert speech.spoken == [("Code Blue, ICU", True)]
        client.connect.assert_awaited_once_with(
            "10.0.0.5", 3002, path="", ping_interval=20, timeout=15.0
        )

        await supervisor.shutdown()

    async def test_registration_before_dispatch(
        self, presenter: RecordingAlertPresenter
    ) -> None:
        client = FakeWsClient([text(CODE_BLUE)], hold_open=True)
        order: list[str] = []

        async def record_send(payload: dict) -> None:
            order.append(payload["type"])

        client.send_json = record_send  # type: ignore[method-assign]
        dispatcher = MagicMock()
        dispatcher.dispatch_text.side_effect = lambda raw: order.append("dispatch")
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        supervisor.start()
        await eventually(lambda: "dispatch" in order)

        assert order == ["agent-registration", "dispatch"]
        await supervisor.shutdown()

    async def test_malformed_frame_keeps_session_open(
        self,
        dispatcher: MessageDispatcher,
        presenter: RecordingAlertPresenter,
    ) -> None:
        client = FakeWsClient(
            [text('{"type": "alert", "data": {'), text('{"data": {}}'), text(CODE_BLUE)],
            hold_open=True,
        )
        factory = ClientSequence(client)
        supervisor = make_supervisor(dispatcher, factory)

        supervisor.start()
        await eventually(lambda: len(presenter.shown) == 1)

        assert supervisor.sessions_opened == 1
        assert client.close_calls == []
        assert len(factory.created) == 1
        await supervisor.shutdown()

    async def test_unknown_type_keeps_session_open(
        self,
        dispatcher: MessageDispatcher,
        presenter: RecordingAlertPresenter,
        speech: RecordingSpeechEngine,
    ) -> None:
        client = FakeWsClient(
            [text({"type": "unknown-future-type", "data": {}}), text(CODE_BLUE)],
            hold_open=True,
        )
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        supervisor.start()
        await eventually(lambda: len(presenter.shown) == 1)

        assert supervisor.is_connected
        assert client.close_calls == []
        await supervisor.shutdown()

    async def test_frames_dispatched_in_arrival_order(
        self,
        dispatcher: MessageDispatcher,
        speech: RecordingSpeechEngine,
    ) -> None:
        client = FakeWsClient(
            [
                text(CODE_BLUE),
                text({"type": "speak", "data": {"text": "Team to ICU"}}),
            ],
            hold_open=True,
        )
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        supervisor.start()
        await eventually(lambda: len(speech.spoken) == 2)

        assert [t for t, _ in speech.spoken] == ["Code Blue, ICU", "Team to ICU"]
        await supervisor.shutdown()

    async def test_binary_frames_ignored(
        self, presenter: RecordingAlertPresenter
    ) -> None:
        client = FakeWsClient(
            [AgentWsMessage(AgentWsMessageType.BINARY, b"\x00"), text(CODE_BLUE)],
            hold_open=True,
        )
        dispatcher = MagicMock()
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        supervisor.start()
        await eventually(lambda: dispatcher.dispatch_text.called)

        dispatcher.dispatch_binary.assert_called_once_with(b"\x00")
        assert supervisor.is_connected
        await supervisor.shutdown()


class TestSupervisorReconnect:
    """Recovery from transport failures."""

    async def test_drop_then_reconnect_with_status(
        self, dispatcher: MessageDispatcher
    ) -> None:
        statuses: list[str] = []
        first = FakeWsClient([text(CODE_BLUE)])
        second = FakeWsClient(hold_open=True)
        factory = ClientSequence(first, second)
        sleep = FakeSleep()
        supervisor = make_supervisor(dispatcher, factory, sleep)
        supervisor.add_state_listener(
            StatusReporter(CallbackStatusSink(statuses.append)).on_state_changed
        )

        supervisor.start()
        await eventually(lambda: supervisor.sessions_opened == 2)

        assert statuses == [
            "Connecting...",
            "Connected - Ready for alerts",
            "Disconnected - Retrying...",
            "Connecting...",
            "Connected - Ready for alerts",
        ]
        assert first.sent == [REGISTRATION]
        assert second.sent == [REGISTRATION]
        assert first.close_calls == [(1000, "Reconnecting")]
        assert sleep.delays == [5.0]
        assert factory.overlapping == 0
        await supervisor.shutdown()

    @pytest.mark.parametrize(
        ("error", "delay"),
        [
            (AlertAgentConnectionError("refused"), 5.0),
            (AlertAgentTimeout("timed out"), 5.0),
            (AlertAgentHandshakeError("rejected"), 5.0),
            (AlertAgentResolveError("no such host"), 3.0),
            (AlertAgentConfigError("bad uri"), 3.0),
            (RuntimeError("unexpected"), 3.0),
        ],
    )
    async def test_connect_failure_intervals(
        self, dispatcher: MessageDispatcher, error: Exception, delay: float
    ) -> None:
        failing = FakeWsClient(connect_error=error)
        factory = ClientSequence(failing)
        sleep = FakeSleep()
        supervisor = make_supervisor(dispatcher, factory, sleep)

        supervisor.start()
        await eventually(lambda: supervisor.is_connected)

        assert sleep.delays == [delay]
        assert supervisor.attempts == 2
        assert supervisor.sessions_opened == 1
        await supervisor.shutdown()

    async def test_endpoint_provider_error_uses_short_interval(
        self, dispatcher: MessageDispatcher
    ) -> None:
        calls = 0

        def provider() -> Endpoint:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise AlertAgentConfigError("no host configured")
            return Endpoint("10.0.0.6", 4000)

        factory = ClientSequence()
        sleep = FakeSleep()
        supervisor = make_supervisor(
            dispatcher, factory, sleep, endpoint_provider=provider
        )

        supervisor.start()
        await eventually(lambda: supervisor.is_connected)

        assert sleep.delays == [3.0]
        assert len(factory.created) == 1
        factory.created[0].connect.assert_awaited_once_with(
            "10.0.0.6", 4000, path="", ping_interval=20, timeout=15.0
        )
        await supervisor.shutdown()

    async def test_endpoint_read_every_attempt(
        self, dispatcher: MessageDispatcher
    ) -> None:
        hosts = iter(["10.0.0.1", "10.0.0.2"])
        factory = ClientSequence(FakeWsClient())
        supervisor = make_supervisor(
            dispatcher, factory, endpoint_provider=lambda: Endpoint(next(hosts))
        )

        supervisor.start()
        await eventually(lambda: supervisor.sessions_opened == 2)

        assert [c.connect.await_args.args[0] for c in factory.created] == [
            "10.0.0.1",
            "10.0.0.2",
        ]
        await supervisor.shutdown()

    async def test_location_label_read_every_attempt(
        self, dispatcher: MessageDispatcher
    ) -> None:
        config_store = MagicMock()
        config_store.get_location_label.side_effect = ["ICU", "Main Ward"]
        first = FakeWsClient()
        second = FakeWsClient(hold_open=True)
        supervisor = make_supervisor(
            dispatcher, ClientSequence(first, second), config_store=config_store
        )

        supervisor.start()
        await eventually(lambda: supervisor.sessions_opened == 2 and bool(second.sent))

        assert first.sent[0]["location"] == "ICU"
        assert second.sent[0]["location"] == "Main Ward"
        await supervisor.shutdown()

    async def test_registration_send_failure_reconnects(
        self,
        dispatcher: MessageDispatcher,
        presenter: RecordingAlertPresenter,
    ) -> None:
        broken = FakeWsClient(
            [text(CODE_BLUE)],
            send_error=AlertAgentConnectionError("WebSocket send failed"),
            hold_open=True,
        )
        healthy = FakeWsClient(hold_open=True)
        factory = ClientSequence(broken, healthy)
        sleep = FakeSleep()
        supervisor = make_supervisor(dispatcher, factory, sleep)

        supervisor.start()
        await eventually(lambda: healthy.sent == [REGISTRATION])

        assert presenter.shown == []
        assert broken.close_calls == [(1000, "Reconnecting")]
        assert sleep.delays == [5.0]
        assert factory.overlapping == 0
        await supervisor.shutdown()

    async def test_transport_error_event_reconnects(
        self, dispatcher: MessageDispatcher
    ) -> None:
        first = FakeWsClient([ERROR, text(CODE_BLUE)])
        factory = ClientSequence(first)
        sleep = FakeSleep()
        supervisor = make_supervisor(dispatcher, factory, sleep)

        supervisor.start()
        await eventually(lambda: supervisor.sessions_opened == 2)

        assert sleep.delays == [5.0]
        await supervisor.shutdown()

    async def test_never_two_live_sessions(
        self, dispatcher: MessageDispatcher
    ) -> None:
        factory = ClientSequence(
            FakeWsClient([text(CODE_BLUE)]),
            FakeWsClient(connect_error=AlertAgentTimeout("timeout")),
            FakeWsClient([text(CODE_BLUE)]),
            FakeWsClient(hold_open=True),
        )
        supervisor = make_supervisor(dispatcher, factory)

        supervisor.start()
        await eventually(
            lambda: supervisor.attempts == 4 and supervisor.sessions_opened == 3
        )

        assert factory.overlapping == 0
        assert sum(1 for c in factory.created if c.is_open) == 1
        await supervisor.shutdown()


class TestSupervisorShutdown:
    """Shutdown is prompt and graceful."""

    async def test_shutdown_closes_live_session(
        self, dispatcher: MessageDispatcher
    ) -> None:
        statuses: list[str] = []
        client = FakeWsClient(hold_open=True)
        supervisor = make_supervisor(dispatcher, ClientSequence(client))
        supervisor.add_state_listener(
            StatusReporter(CallbackStatusSink(statuses.append)).on_state_changed
        )

        task = supervisor.start()
        await eventually(lambda: supervisor.is_connected)
        await supervisor.shutdown()

        assert task.done()
        assert client.close_calls[0] == (1001, "Agent shutdown")
        assert supervisor.state is ConnectionState.IDLE
        assert statuses[-2:] == ["Disconnecting...", "Idle"]

    async def test_shutdown_during_wait_is_prompt(
        self, dispatcher: MessageDispatcher
    ) -> None:
        factory = ClientSequence(
            FakeWsClient(connect_error=AlertAgentConnectionError("refused"))
        )
        sleep = FakeSleep(block=True)
        supervisor = make_supervisor(dispatcher, factory, sleep)

        task = supervisor.start()
        await asyncio.wait_for(sleep.entered.wait(), timeout=1.0)
        await asyncio.wait_for(supervisor.shutdown(), timeout=0.5)

        assert task.done()
        assert sleep.delays == [5.0]
        assert len(factory.created) == 1
        assert supervisor.state is ConnectionState.IDLE

    async def test_shutdown_during_real_wait_is_prompt(
        self, dispatcher: MessageDispatcher
    ) -> None:
        factory = ClientSequence(
            FakeWsClient(connect_error=AlertAgentConnectionError("refused"))
        )
        supervisor = ReconnectionSupervisor(
            lambda: Endpoint("10.0.0.5"),
            StaticConfigStore("ICU"),
            dispatcher,
            client_factory=factory,  # type: ignore[arg-type]
        )

        supervisor.start()
        await eventually(lambda: supervisor.state is ConnectionState.DISCONNECTED)
        loop = asyncio.get_running_loop()
        started = loop.time()
        await supervisor.shutdown()

        assert loop.time() - started < 1.0
        assert not supervisor.running

    async def test_shutdown_during_connect(
        self, dispatcher: MessageDispatcher
    ) -> None:
        client = FakeWsClient()
        connecting = asyncio.Event()

        async def hang(*args, **kwargs) -> None:  # type: ignore[no-untyped-def]
            connecting.set()
            await asyncio.Event().wait()

        client.connect = AsyncMock(side_effect=hang)
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        task = supervisor.start()
        await asyncio.wait_for(connecting.wait(), timeout=1.0)
        await asyncio.wait_for(supervisor.shutdown(), timeout=0.5)

        assert task.done()
        assert supervisor.state is ConnectionState.IDLE
        assert supervisor.sessions_opened == 0

    async def test_shutdown_before_start(self, dispatcher: MessageDispatcher) -> None:
        supervisor = make_supervisor(dispatcher, ClientSequence())
        await supervisor.shutdown()
        assert supervisor.state is ConnectionState.IDLE

    async def test_shutdown_is_idempotent(self, dispatcher: MessageDispatcher) -> None:
        client = FakeWsClient(hold_open=True)
        supervisor = make_supervisor(dispatcher, ClientSequence(client))

        supervisor.start()
        await eventually(lambda: supervisor.is_connected)
        await supervisor.shutdown()
        await supervisor.shutdown()

        assert set(client.close_calls) == {(1001, "Agent shutdown")}


class TestStateListeners:
    """State listener registration."""

    async def test_listener_error_does_not_break_loop(
        self, dispatcher: MessageDispatcher
    ) -> None:
        supervisor = make_supervisor(dispatcher, ClientSequence())
        supervisor.add_state_listener(MagicMock(side_effect=RuntimeError("bad")))
        seen: list[ConnectionState] = []
        supervisor.add_state_listener(seen.append)

        supervisor.start()
        await eventually(lambda: supervisor.is_connected)

        assert seen == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
        await supervisor.shutdown()

    async def test_remove_listener(self, dispatcher: MessageDispatcher) -> None:
        supervisor = make_supervisor(dispatcher, ClientSequence())
        seen: list[ConnectionState] = []
        remove = supervisor.add_state_listener(seen.append)
        remove()
        remove()

        supervisor.start()
        await eventually(lambda: supervisor.is_connected)

        assert seen == []
        await supervisor.shutdown()

