"""Reconnection supervisor for the control endpoint connection.

This module owns the agent's single live session. It handles:
- Connection attempts with fixed quiescence intervals
- Registration on every successful connect
- Sequential hand-off of inbound frames to the dispatcher
- Authoritative connection state and its listeners
- Prompt, graceful shutdown

Other components never open, replace or close the session; they observe
connectivity only through state listeners.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .errors import (
    AlertAgentClientError,
    AlertAgentConfigError,
    AlertAgentResolveError,
)
from .protocol import DEFAULT_DEVICE_CLASS, build_registration
from .status import ConnectionState
from .ws_client import NORMAL_CLOSURE, AgentWsClient, AgentWsMessageType

if TYPE_CHECKING:
    from .collaborators import ConfigStore
    from .config import Endpoint
    from .dispatcher import MessageDispatcher

_LOGGER = logging.getLogger(__name__)

# 1001 "going away": lets the endpoint tell a planned stop from a failure.
SHUTDOWN_CLOSE_CODE = 1001
SHUTDOWN_CLOSE_REASON = "Agent shutdown"

CLOSE_TIMEOUT = 2.0

StateListener = Callable[[ConnectionState], None]
SleepFunc = Callable[[float], Awaitable[Any]]


class ReconnectionSupervisor:
    """Keep one session to the control endpoint alive for the agent lifetime.

    Usage:
        supervisor = ReconnectionSupervisor(
            lambda: Endpoint("10.0.0.5"), config_store, dispatcher
        )
        supervisor.add_state_listener(reporter.on_state_changed)
        supervisor.start()
        ...
        await supervisor.shutdown()
    """

    def __init__(
        self,
        endpoint_provider: Callable[[], Endpoint],
        config_store: ConfigStore,
        dispatcher: MessageDispatcher,
        *,
        device_class: str = DEFAULT_DEVICE_CLASS,
        reconnect_interval: float = 5.0,
        attempt_failure_interval: float = 3.0,
        connect_timeout: float = 15.0,
        ping_interval: int | None = 20,
        sleep: SleepFunc = asyncio.sleep,
        client_factory: Callable[[], AgentWsClient] = AgentWsClient,
    ) -> None:
        """Initialize supervisor.

        Args:
            endpoint_provider: Returns the endpoint; called before every attempt
            config_store: Supplies the location label for registration
            dispatcher: Receives every inbound frame
            device_class: Device class sent at registration
            reconnect_interval: Wait after a dropped session or failed connect (s)
            attempt_failure_interval: Wait after an attempt could not start (s)
            connect_timeout: Opening handshake timeout (s)
            ping_interval: Keepalive ping interval (s), None disables pings
            sleep: Coroutine function used for the quiescence waits
            client_factory: Creates a fresh, unconnected client per attempt
        """
        self._endpoint_provider = endpoint_provider
        self._config_store = config_store
        self._dispatcher = dispatcher
        self._device_class = device_class
        self._reconnect_interval = reconnect_interval
        self._attempt_failure_interval = attempt_failure_interval
        self._connect_timeout = connect_timeout
        self._ping_interval = ping_interval
        self._sleep = sleep
        self._client_factory = client_factory

        # Connection state
        self._state = ConnectionState.IDLE
        self._session: AgentWsClient | None = None
        self._task: asyncio.Task[None] | None = None
        self._shutdown_requested = asyncio.Event()

        # Diagnostics
        self._attempts = 0
        self._sessions_opened = 0
        self._label = "agent"

        self._state_listeners: list[StateListener] = []

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if a session is live."""
        return self._state is ConnectionState.CONNECTED

    @property
    def attempts(self) -> int:
        """Number of connection attempts so far."""
        return self._attempts

    @property
    def sessions_opened(self) -> int:
        """Number of sessions successfully opened so far."""
        return self._sessions_opened

    @property
    def running(self) -> bool:
        """Check if the supervisor task is running."""
        return self._task is not None and not self._task.done()

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a connection state listener. Returns a cleanup function."""
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return remove

    def start(self) -> asyncio.Task[None]:
        """Start the supervisor loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="alert-agent-supervisor")
        return self._task

    async def run(self) -> None:
        """Run the reconnect loop until shutdown is requested."""
        _LOGGER.info("Supervisor started")
        try:
            while not self._shutdown_requested.is_set():
                delay = await self._run_once()
                if self._shutdown_requested.is_set():
                    break
                _LOGGER.info("[%s] Reconnecting in %.1fs", self._label, delay)
                await self._interruptible(self._sleep(delay))
        finally:
            session, self._session = self._session, None
            if session is not None:
                await self._close_session(
                    session, SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON
                )
            self._set_state(ConnectionState.IDLE)
            _LOGGER.info("Supervisor stopped")

    async def shutdown(self) -> None:
        """Stop the loop and close the live session gracefully.

        Safe to call more than once and before :meth:`start`.
        """
        if not self._shutdown_requested.is_set():
            _LOGGER.info("[%s] Shutdown requested", self._label)
            self._shutdown_requested.set()
            if self._state is not ConnectionState.IDLE:
                self._set_state(ConnectionState.DISCONNECTING)

            session = self._session
            if session is not None:
                await self._close_session(
                    session, SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON
                )

        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Wait for the supervisor task to finish."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=CLOSE_TIMEOUT * 2)
        except TimeoutError:
            _LOGGER.warning("[%s] Supervisor did not stop in time, cancelling", self._label)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------------
    # Internal: Connection State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        """Update connection state and notify listeners."""
        if self._state is state:
            return
        _LOGGER.debug("[%s] State: %s → %s", self._label, self._state.value, state.value)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as err:
                _LOGGER.exception("[%s] State listener error: %s", self._label, err)

    async def _interruptible(self, aw: Awaitable[Any]) -> bool:
        """Await ``aw`` unless shutdown is requested first.

        Returns:
            True if ``aw`` completed, False if it was cancelled by shutdown
        """
        task = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(self._shutdown_requested.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stopper.cancel()

        if task.done():
            task.result()
            return True

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return False

    async def _run_once(self) -> float:
        """Make one connection attempt and serve the session if it opens.

        Returns:
            Seconds to wait before the next attempt
        """
        self._attempts += 1
        self._set_state(ConnectionState.CONNECTING)

        try:
            endpoint = self._endpoint_provider()
            self._label = self._config_store.get_location_label()
            client = self._client_factory()
        except Exception as err:
            _LOGGER.error("[%s] Connection attempt could not start: %s", self._label, err)
            self._set_state(ConnectionState.DISCONNECTED)
            return self._attempt_failure_interval

        _LOGGER.info(
            "[%s] Connecting to %s (attempt #%d)",
            self._label,
            endpoint.url,
            self._attempts,
        )

        try:
            connected = await self._interruptible(
                client.connect(
                    endpoint.host,
                    endpoint.port,
                    path=endpoint.path,
                    ping_interval=self._ping_interval,
                    timeout=self._connect_timeout,
                )
            )
        except (AlertAgentResolveError, AlertAgentConfigError) as err:
            _LOGGER.warning("[%s] Connection attempt failed: %s", self._label, err)
            self._set_state(ConnectionState.DISCONNECTED)
            return self._attempt_failure_interval
        except AlertAgentClientError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self._label, err)
            self._set_state(ConnectionState.DISCONNECTED)
            return self._reconnect_interval
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected connect error: %s", self._label, err)
            self._set_state(ConnectionState.DISCONNECTED)
            return self._attempt_failure_interval

        if not connected:
            return self._reconnect_interval

        if self._shutdown_requested.is_set():
            await self._close_session(client, SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON)
            return self._reconnect_interval

        await self._serve(client)
        return self._reconnect_interval

    # -------------------------------------------------------------------------
    # Internal: Session
    # -------------------------------------------------------------------------

    async def _serve(self, client: AgentWsClient) -> None:
        """Register and pump inbound frames until the session ends."""
        self._session = client
        self._sessions_opened += 1
        self._set_state(ConnectionState.CONNECTED)
        _LOGGER.info("[%s] WebSocket connected", self._label)

        message_count = 0
        try:
            await self._register(client)

            async for msg in client:
                if msg.type is AgentWsMessageType.TEXT:
                    message_count += 1
                    self._dispatcher.dispatch_text(str(msg.data))
                elif msg.type is AgentWsMessageType.BINARY:
                    message_count += 1
                    self._dispatcher.dispatch_binary(bytes(msg.data or b""))
                elif msg.type is AgentWsMessageType.CLOSED:
                    _LOGGER.info("[%s] WebSocket closed", self._label)
                    break
                elif msg.type is AgentWsMessageType.ERROR:
                    _LOGGER.error("[%s] WebSocket error", self._label)
                    break

        except AlertAgentClientError as err:
            _LOGGER.warning("[%s] Session failed: %s", self._label, err)
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected session error: %s", self._label, err)
        finally:
            if self._session is client:
                self._session = None
            _LOGGER.debug(
                "[%s] Session ended (%d messages)", self._label, message_count
            )
            if self._shutdown_requested.is_set():
                await self._close_session(
                    client, SHUTDOWN_CLOSE_CODE, SHUTDOWN_CLOSE_REASON
                )
            else:
                await self._close_session(client, NORMAL_CLOSURE, "Reconnecting")
                self._set_state(ConnectionState.DISCONNECTED)

    async def _register(self, client: AgentWsClient) -> None:
        """Send the registration frame on a just-opened session.

        Raises:
            AlertAgentClientError: The send failed; the session is broken
        """
        frame = build_registration(
            location_label=self._label,
            device_class=self._device_class,
        )
        await client.send_json(frame)
        _LOGGER.debug("[%s] Registration sent", self._label)

    async def _close_session(self, client: AgentWsClient, code: int, reason: str) -> None:
        """Close a session, never raising."""
        try:
            await asyncio.wait_for(client.close(code, reason), timeout=CLOSE_TIMEOUT)
        except TimeoutError:
            _LOGGER.warning("[%s] WebSocket close timed out", self._label)
        except Exception as err:
            _LOGGER.debug("[%s] WebSocket close error: %s", self._label, err)
