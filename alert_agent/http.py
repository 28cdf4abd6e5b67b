"""HTTP client for a local alert display service.

The display service is the process that actually draws the full-screen
alert (a kiosk browser, a desktop notifier). The agent pushes alerts and
status lines to it; rendering is entirely the service's concern.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

import aiohttp

from .errors import (
    AlertAgentClientError,
    AlertAgentConnectionError,
    AlertAgentResponseError,
    AlertAgentTimeout,
)

if TYPE_CHECKING:
    from .protocol import AlertPayload

_LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5


class DisplayHttpClient:
    """HTTP client wrapper for the display service endpoints."""

    def __init__(self, session: aiohttp.ClientSession, base_url: str) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _post(self, path: str, payload: dict[str, Any] | None, what: str) -> None:
        try:
            async with self._session.post(
                self._url(path),
                json=payload,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                if resp.status >= 300:
                    raise AlertAgentResponseError(
                        resp.status, f"{what} failed with HTTP {resp.status}"
                    )
        except TimeoutError as err:
            raise AlertAgentTimeout(f"{what} request timed out") from err
        except aiohttp.ClientError as err:
            raise AlertAgentConnectionError(f"{what} request failed") from err

    async def show_alert(self, payload: AlertPayload) -> None:
        """POST an alert to ``/alerts``."""
        await self._post("/alerts", payload.to_wire(), "Show alert")

    async def acknowledge_alert(self) -> None:
        """POST to ``/alerts/ack`` to close the current alert."""
        await self._post("/alerts/ack", None, "Acknowledge alert")

    async def update_status(self, text: str) -> None:
        """POST the status line to ``/status``."""
        await self._post("/status", {"text": text}, "Status update")


class _BackgroundSender:
    """Run display requests as tasks so collaborator calls never block.

    Requests are sent one at a time in call order.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()
        self._lock = asyncio.Lock()

    def _schedule(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        async def _send() -> None:
            try:
                async with self._lock:
                    await coro
            except asyncio.CancelledError:
                coro.close()
                raise
            except AlertAgentClientError as err:
                _LOGGER.error("%s failed: %s", what, err)

        task = asyncio.get_running_loop().create_task(_send())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        """Number of requests still in flight."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight requests to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel in-flight requests."""
        for task in list(self._tasks):
            task.cancel()


class HttpAlertPresenter(_BackgroundSender):
    """Alert presenter backed by the display service."""

    def __init__(self, client: DisplayHttpClient) -> None:
        super().__init__()
        self._client = client

    def show(self, payload: AlertPayload) -> None:
        self._schedule(self._client.show_alert(payload), "Show alert")

    def acknowledge(self) -> None:
        self._schedule(self._client.acknowledge_alert(), "Acknowledge alert")


class HttpStatusSink(_BackgroundSender):
    """Status sink backed by the display service."""

    def __init__(self, client: DisplayHttpClient) -> None:
        super().__init__()
        self._client = client

    def update(self, text: str) -> None:
        self._schedule(self._client.update_status(text), "Status update")
