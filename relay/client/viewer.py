"""
SSE Viewer Client

Connects to the relay's /events channel, feeds every message into a
ClientReconciler and reconnects under an explicit ReconnectPolicy.

Each (re)connection is a fresh subscriber on the server: the reconciler's
in-progress element is discarded and it restarts at IDLE.

Usage:
    viewer = SSEViewer("http://localhost:3000/events")
    viewer.reconciler.on_change = lambda: render(viewer.reconciler)
    await viewer.run()
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from relay.core.sse import SSEParser

from .reconciler import ClientReconciler

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class ReconnectPolicy:
    """Retry count and exponential backoff for the viewer channel."""

    max_retries: int | None = None  # None = retry forever
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def delay(self, attempt: int, server_hint: float | None = None) -> float:
        """
        Seconds to wait before retry number `attempt` (1-based).

        A server `retry:` hint replaces the initial delay.
        """
        base = server_hint if server_hint is not None else self.initial_delay
        return min(self.max_delay, base * self.multiplier ** max(0, attempt - 1))

    def should_retry(self, attempt: int) -> bool:
        return self.max_retries is None or attempt <= self.max_retries


class SSEViewer:
    """Passive viewer of the relay's transcript stream."""

    def __init__(
        self,
        url: str = "http://localhost:3000/events",
        reconciler: ClientReconciler | None = None,
        policy: ReconnectPolicy | None = None,
        idle_timeout: float = 60.0,
        on_status: Callable[[ConnectionStatus], None] | None = None,
    ):
        """
        Initialize viewer.

        Args:
            url: Relay SSE endpoint
            reconciler: Display state machine (a new one if None)
            policy: Reconnect policy (retry forever with backoff if None)
            idle_timeout: Seconds without any bytes (keepalives included) before reconnecting
            on_status: Callback on connection status changes
        """
        self.url = url
        self.reconciler = reconciler or ClientReconciler()
        self.policy = policy or ReconnectPolicy()
        self.idle_timeout = idle_timeout
        self.on_status = on_status

        self.status = ConnectionStatus.STOPPED
        self.running = False
        self._parser = SSEParser()

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        self.status = status
        logger.info(f"Viewer {status.value}: {self.url}")
        if self.on_status:
            try:
                self.on_status(status)
            except Exception as e:
                logger.error(f"on_status callback failed: {e}")

    async def run(self, client: httpx.AsyncClient | None = None) -> None:
        """
        Run the connect/read/reconnect loop until stop() or retries run out.

        Args:
            client: HTTP client to use (one is created if None)
        """
        self.running = True
        owns_client = client is None
        if client is None:
            timeout = httpx.Timeout(10.0, read=self.idle_timeout)
            client = httpx.AsyncClient(timeout=timeout)

        attempt = 0
        try:
            while self.running:
                self._set_status(ConnectionStatus.CONNECTING if attempt == 0 else ConnectionStatus.RECONNECTING)
                try:
                    received = await self._consume(client)
                    if received:
                        attempt = 0
                    if not self.running:
                        break
                    logger.warning("Relay closed the event stream")
                except httpx.HTTPStatusError as e:
                    logger.warning(f"Relay returned {e.response.status_code}")
                except httpx.HTTPError as e:
                    logger.warning(f"Connection failed: {e}")

                attempt += 1
                if not self.policy.should_retry(attempt):
                    logger.error(f"Giving up after {attempt - 1} retries")
                    self._set_status(ConnectionStatus.FAILED)
                    return

                hint = self._parser.retry / 1000 if self._parser.retry is not None else None
                delay = self.policy.delay(attempt, hint)
                logger.info(f"Reconnecting in {delay:.1f}s (attempt {attempt})")
                self._set_status(ConnectionStatus.RECONNECTING)
                await asyncio.sleep(delay)
        finally:
            if owns_client:
                await client.aclose()
            if self.status != ConnectionStatus.FAILED:
                self._set_status(ConnectionStatus.STOPPED)
            self.running = False

    async def _consume(self, client: httpx.AsyncClient) -> bool:
        """
        Read one connection until it ends.

        Returns:
            True if any bytes were received on this connection
        """
        self._parser.reset()
        self.reconciler.reset()
        received = False

        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        async with client.stream("GET", self.url, headers=headers) as response:
            response.raise_for_status()
            self._set_status(ConnectionStatus.CONNECTED)

            async for chunk in response.aiter_text():
                if not self.running:
                    break
                received = True
                for message in self._parser.feed(chunk):
                    if message.event != "message":
                        logger.debug(f"Ignoring '{message.event}' event")
                        continue
                    self.reconciler.handle_message(message.data)

        return received

    def stop(self) -> None:
        """Stop after the current read."""
        self.running = False
