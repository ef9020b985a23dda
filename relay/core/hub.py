"""
Broadcast Hub

Fans transcript events out to every connected viewer.

Each viewer is a Subscriber: a bounded frame queue drained by exactly one
writer (the viewer's SSE response) plus a keepalive task that puts comment
frames on the same queue. Broadcast never awaits a viewer: it offers the
frame with put_nowait, and a viewer whose queue is full or closed is dropped.

Usage:
    hub = BroadcastHub(keepalive_interval=20.0)

    subscriber = hub.register()
    try:
        async for frame in subscriber.frames():
            await send(frame)
    finally:
        hub.unregister(subscriber)

    hub.broadcast(Partial("hello"))
"""

import asyncio
import logging
import threading
import uuid
from collections.abc import AsyncIterator

from .events import TranscriptEvent
from .sse import CONNECTED_COMMENT, KEEPALIVE_COMMENT, format_comment, format_event, format_retry

logger = logging.getLogger(__name__)

DEFAULT_KEEPALIVE_INTERVAL = 20.0
DEFAULT_QUEUE_SIZE = 256

# End-of-stream marker placed on a closed subscriber's queue
_CLOSED = None


class Subscriber:
    """One connected viewer's push channel."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.id = uuid.uuid4().hex[:12]
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._keepalive: asyncio.Task | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Frames queued but not yet written."""
        return self._queue.qsize()

    @property
    def keepalive_active(self) -> bool:
        return self._keepalive is not None and not self._keepalive.done()

    def offer(self, frame: str) -> bool:
        """
        Queue a frame without waiting.

        Returns:
            False if the subscriber is closed or its queue is full
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    def start_keepalive(self, interval: float) -> None:
        if self._keepalive is None and not self._closed:
            self._keepalive = asyncio.get_running_loop().create_task(
                self._keepalive_loop(interval), name=f"keepalive-{self.id}"
            )

    async def _keepalive_loop(self, interval: float) -> None:
        frame = format_comment(KEEPALIVE_COMMENT)
        while not self._closed:
            await asyncio.sleep(interval)
            if not self.offer(frame):
                logger.debug(f"Keepalive skipped for {self.id}: queue full")

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the subscriber is closed."""
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                return
            yield frame

    def close(self) -> bool:
        """
        Stop delivery: cancel keepalive, drop queued frames, end frames().

        Returns:
            True on the first call, False if already closed
        """
        if self._closed:
            return False
        self._closed = True

        if self._keepalive is not None:
            self._keepalive.cancel()

        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        return True

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Subscriber({self.id}, {state}, {self.pending} pending)"


class BroadcastHub:
    """
    Owns the subscriber registry and performs fan-out.

    The registry is private: callers only register, unregister and
    broadcast. Broadcast iterates a snapshot of the registry taken under a
    lock, so registration changes during fan-out never disturb it.
    """

    def __init__(
        self,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        retry_ms: int | None = None,
    ):
        """
        Initialize broadcast hub.

        Args:
            keepalive_interval: Seconds between keepalive comments per subscriber
            queue_size: Frames buffered per subscriber before it is dropped as stalled
            retry_ms: Reconnect delay hint sent to each new subscriber (None to omit)
        """
        self.keepalive_interval = keepalive_interval
        self.queue_size = queue_size
        self.retry_ms = retry_ms

        self._subscribers: dict[str, Subscriber] = {}
        self._lock = threading.Lock()

    def register(self) -> Subscriber:
        """
        Add a new subscriber and start its keepalive.

        Must be called from the running event loop.
        """
        subscriber = Subscriber(queue_size=self.queue_size)
        subscriber.offer(format_comment(CONNECTED_COMMENT))
        if self.retry_ms is not None:
            subscriber.offer(format_retry(self.retry_ms))

        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            count = len(self._subscribers)

        subscriber.start_keepalive(self.keepalive_interval)
        logger.info(f"Subscriber {subscriber.id} connected ({count} total)")
        return subscriber

    def unregister(self, subscriber: Subscriber | str) -> bool:
        """
        Remove a subscriber and cancel its keepalive. Idempotent.

        Returns:
            True if the subscriber was registered
        """
        subscriber_id = subscriber if isinstance(subscriber, str) else subscriber.id

        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None)
            count = len(self._subscribers)

        if removed is None:
            # Already gone; still make sure a handle passed in directly is closed
            if isinstance(subscriber, Subscriber):
                subscriber.close()
            return False

        removed.close()
        logger.info(f"Subscriber {subscriber_id} disconnected ({count} remaining)")
        return True

    def broadcast(self, event: TranscriptEvent) -> int:
        """
        Deliver one event to every registered subscriber.

        The event is serialized once; every subscriber gets the same frame.
        Subscribers that cannot take the frame are unregistered. Never raises.

        Returns:
            Number of subscribers the frame was queued for
        """
        try:
            frame = format_event(event)
        except Exception as e:
            logger.error(f"Failed to serialize {event!r}: {e}")
            return 0

        delivered = 0
        for subscriber in self.snapshot():
            try:
                ok = subscriber.offer(frame)
            except Exception as e:
                logger.warning(f"Delivery to {subscriber.id} failed: {e}")
                self.unregister(subscriber)
                continue

            if ok:
                delivered += 1
                continue

            if not subscriber.closed:
                logger.warning(f"Subscriber {subscriber.id} stalled ({subscriber.pending} pending), dropping")
            self.unregister(subscriber)

        logger.debug(f"[{event.type.upper()}] delivered to {delivered} subscriber(s)")
        return delivered

    def snapshot(self) -> list[Subscriber]:
        """Registered subscribers at this instant."""
        with self._lock:
            return list(self._subscribers.values())

    def close(self) -> None:
        """Disconnect every subscriber (process shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        if subscribers:
            logger.info(f"Closed {len(subscribers)} subscriber(s)")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def active_keepalives(self) -> int:
        """Keepalive tasks still scheduled for registered subscribers."""
        return sum(1 for s in self.snapshot() if s.keepalive_active)

    def __contains__(self, subscriber: Subscriber | str) -> bool:
        subscriber_id = subscriber if isinstance(subscriber, str) else subscriber.id
        with self._lock:
            return subscriber_id in self._subscribers

    def __len__(self) -> int:
        return self.subscriber_count

    def __repr__(self) -> str:
        return f"BroadcastHub({self.subscriber_count} subscribers)"
