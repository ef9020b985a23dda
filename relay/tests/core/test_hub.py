"""
Unit tests for relay.core.hub module.

Tests subscriber registration, fan-out, stalled/closed subscriber isolation
and keepalive lifecycle.
"""

import asyncio
from unittest.mock import patch

import pytest

from relay.core.events import Final, Partial
from relay.core.hub import BroadcastHub, Subscriber
from relay.core.sse import format_comment, format_event


def drain(subscriber: Subscriber) -> list[str]:
    """Pop every queued frame without awaiting."""
    frames = []
    while not subscriber._queue.empty():
        frames.append(subscriber._queue.get_nowait())
    return frames


def data_frames(subscriber: Subscriber) -> list[str]:
    return [f for f in drain(subscriber) if f and f.startswith("data:")]


class TestSubscriber:
    """Tests for Subscriber class."""

    @pytest.mark.asyncio
    async def test_offer_and_frames(self):
        subscriber = Subscriber()
        assert subscriber.offer("a")
        assert subscriber.offer("b")
        subscriber_iter = subscriber.frames()
        assert await subscriber_iter.__anext__() == "a"
        assert await subscriber_iter.__anext__() == "b"

    @pytest.mark.asyncio
    async def test_offer_full_queue_returns_false(self):
        subscriber = Subscriber(queue_size=1)
        assert subscriber.offer("a") is True
        assert subscriber.offer("b") is False

    @pytest.mark.asyncio
    async def test_close_ends_frames(self):
        """Closing drops queued frames and ends iteration."""
        subscriber = Subscriber()
        subscriber.offer("queued")
        subscriber.close()
        frames = [frame async for frame in subscriber.frames()]
        assert frames == []

    @pytest.mark.asyncio
    async def test_close_when_queue_full(self):
        """The end marker fits even when the queue is full."""
        subscriber = Subscriber(queue_size=2)
        subscriber.offer("a")
        subscriber.offer("b")
        subscriber.close()
        assert [frame async for frame in subscriber.frames()] == []

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Only the first close does work; keepalive is cancelled once."""
        subscriber = Subscriber()
        subscriber.start_keepalive(10.0)
        keepalive = subscriber._keepalive

        assert subscriber.close() is True
        assert subscriber.close() is False
        await asyncio.gather(keepalive, return_exceptions=True)
        assert keepalive.cancelled()

    @pytest.mark.asyncio
    async def test_offer_after_close_rejected(self):
        subscriber = Subscriber()
        subscriber.close()
        assert subscriber.offer("late") is False

    @pytest.mark.asyncio
    async def test_keepalive_emits_comments(self):
        subscriber = Subscriber()
        subscriber.start_keepalive(0.01)
        await asyncio.sleep(0.05)
        frames = drain(subscriber)
        subscriber.close()

        assert frames
        assert all(f == format_comment("keep-alive") for f in frames)

    @pytest.mark.asyncio
    async def test_keepalive_skips_when_full(self):
        """A full queue does not crash the keepalive task."""
        subscriber = Subscriber(queue_size=1)
        subscriber.offer("x")
        subscriber.start_keepalive(0.01)
        await asyncio.sleep(0.05)
        assert subscriber.keepalive_active
        subscriber.close()


class TestBroadcastHubRegistration:
    """Tests for register/unregister."""

    @pytest.mark.asyncio
    async def test_register_adds_subscriber(self):
        hub = BroadcastHub()
        subscriber = hub.register()
        assert subscriber in hub
        assert hub.subscriber_count == 1
        hub.close()

    @pytest.mark.asyncio
    async def test_register_sends_connected_marker(self):
        """First frame on a new channel is the connected comment."""
        hub = BroadcastHub()
        subscriber = hub.register()
        assert drain(subscriber)[0] == ": connected\n\n"
        hub.close()

    @pytest.mark.asyncio
    async def test_register_sends_retry_hint(self):
        hub = BroadcastHub(retry_ms=1500)
        subscriber = hub.register()
        assert drain(subscriber) == [": connected\n\n", "retry: 1500\n\n"]
        hub.close()

    @pytest.mark.asyncio
    async def test_register_starts_keepalive(self):
        hub = BroadcastHub()
        subscriber = hub.register()
        assert subscriber.keepalive_active
        assert hub.active_keepalives == 1
        hub.close()

    @pytest.mark.asyncio
    async def test_unique_ids(self):
        hub = BroadcastHub()
        ids = {hub.register().id for _ in range(20)}
        assert len(ids) == 20
        hub.close()

    @pytest.mark.asyncio
    async def test_unregister_idempotent(self):
        """Second unregister is a no-op, not an error."""
        hub = BroadcastHub()
        subscriber = hub.register()
        assert hub.unregister(subscriber) is True
        assert hub.unregister(subscriber) is False
        assert hub.unregister(subscriber.id) is False
        assert hub.unregister("never-registered") is False
        assert hub.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unregister_by_id(self):
        hub = BroadcastHub()
        subscriber = hub.register()
        assert hub.unregister(subscriber.id) is True
        assert subscriber.closed

    @pytest.mark.asyncio
    async def test_unregister_cancels_keepalive(self):
        hub = BroadcastHub(keepalive_interval=0.01)
        subscriber = hub.register()
        keepalive = subscriber._keepalive
        hub.unregister(subscriber)
        await asyncio.gather(keepalive, return_exceptions=True)
        assert not subscriber.keepalive_active

    @pytest.mark.asyncio
    async def test_no_keepalives_left_after_all_disconnect(self):
        """After N connect and all disconnect, zero keepalive tasks remain."""
        hub = BroadcastHub(keepalive_interval=0.01)
        subscribers = [hub.register() for _ in range(10)]
        await asyncio.sleep(0.03)

        keepalives = [s._keepalive for s in subscribers]
        for subscriber in subscribers:
            hub.unregister(subscriber)
        await asyncio.gather(*keepalives, return_exceptions=True)

        assert hub.active_keepalives == 0
        assert not any(s.keepalive_active for s in subscribers)
        keepalive_tasks = [t for t in asyncio.all_tasks() if t.get_name().startswith("keepalive-")]
        assert keepalive_tasks == []

    @pytest.mark.asyncio
    async def test_close_disconnects_everyone(self):
        hub = BroadcastHub()
        subscribers = [hub.register() for _ in range(3)]
        hub.close()
        assert hub.subscriber_count == 0
        assert all(s.closed for s in subscribers)


class TestBroadcastHubBroadcast:
    """Tests for broadcast fan-out."""

    @pytest.mark.asyncio
    async def test_broadcast_no_subscribers(self):
        """Broadcast with nobody connected is a no-op."""
        hub = BroadcastHub()
        assert hub.broadcast(Partial("x")) == 0

    @pytest.mark.asyncio
    async def test_broadcast_identical_frames(self):
        """All N subscribers receive byte-identical payloads."""
        hub = BroadcastHub()
        subscribers = [hub.register() for _ in range(5)]
        for subscriber in subscribers:
            drain(subscriber)

        assert hub.broadcast(Final("hello world")) == 5

        received = [data_frames(s) for s in subscribers]
        expected = [format_event(Final("hello world"))]
        assert all(frames == expected for frames in received)
        assert len({frames[0].encode() for frames in received}) == 1
        hub.close()

    @pytest.mark.asyncio
    async def test_broadcast_serializes_once(self):
        hub = BroadcastHub()
        for _ in range(4):
            hub.register()
        with patch("relay.core.hub.format_event", wraps=format_event) as fmt:
            hub.broadcast(Partial("x"))
        fmt.assert_called_once()
        hub.close()

    @pytest.mark.asyncio
    async def test_broadcast_preserves_order(self):
        hub = BroadcastHub()
        subscribers = [hub.register() for _ in range(2)]
        events = [Partial("h"), Partial("he"), Final("hey")]
        for event in events:
            hub.broadcast(event)

        for subscriber in subscribers:
            assert data_frames(subscriber) == [format_event(e) for e in events]
        hub.close()

    @pytest.mark.asyncio
    async def test_unregistered_subscriber_receives_nothing(self):
        """A and B registered, A unregistered: only B gets the event."""
        hub = BroadcastHub()
        a = hub.register()
        b = hub.register()
        hub.unregister(a)

        assert hub.broadcast(Partial("x")) == 1
        assert data_frames(a) == []
        assert data_frames(b) == [format_event(Partial("x"))]
        hub.close()

    @pytest.mark.asyncio
    async def test_stalled_subscriber_dropped(self):
        """A subscriber whose queue is full is dropped; others still receive."""
        hub = BroadcastHub(queue_size=3)
        slow = hub.register()
        fast = hub.register()

        for i in range(5):
            hub.broadcast(Partial(str(i)))
            drain(fast)

        assert slow not in hub
        assert slow.closed
        assert fast in hub
        hub.close()

    @pytest.mark.asyncio
    async def test_failing_subscriber_isolated(self):
        """An exception delivering to one subscriber does not reach the caller."""
        hub = BroadcastHub()
        broken = hub.register()
        healthy = hub.register()
        drain(healthy)

        with patch.object(broken, "offer", side_effect=RuntimeError("socket gone")):
            delivered = hub.broadcast(Final("ok"))

        assert delivered == 1
        assert broken not in hub
        assert data_frames(healthy) == [format_event(Final("ok"))]
        hub.close()

    @pytest.mark.asyncio
    async def test_closed_subscriber_removed(self):
        """A subscriber closed from its transport side is pruned on broadcast."""
        hub = BroadcastHub()
        gone = hub.register()
        gone.close()

        assert hub.broadcast(Partial("x")) == 0
        assert gone not in hub

    @pytest.mark.asyncio
    async def test_unregister_during_broadcast(self):
        """Removing a later subscriber mid-iteration never raises, and it gets nothing more."""
        hub = BroadcastHub()
        first = hub.register()
        second = hub.register()
        drain(second)

        original_offer = first.offer

        def offer_and_remove(frame):
            hub.unregister(second)
            return original_offer(frame)

        with patch.object(first, "offer", side_effect=offer_and_remove):
            hub.broadcast(Partial("x"))

        assert second not in hub
        assert data_frames(second) == []

        hub.broadcast(Partial("y"))
        assert data_frames(second) == []
        hub.close()

    @pytest.mark.asyncio
    async def test_register_during_broadcast_uses_snapshot(self):
        """A subscriber registered mid-broadcast does not get that event."""
        hub = BroadcastHub()
        first = hub.register()
        late: list[Subscriber] = []
        original_offer = first.offer

        def offer_and_register(frame):
            late.append(hub.register())
            return original_offer(frame)

        with patch.object(first, "offer", side_effect=offer_and_register):
            assert hub.broadcast(Partial("x")) == 1

        assert data_frames(late[0]) == []
        hub.close()

    @pytest.mark.asyncio
    async def test_frames_stream_end_to_end(self):
        """A reader sees connected marker, then events, then end of stream."""
        hub = BroadcastHub()
        subscriber = hub.register()

        async def read():
            return [frame async for frame in subscriber.frames()]

        reader = asyncio.create_task(read())
        await asyncio.sleep(0.01)
        hub.broadcast(Partial("a"))
        await asyncio.sleep(0.01)
        hub.unregister(subscriber)

        frames = await asyncio.wait_for(reader, timeout=1.0)
        assert frames == [": connected\n\n", format_event(Partial("a"))]
