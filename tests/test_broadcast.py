"""Tests for per-viewer slots and the broadcaster."""

import asyncio
import threading
import time

import pytest

from camrelay.observability import RelayStats
from camrelay.relay.broadcast import FrameBroadcaster, FrameSlot
from camrelay.relay.holder import MediaState
from camrelay.relay.producer import FrameProducer
from camrelay.relay.settings import RelaySettings


class TestFrameSlot:
    """Capacity-1, drop-oldest buffer."""

    @pytest.mark.asyncio
    async def test_get_returns_offered_frame(self):
        slot = FrameSlot(asyncio.get_running_loop())
        assert slot.offer(b"a") is False
        assert slot.pending
        assert await slot.get(0.1) == b"a"
        assert not slot.pending

    @pytest.mark.asyncio
    async def test_offer_drops_unread_frame(self):
        """Verifies a second offer overwrites the unread first one.

        Arrangement:
        1. Fresh slot.
        2. Two offers without an intervening read.

        Assertion Strategy:
        The second offer reports the drop, the reader gets only the newest
        frame, and the next read times out empty.
        """
        slot = FrameSlot(asyncio.get_running_loop())
        slot.offer(b"old")
        assert slot.offer(b"new") is True

        assert await slot.get(0.1) == b"new"
        assert await slot.get(0.05) is None

    @pytest.mark.asyncio
    async def test_get_times_out(self):
        slot = FrameSlot(asyncio.get_running_loop())
        start = time.monotonic()
        assert await slot.get(0.05) is None
        assert time.monotonic() - start >= 0.04
        assert not slot.closed

    @pytest.mark.asyncio
    async def test_get_wakes_on_offer(self):
        slot = FrameSlot(asyncio.get_running_loop())
        waiter = asyncio.create_task(slot.get(2.0))
        await asyncio.sleep(0.01)
        slot.offer(b"x")
        assert await asyncio.wait_for(waiter, 0.5) == b"x"

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_reader(self):
        slot = FrameSlot(asyncio.get_running_loop())
        waiter = asyncio.create_task(slot.get(5.0))
        await asyncio.sleep(0.01)
        slot.close()
        assert await asyncio.wait_for(waiter, 0.5) is None
        assert slot.closed

    @pytest.mark.asyncio
    async def test_closed_slot_ignores_offers(self):
        slot = FrameSlot(asyncio.get_running_loop())
        slot.offer(b"pending")
        slot.close()
        assert slot.offer(b"late") is False
        assert await slot.get(0.05) is None


class TestFrameBroadcaster:
    """Fan-out from the producer to every viewer."""

    @pytest.mark.asyncio
    async def test_every_subscriber_receives_frame(self):
        broadcaster = FrameBroadcaster()
        first = broadcaster.subscribe()
        second = broadcaster.subscribe()

        assert broadcaster.publish(b"frame") == 2
        assert await first.get(0.1) == b"frame"
        assert await second.get(0.1) == b"frame"

    @pytest.mark.asyncio
    async def test_slow_viewer_does_not_affect_fast_viewer(self):
        """Verifies drops are per viewer.

        Arrangement:
        1. Two subscribers.
        2. Fast viewer reads after each publish, slow viewer never reads.

        Assertion Strategy:
        The fast viewer sees both frames in order; the slow viewer sees
        only the newest; stats count exactly one drop.
        """
        stats = RelayStats()
        broadcaster = FrameBroadcaster(stats)
        fast = broadcaster.subscribe()
        slow = broadcaster.subscribe()

        broadcaster.publish(b"1")
        assert await fast.get(0.1) == b"1"
        broadcaster.publish(b"2")
        assert await fast.get(0.1) == b"2"

        assert await slow.get(0.1) == b"2"
        summary = stats.get_summary()
        assert summary.frames_published == 2
        assert summary.frames_dropped == 1

    @pytest.mark.asyncio
    async def test_new_subscriber_seeded_with_last_frame(self):
        broadcaster = FrameBroadcaster()
        assert broadcaster.publish(b"last") == 0

        slot = broadcaster.subscribe()
        assert await slot.get(0.05) == b"last"

    @pytest.mark.asyncio
    async def test_subscription_context_unsubscribes(self):
        broadcaster = FrameBroadcaster()
        with broadcaster.subscription():
            assert broadcaster.subscriber_count == 1
        assert broadcaster.subscriber_count == 0
        assert broadcaster.publish(b"x") == 0

    @pytest.mark.asyncio
    async def test_close_ends_all_subscribers(self):
        broadcaster = FrameBroadcaster()
        slots = [broadcaster.subscribe() for _ in range(3)]
        waiters = [asyncio.create_task(s.get(5.0)) for s in slots]
        await asyncio.sleep(0.01)

        broadcaster.close()

        results = await asyncio.wait_for(asyncio.gather(*waiters), 0.5)
        assert results == [None, None, None]
        assert all(s.closed for s in slots)
        assert broadcaster.closed
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_close_from_another_thread(self):
        broadcaster = FrameBroadcaster()
        slot = broadcaster.subscribe()
        waiter = asyncio.create_task(slot.get(5.0))
        await asyncio.sleep(0.01)

        closer = threading.Thread(target=broadcaster.close)
        closer.start()

        assert await asyncio.wait_for(waiter, 1.0) is None
        closer.join()
        assert slot.closed

    @pytest.mark.asyncio
    async def test_subscribe_after_close_and_reopen(self):
        broadcaster = FrameBroadcaster()
        broadcaster.close()

        late = broadcaster.subscribe()
        assert late.closed
        assert broadcaster.publish(b"ignored") == 0

        broadcaster.reopen()
        fresh = broadcaster.subscribe()
        assert not fresh.closed
        broadcaster.publish(b"again")
        assert await fresh.get(0.1) == b"again"


class TestLatestFrameSampling:
    """Frames overwritten in the holder before a sample are never relayed."""

    @pytest.mark.asyncio
    async def test_only_second_of_two_frames_is_relayed(self):
        """Verifies only the newest frame reaches a viewer.

        Arrangement:
        1. Viewer subscribed to a broadcaster.
        2. Two frames stored in the media holder before any sample.

        Action:
        Runs one producer sampling step.

        Assertion Strategy:
        The viewer receives the second frame and nothing else.
        """
        media = MediaState()
        broadcaster = FrameBroadcaster()
        producer = FrameProducer(media, RelaySettings(), broadcaster)
        slot = broadcaster.subscribe()

        media.set_frame(b"first")
        media.set_frame(b"second")
        assert producer.publish_latest() is True

        assert await slot.get(0.1) == b"second"
        assert await slot.get(0.05) is None
