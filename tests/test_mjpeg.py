"""Tests for multipart framing and stream sessions."""

import asyncio

import pytest

from camrelay.observability import RelayStats
from camrelay.relay.broadcast import FrameBroadcaster
from camrelay.relay.mjpeg import (
    FRAME_CONTENT_TYPE,
    MultipartEncoder,
    StreamSession,
    encode_part,
    multipart_content_type,
)
from camrelay.relay.settings import StarvationPolicy


class TestEncodePart:
    """Wire format of a single part."""

    def test_exact_bytes(self):
        payload = b"\xff\xd8abc\xff\xd9"
        assert encode_part(payload) == (
            b"--frame\r\n"
            b"Content-Type: image/jpeg\r\n"
            b"Content-Length: 7\r\n"
            b"\r\n" + payload + b"\r\n"
        )

    def test_custom_boundary(self):
        assert encode_part(b"x", "cam").startswith(b"--cam\r\n")

    def test_length_counts_bytes_not_characters(self):
        payload = bytes(range(256))
        part = encode_part(payload)
        assert b"Content-Length: 256\r\n\r\n" in part
        assert part.endswith(payload + b"\r\n")

    def test_content_type_header(self):
        assert FRAME_CONTENT_TYPE == "image/jpeg"
        assert multipart_content_type() == "multipart/x-mixed-replace; boundary=frame"
        assert multipart_content_type("b1") == "multipart/x-mixed-replace; boundary=b1"


class TestMultipartEncoder:
    """Pulls one frame per call from a slot."""

    @pytest.mark.asyncio
    async def test_next_part_encodes_frame(self):
        broadcaster = FrameBroadcaster()
        slot = broadcaster.subscribe()
        encoder = MultipartEncoder(slot, poll_timeout=0.05)

        broadcaster.publish(b"jpeg")
        assert await encoder.next_part() == encode_part(b"jpeg")
        assert await encoder.next_part() is None
        assert not encoder.closed


async def _collect(session: StreamSession, limit: int = 50) -> list[bytes]:
    parts = []
    async for part in session.iter_parts():
        parts.append(part)
        if len(parts) >= limit:
            break
    return parts


class TestStreamSession:
    """Lifecycle of one ``/stream`` body."""

    @pytest.mark.asyncio
    async def test_close_policy_ends_on_starvation(self):
        """Verifies the CLOSE policy ends the body after the first empty poll.

        Arrangement:
        1. Broadcaster holding one published frame (seeds new viewers).
        2. Session with CLOSE policy and a 50 ms poll.

        Action:
        Iterates the session to completion.

        Assertion Strategy:
        Exactly one part with the exact framing, end reason "starved",
        and open/close counted once each.
        """
        stats = RelayStats()
        broadcaster = FrameBroadcaster(stats)
        broadcaster.publish(b"only-frame")
        session = StreamSession(
            broadcaster,
            poll_timeout=0.05,
            starvation_policy=StarvationPolicy.CLOSE,
            stats=stats,
        )

        parts = await asyncio.wait_for(_collect(session), 2.0)

        assert parts == [encode_part(b"only-frame")]
        assert session.end_reason == "starved"
        assert session.parts_sent == 1
        summary = stats.get_summary()
        assert summary.sessions_opened == 1
        assert summary.sessions_closed == 1
        assert summary.starved_polls == 1
        assert summary.bytes_sent == len(parts[0])
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_keep_waiting_survives_starvation(self):
        """Verifies KEEP_WAITING polls again until the relay closes.

        Arrangement:
        1. Empty broadcaster, KEEP_WAITING session, 20 ms poll.
        2. A frame published after several empty polls, then close.

        Assertion Strategy:
        The late frame still arrives, the body ends with "relay_closed",
        and the empty polls were counted.
        """
        stats = RelayStats()
        broadcaster = FrameBroadcaster(stats)
        session = StreamSession(broadcaster, poll_timeout=0.02, stats=stats)

        async def feed() -> None:
            await asyncio.sleep(0.1)
            broadcaster.publish(b"late")
            await asyncio.sleep(0.1)
            broadcaster.close()

        feeder = asyncio.create_task(feed())
        parts = await asyncio.wait_for(_collect(session), 2.0)
        await feeder

        assert parts == [encode_part(b"late")]
        assert session.end_reason == "relay_closed"
        assert stats.get_summary().starved_polls >= 2

    @pytest.mark.asyncio
    async def test_client_disconnect_unsubscribes(self):
        broadcaster = FrameBroadcaster()
        broadcaster.publish(b"a")
        session = StreamSession(broadcaster, poll_timeout=0.05, client="10.0.0.5")

        parts = session.iter_parts()
        first = await parts.__anext__()
        assert first == encode_part(b"a")
        assert broadcaster.subscriber_count == 1

        await parts.aclose()

        assert broadcaster.subscriber_count == 0
        assert session.end_reason == "disconnected"

    @pytest.mark.asyncio
    async def test_session_on_closed_broadcaster_ends_immediately(self):
        broadcaster = FrameBroadcaster()
        broadcaster.close()
        session = StreamSession(broadcaster, poll_timeout=1.0)

        parts = await asyncio.wait_for(_collect(session), 0.5)

        assert parts == []
        assert session.end_reason == "relay_closed"

    @pytest.mark.asyncio
    async def test_sessions_have_distinct_ids(self):
        broadcaster = FrameBroadcaster()
        ids = {StreamSession(broadcaster).session_id for _ in range(20)}
        assert len(ids) == 20
