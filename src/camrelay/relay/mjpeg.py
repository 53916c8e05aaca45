"""Multipart/MJPEG framing and per-connection stream sessions.

Each frame becomes one part of a ``multipart/x-mixed-replace`` body:

    --frame\\r\\n
    Content-Type: image/jpeg\\r\\n
    Content-Length: <N>\\r\\n
    \\r\\n
    <N payload bytes>\\r\\n

Browsers replace the displayed image with every part, which turns a plain
``<img src="/stream">`` into live video.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator

from camrelay.observability import RelayStats, get_logger
from camrelay.relay.broadcast import FrameBroadcaster, FrameSlot
from camrelay.relay.settings import (
    DEFAULT_BOUNDARY,
    DEFAULT_POLL_TIMEOUT_S,
    StarvationPolicy,
)

logger = get_logger(__name__)

FRAME_CONTENT_TYPE = "image/jpeg"


def multipart_content_type(boundary: str = DEFAULT_BOUNDARY) -> str:
    """Content-Type header value for a stream using ``boundary``."""
    return f"multipart/x-mixed-replace; boundary={boundary}"


def encode_part(frame: bytes, boundary: str = DEFAULT_BOUNDARY) -> bytes:
    """Wrap one JPEG frame in multipart framing.

    Args:
        frame: JPEG payload.
        boundary: Boundary token without the leading dashes.

    Returns:
        Header, payload and trailing CRLF as one bytes object.

    Example:
        >>> encode_part(b"\\xff\\xd8\\xff\\xd9")
        b'--frame\\r\\nContent-Type: image/jpeg\\r\\nContent-Length: 4\\r\\n\\r\\n\\xff\\xd8\\xff\\xd9\\r\\n'
    """
    header = (
        f"--{boundary}\r\n"
        f"Content-Type: {FRAME_CONTENT_TYPE}\r\n"
        f"Content-Length: {len(frame)}\r\n"
        "\r\n"
    ).encode("ascii")
    return header + frame + b"\r\n"


class MultipartEncoder:
    """Lazy encoder pulling frames from one viewer slot.

    Each call to ``next_part`` waits up to ``poll_timeout`` for a frame and
    returns its encoded part, or None when the wait starved or the slot was
    closed.
    """

    def __init__(
        self,
        slot: FrameSlot,
        boundary: str = DEFAULT_BOUNDARY,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT_S,
    ) -> None:
        self._slot = slot
        self._boundary = boundary
        self._poll_timeout = poll_timeout

    @property
    def closed(self) -> bool:
        return self._slot.closed

    async def next_part(self) -> bytes | None:
        frame = await self._slot.get(self._poll_timeout)
        if frame is None:
            return None
        return encode_part(frame, self._boundary)


class StreamSession:
    """State of one open ``/stream`` response.

    Subscribes to the broadcaster when iteration starts and unsubscribes
    when it ends, whatever the reason: relay shutdown, starvation under
    ``StarvationPolicy.CLOSE``, client disconnect (the response task is
    cancelled or the generator is closed), or a transport error.

    Starvation policy: with ``KEEP_WAITING`` a poll that times out is
    counted and the session polls again, so a viewer whose camera pauses
    keeps its connection. With ``CLOSE`` the body ends on the first starved
    poll and the browser decides whether to reconnect.
    """

    def __init__(
        self,
        broadcaster: FrameBroadcaster,
        *,
        boundary: str = DEFAULT_BOUNDARY,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT_S,
        starvation_policy: StarvationPolicy = StarvationPolicy.KEEP_WAITING,
        stats: RelayStats | None = None,
        client: str | None = None,
    ) -> None:
        self.session_id = uuid.uuid4().hex[:12]
        self.client = client
        self._broadcaster = broadcaster
        self._boundary = boundary
        self._poll_timeout = poll_timeout
        self._policy = starvation_policy
        self._stats = stats
        self.parts_sent = 0
        self.end_reason: str | None = None

    async def iter_parts(self) -> AsyncIterator[bytes]:
        """Yield encoded parts until the session ends."""
        # The generator may be finalized from another task, so session_id
        # is passed explicitly rather than through LogContext.
        if self._stats is not None:
            self._stats.record_session_opened()
        logger.info(
            "Stream session opened", session_id=self.session_id, client=self.client
        )
        self.end_reason = "disconnected"
        try:
            with self._broadcaster.subscription() as slot:
                encoder = MultipartEncoder(slot, self._boundary, self._poll_timeout)
                while True:
                    part = await encoder.next_part()
                    if part is not None:
                        self.parts_sent += 1
                        if self._stats is not None:
                            self._stats.record_part_sent(len(part))
                        yield part
                        continue

                    if encoder.closed:
                        self.end_reason = "relay_closed"
                        return

                    if self._stats is not None:
                        self._stats.record_starved_poll()
                    if self._policy is StarvationPolicy.CLOSE:
                        self.end_reason = "starved"
                        return
        finally:
            if self._stats is not None:
                self._stats.record_session_closed()
            logger.info(
                "Stream session closed",
                session_id=self.session_id,
                reason=self.end_reason,
                parts_sent=self.parts_sent,
            )
