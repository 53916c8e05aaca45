"""Per-viewer relay slots and the broadcaster that fills them.

Every ``/stream`` connection subscribes its own ``FrameSlot``: a
capacity-1 buffer with drop-oldest overflow. The producer publishes each
sampled frame into every slot, so viewers never compete for frames and a
slow viewer only ever loses its own stale frames.

All slot operations except ``close()`` run on the event loop that serves
the connections. ``close()`` may be called from any thread; a waiting
viewer wakes immediately.

Example:
    broadcaster = FrameBroadcaster()

    with broadcaster.subscription() as slot:
        frame = await slot.get(timeout=0.1)
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from camrelay.observability import RelayStats, get_logger

logger = get_logger(__name__)


class FrameSlot:
    """Capacity-1, drop-oldest frame buffer for one viewer."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._frame: bytes | None = None
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        """True if a frame is waiting to be read."""
        return self._frame is not None

    def offer(self, frame: bytes) -> bool:
        """Insert a frame, discarding any unread one.

        Never blocks. Ignored once the slot is closed.

        Returns:
            True if an unread frame was overwritten.
        """
        if self._closed:
            return False
        dropped = self._frame is not None
        self._frame = frame
        self._ready.set()
        return dropped

    async def get(self, timeout: float) -> bytes | None:
        """Take the pending frame, waiting up to ``timeout`` seconds.

        Returns:
            The frame, or None if the wait timed out or the slot was
            closed. Check ``closed`` to tell the two apart.
        """
        if self._frame is None and not self._closed:
            try:
                await asyncio.wait_for(self._ready.wait(), timeout)
            except TimeoutError:
                return None

        frame, self._frame = self._frame, None
        self._ready.clear()
        if self._closed:
            return None
        return frame

    def close(self) -> None:
        """Close the slot and wake its reader. Safe from any thread."""
        self._closed = True
        self._frame = None
        try:
            self._loop.call_soon_threadsafe(self._ready.set)
        except RuntimeError:
            # Loop already closed; nobody is waiting on it any more.
            pass


class FrameBroadcaster:
    """Fan-out publisher from the producer loop to every viewer slot.

    New subscribers are seeded with the most recently published frame so a
    viewer shows an image without waiting for the next producer cycle.
    """

    def __init__(self, stats: RelayStats | None = None) -> None:
        self._stats = stats
        self._lock = threading.Lock()
        self._slots: set[FrameSlot] = set()
        self._closed = threading.Event()
        self._last_frame: bytes | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._slots)

    def subscribe(self) -> FrameSlot:
        """Create a slot for the calling viewer.

        Must be called from a coroutine running on the serving loop. A slot
        created after ``close()`` is returned already closed.
        """
        slot = FrameSlot(asyncio.get_running_loop())
        with self._lock:
            if self._closed.is_set():
                slot.close()
                return slot
            if self._last_frame is not None:
                slot.offer(self._last_frame)
            self._slots.add(slot)
        logger.debug("Viewer subscribed", subscribers=self.subscriber_count)
        return slot

    def unsubscribe(self, slot: FrameSlot) -> None:
        """Remove a slot. Unknown slots are ignored."""
        with self._lock:
            self._slots.discard(slot)
        logger.debug("Viewer unsubscribed", subscribers=self.subscriber_count)

    @contextmanager
    def subscription(self) -> Iterator[FrameSlot]:
        """Subscribe for the duration of a ``with`` block."""
        slot = self.subscribe()
        try:
            yield slot
        finally:
            self.unsubscribe(slot)

    def publish(self, frame: bytes) -> int:
        """Offer a frame to every subscriber.

        Returns:
            Number of subscribers the frame was offered to.
        """
        with self._lock:
            if self._closed.is_set():
                return 0
            self._last_frame = frame
            slots = list(self._slots)

        dropped = sum(1 for slot in slots if slot.offer(frame))

        if self._stats is not None:
            self._stats.record_publish(subscribers=len(slots), dropped=dropped)
        return len(slots)

    def close(self) -> None:
        """Close every slot; open streams end and new ones end immediately.

        Safe to call from any thread and more than once.
        """
        with self._lock:
            self._closed.set()
            slots = list(self._slots)
            self._slots.clear()
            self._last_frame = None

        for slot in slots:
            slot.close()

        if slots:
            logger.info("Broadcaster closed", closed_streams=len(slots))

    def reopen(self) -> None:
        """Accept subscribers again after ``close()`` (relay restart)."""
        self._closed.clear()
