"""Relay statistics collection and reporting.

Tracks what the relay actually delivers:
- Frames published by the producer loop and the measured publish rate
- Frames dropped because a viewer had not consumed the previous one yet
- Parts and bytes written to viewers
- Stream sessions opened and closed, starved polls

Thread-safe: the producer task, connection tasks and the ``/status``
handler all touch the same instance.

Example:
    stats = RelayStats()
    stats.record_publish(subscribers=2, dropped=1)
    stats.record_part_sent(48213)

    summary = stats.get_summary()
    print(f"Delivering {summary.measured_fps:.1f} fps")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

# =============================================================================
# Constants
# =============================================================================

#: Number of publish timestamps kept for the measured rate. Covers about
#: four seconds at the maximum frame rate.
DEFAULT_STATS_WINDOW_SIZE: int = 120


# =============================================================================
# Helpers
# =============================================================================


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _percentile(sorted_values: list[float], percentile: float) -> float:
    """Nearest-rank percentile of an already sorted list.

    Args:
        sorted_values: Values in ascending order.
        percentile: Percentile in [0, 100].

    Returns:
        The value at the requested rank, 0.0 for an empty list.

    Example:
        >>> _percentile([10.0, 20.0, 30.0, 40.0], 50)
        20.0
    """
    if not sorted_values:
        return 0.0
    rank = max(1, int(round(percentile / 100 * len(sorted_values))))
    return sorted_values[min(rank, len(sorted_values)) - 1]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RelayStatsSummary:
    """Point-in-time view of relay statistics.

    Attributes:
        frames_published: Producer cycles that published a frame.
        frames_dropped: Per-viewer frames overwritten before being read.
        parts_sent: Multipart parts handed to viewers.
        bytes_sent: Bytes of multipart framing plus payload handed to viewers.
        sessions_opened: Stream sessions created.
        sessions_closed: Stream sessions finished (any reason).
        active_sessions: Opened minus closed.
        starved_polls: Encoder waits that timed out without a frame.
        measured_fps: Publish rate over the rolling window.
        p95_interval_ms: 95th percentile gap between publishes.
        last_publish_time: Time of the most recent publish.
        uptime_seconds: Time since creation or reset.
    """

    frames_published: int = 0
    frames_dropped: int = 0
    parts_sent: int = 0
    bytes_sent: int = 0
    sessions_opened: int = 0
    sessions_closed: int = 0
    active_sessions: int = 0
    starved_polls: int = 0
    measured_fps: float = 0.0
    p95_interval_ms: float = 0.0
    last_publish_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary for ``/status``."""
        return {
            "frames_published": self.frames_published,
            "frames_dropped": self.frames_dropped,
            "parts_sent": self.parts_sent,
            "bytes_sent": self.bytes_sent,
            "sessions_opened": self.sessions_opened,
            "sessions_closed": self.sessions_closed,
            "active_sessions": self.active_sessions,
            "starved_polls": self.starved_polls,
            "measured_fps": round(self.measured_fps, 2),
            "p95_interval_ms": round(self.p95_interval_ms, 2),
            "last_publish_time": (
                self.last_publish_time.isoformat() if self.last_publish_time else None
            ),
            "uptime_seconds": round(self.uptime_seconds, 3),
        }


class RelayStats:
    """Thread-safe counters for one relay instance."""

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Initialize empty statistics.

        Args:
            window_size: Publish timestamps retained for the measured rate.
        """
        self._window_size = window_size
        self._publish_times: deque[float] = deque(maxlen=window_size)
        self._lock = threading.Lock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._frames_published = 0
        self._frames_dropped = 0
        self._parts_sent = 0
        self._bytes_sent = 0
        self._sessions_opened = 0
        self._sessions_closed = 0
        self._starved_polls = 0
        self._last_publish_time: datetime | None = None
        self._start_time = time.monotonic()
        self._publish_times.clear()

    def record_publish(self, subscribers: int, dropped: int = 0) -> None:
        """Record one producer publish.

        Args:
            subscribers: Viewers the frame was offered to.
            dropped: How many of them still held an unread frame that the
                publish overwrote.
        """
        with self._lock:
            self._frames_published += 1
            self._frames_dropped += dropped
            self._publish_times.append(time.monotonic())
            self._last_publish_time = _utc_now()

    def record_part_sent(self, size: int) -> None:
        """Record one multipart part handed to a viewer."""
        with self._lock:
            self._parts_sent += 1
            self._bytes_sent += size

    def record_session_opened(self) -> None:
        with self._lock:
            self._sessions_opened += 1

    def record_session_closed(self) -> None:
        with self._lock:
            self._sessions_closed += 1

    def record_starved_poll(self) -> None:
        with self._lock:
            self._starved_polls += 1

    def get_summary(self) -> RelayStatsSummary:
        """Compute a summary snapshot.

        Counters are copied under the lock; the rate computation runs
        outside it.

        Returns:
            RelayStatsSummary reflecting the state at call time.

        Example:
            >>> stats = RelayStats()
            >>> stats.record_session_opened()
            >>> stats.get_summary().active_sessions
            1
        """
        with self._lock:
            published = self._frames_published
            dropped = self._frames_dropped
            parts = self._parts_sent
            sent = self._bytes_sent
            opened = self._sessions_opened
            closed = self._sessions_closed
            starved = self._starved_polls
            last_publish = self._last_publish_time
            start_time = self._start_time
            times = list(self._publish_times)

        intervals = [b - a for a, b in zip(times, times[1:], strict=False)]
        if intervals:
            mean_interval = sum(intervals) / len(intervals)
            measured_fps = 1.0 / mean_interval if mean_interval > 0 else 0.0
            p95_interval_ms = _percentile(sorted(intervals), 95) * 1000
        else:
            measured_fps = p95_interval_ms = 0.0

        return RelayStatsSummary(
            frames_published=published,
            frames_dropped=dropped,
            parts_sent=parts,
            bytes_sent=sent,
            sessions_opened=opened,
            sessions_closed=closed,
            active_sessions=opened - closed,
            starved_polls=starved,
            measured_fps=measured_fps,
            p95_interval_ms=p95_interval_ms,
            last_publish_time=last_publish,
            uptime_seconds=time.monotonic() - start_time,
        )

    def reset(self) -> None:
        """Zero every counter and restart the uptime clock."""
        with self._lock:
            self._reset_counters()
