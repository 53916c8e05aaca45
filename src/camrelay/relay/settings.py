"""Relay configuration: static startup options and live settings.

``RelayConfig`` is fixed when the relay is constructed (bind address,
boundary token, timeouts). ``RelaySettings`` holds the values that change
while streams are open (frame rate, zoom) and is shared between the control
endpoints, the host process and the producer loop.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

from camrelay.errors import SettingError

# =============================================================================
# Constants
# =============================================================================

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

MIN_FRAME_RATE_HZ = 5
MAX_FRAME_RATE_HZ = 30
DEFAULT_FRAME_RATE_HZ = 30

MIN_ZOOM_LEVEL = 0.0
MAX_ZOOM_LEVEL = 1.0

#: Multipart boundary shared by the Content-Type header and the body.
DEFAULT_BOUNDARY = "frame"

#: How long a stream session waits for the next frame per poll.
DEFAULT_POLL_TIMEOUT_S = 0.1

#: Encoded AAC as produced by the reference audio encoder.
DEFAULT_AUDIO_MEDIA_TYPE = "audio/aac"


class StarvationPolicy(Enum):
    """What a stream session does when a poll times out without a frame."""

    KEEP_WAITING = "keep_waiting"  # Poll again; only close/disconnect ends it
    CLOSE = "close"  # End the response on the first starved poll


@dataclass(frozen=True)
class RelayConfig:
    """Static relay options.

    Attributes:
        host: Bind address.
        port: TCP port. 0 binds an ephemeral port.
        frame_rate_hz: Initial producer rate, validated like ``/setFPS``.
        boundary: Multipart boundary token.
        poll_timeout_s: Per-poll wait for the next frame.
        starvation_policy: Behaviour when a poll times out.
        audio_media_type: Content-Type for ``/audio``.
        server_log_level: uvicorn log level.
        shutdown_timeout_s: Grace period uvicorn allows open connections.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    frame_rate_hz: int = DEFAULT_FRAME_RATE_HZ
    boundary: str = DEFAULT_BOUNDARY
    poll_timeout_s: float = DEFAULT_POLL_TIMEOUT_S
    starvation_policy: StarvationPolicy = StarvationPolicy.KEEP_WAITING
    audio_media_type: str = DEFAULT_AUDIO_MEDIA_TYPE
    server_log_level: str = "warning"
    shutdown_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        validate_frame_rate(self.frame_rate_hz)
        if not self.boundary or any(c in self.boundary for c in "\r\n"):
            raise SettingError("boundary", self.boundary, "Invalid multipart boundary")
        if self.poll_timeout_s <= 0:
            raise SettingError(
                "poll_timeout_s", self.poll_timeout_s, "Poll timeout must be positive"
            )


# =============================================================================
# Validation
# =============================================================================


def validate_frame_rate(value: int) -> int:
    """Check a frame rate against the accepted range.

    Args:
        value: Frames per second.

    Returns:
        The value unchanged.

    Raises:
        SettingError: If not an int in [5, 30].

    Example:
        >>> validate_frame_rate(15)
        15
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise SettingError("fps", value, f"fps must be an integer, got {value!r}")
    if not MIN_FRAME_RATE_HZ <= value <= MAX_FRAME_RATE_HZ:
        raise SettingError(
            "fps",
            value,
            f"fps must be between {MIN_FRAME_RATE_HZ} and {MAX_FRAME_RATE_HZ}, "
            f"got {value}",
        )
    return value


def validate_zoom_level(value: float) -> float:
    """Check a linear zoom level against [0.0, 1.0].

    NaN and infinities are rejected.

    Raises:
        SettingError: If out of range or not a finite number.
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise SettingError(
            "zoomLevel", value, f"zoomLevel must be a number, got {value!r}"
        )
    if not math.isfinite(value) or not MIN_ZOOM_LEVEL <= value <= MAX_ZOOM_LEVEL:
        raise SettingError(
            "zoomLevel",
            value,
            f"zoomLevel must be between {MIN_ZOOM_LEVEL} and {MAX_ZOOM_LEVEL}, "
            f"got {value}",
        )
    return float(value)


# =============================================================================
# Live Settings
# =============================================================================


class RelaySettings:
    """Mutable, validated settings shared across threads and tasks.

    Writers are the control endpoints and the host; the producer loop reads
    ``frame_rate_hz`` once per cycle. Reads and writes of each field are
    atomic under one lock.
    """

    def __init__(self, frame_rate_hz: int = DEFAULT_FRAME_RATE_HZ) -> None:
        self._lock = threading.Lock()
        self._frame_rate_hz = validate_frame_rate(frame_rate_hz)
        self._zoom_level: float | None = None

    @property
    def frame_rate_hz(self) -> int:
        with self._lock:
            return self._frame_rate_hz

    @property
    def frame_interval_s(self) -> float:
        """Producer period derived from the current frame rate."""
        return 1.0 / self.frame_rate_hz

    @property
    def zoom_level(self) -> float | None:
        """Last zoom level accepted by the capture collaborator, if any."""
        with self._lock:
            return self._zoom_level

    def set_frame_rate(self, value: int) -> int:
        """Validate and store a new frame rate.

        Returns:
            The previous frame rate.

        Raises:
            SettingError: If out of range. The stored value is unchanged.
        """
        validate_frame_rate(value)
        with self._lock:
            previous = self._frame_rate_hz
            self._frame_rate_hz = value
        return previous

    def set_zoom_level(self, value: float) -> None:
        """Validate and record a zoom level.

        Raises:
            SettingError: If out of range. The stored value is unchanged.
        """
        level = validate_zoom_level(value)
        with self._lock:
            self._zoom_level = level

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "frame_rate_hz": self._frame_rate_hz,
                "zoom_level": self._zoom_level,
            }
