"""Latest-value holders for frames and audio chunks.

A holder keeps exactly one value: every write replaces the previous one,
every read returns whatever is stored right now (or None). The capture
thread writes, the producer task and HTTP handlers read.

Example:
    media = MediaState()
    media.set_frame(jpeg_bytes)
    frame = media.get_frame()
"""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class LatestValue(Generic[T]):
    """Single-slot, overwrite-on-write store.

    Reference replacement and the version counter are updated together
    under a lock, so a reader never sees a value paired with the wrong
    version.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: T | None = None
        self._version = 0

    def set(self, value: T) -> int:
        """Replace the stored value.

        Args:
            value: New value. Stored by reference; callers pass immutable
                objects such as ``bytes``.

        Returns:
            The new version number (1 after the first write).
        """
        with self._lock:
            self._value = value
            self._version += 1
            return self._version

    def get(self) -> T | None:
        """Return the stored value, or None if never written."""
        with self._lock:
            return self._value

    def get_versioned(self) -> tuple[T | None, int]:
        """Return the stored value together with its version."""
        with self._lock:
            return self._value, self._version

    @property
    def version(self) -> int:
        """Number of writes so far."""
        with self._lock:
            return self._version


class MediaState:
    """Shared media state owned by one relay instance.

    Holds the latest JPEG frame from the capture collaborator and the
    latest encoded audio chunk from the audio collaborator.
    """

    def __init__(self) -> None:
        self.frame: LatestValue[bytes] = LatestValue()
        self.audio: LatestValue[bytes] = LatestValue()

    def set_frame(self, frame: bytes) -> None:
        """Store a new frame, replacing any previous one."""
        self.frame.set(bytes(frame))

    def get_frame(self) -> bytes | None:
        return self.frame.get()

    def set_audio_chunk(self, chunk: bytes) -> None:
        """Store a new audio chunk, replacing any previous one."""
        self.audio.set(bytes(chunk))

    def get_audio_chunk(self) -> bytes | None:
        return self.audio.get()
