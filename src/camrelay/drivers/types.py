"""Collaborator interfaces shared by capture and audio drivers.

The relay never talks to camera or microphone hardware. Collaborators push
already-encoded media into a ``MediaSink`` and, for cameras, expose a zoom
control returning a ``ControlResult``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ControlResult:
    """Outcome of a control call on a collaborator.

    Attributes:
        ok: True if the collaborator applied the change.
        message: Human-readable detail, shown to HTTP callers on failure.
    """

    ok: bool
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> ControlResult:
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, message: str) -> ControlResult:
        return cls(ok=False, message=message)


@runtime_checkable
class MediaSink(Protocol):  # pragma: no cover
    """Where collaborators deliver frames and audio chunks."""

    def set_frame(self, frame: bytes) -> None:
        """Replace the latest video frame."""
        ...

    def set_audio_chunk(self, chunk: bytes) -> None:
        """Replace the latest encoded audio chunk."""
        ...


@runtime_checkable
class CaptureControl(Protocol):  # pragma: no cover
    """Control surface of a capture collaborator."""

    def set_zoom(self, level: float) -> ControlResult:
        """Apply a linear zoom level in [0.0, 1.0].

        Returns:
            ControlResult with ok=False if the camera is not ready.
        """
        ...


@runtime_checkable
class Collaborator(Protocol):  # pragma: no cover
    """Lifecycle of a source registered with the relay."""

    def start(self) -> None: ...

    def stop(self) -> None: ...
