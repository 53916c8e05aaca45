"""Digital twin cameras - simulated capture collaborators.

Stand in for a real camera during development, demos and tests. Each twin
runs its own capture thread at its own rate (independent of the relay's
frame rate), renders an image, applies the current linear zoom, encodes
JPEG and pushes the bytes into a ``MediaSink``.

Image Sources:
    SyntheticCamera: Generated test pattern (grid, crosshair, moving
        marker, frame counter and timestamp)
    DirectoryCamera: Cycle through JPEG/PNG files in a folder

Zoom:
    ``set_zoom(level)`` takes a linear level in [0.0, 1.0]; 0.0 shows the
    full field and 1.0 the maximum magnification (``max_zoom``). Values
    outside the range are clamped, matching how a camera control coerces
    linear zoom. Zoom is a centre crop scaled back to full resolution.

Example:
    camera = SyntheticCamera(sink=relay, config=TwinCameraConfig(capture_fps=15))
    camera.start()
    camera.set_zoom(0.25)
    ...
    camera.stop()
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import cv2
import numpy as np

from camrelay.drivers.types import ControlResult, MediaSink
from camrelay.errors import CaptureError
from camrelay.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

__all__ = [
    "DirectoryCamera",
    "SyntheticCamera",
    "TwinCameraConfig",
    "apply_linear_zoom",
]

_SYNTHETIC_GRID_SPACING = 40
_CROSSHAIR_RADIUS = 50
_IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png")


@dataclass(frozen=True)
class TwinCameraConfig:
    """Simulated camera parameters.

    Attributes:
        width: Output frame width in pixels.
        height: Output frame height in pixels.
        capture_fps: Rate at which the twin pushes frames.
        jpeg_quality: OpenCV JPEG quality (1-100).
        max_zoom: Magnification at zoom level 1.0.
    """

    width: int = 640
    height: int = 480
    capture_fps: float = 30.0
    jpeg_quality: int = 85
    max_zoom: float = 4.0


def apply_linear_zoom(
    img: NDArray[Any], level: float, max_zoom: float = 4.0
) -> NDArray[Any]:
    """Crop the centre of ``img`` for a linear zoom level and rescale.

    Args:
        img: Image array (H, W) or (H, W, C).
        level: Linear zoom in [0.0, 1.0]; clamped.
        max_zoom: Magnification reached at level 1.0.

    Returns:
        Array with the same shape as ``img``. Level 0.0 returns ``img``
        itself.

    Example:
        >>> img = np.zeros((480, 640, 3), dtype=np.uint8)
        >>> apply_linear_zoom(img, 0.5).shape
        (480, 640, 3)
    """
    level = min(max(level, 0.0), 1.0)
    if level == 0.0:
        return img

    height, width = img.shape[:2]
    magnification = 1.0 + level * (max_zoom - 1.0)
    crop_w = max(1, int(width / magnification))
    crop_h = max(1, int(height / magnification))
    x0 = (width - crop_w) // 2
    y0 = (height - crop_h) // 2

    cropped = img[y0 : y0 + crop_h, x0 : x0 + crop_w]
    return cv2.resize(cropped, (width, height), interpolation=cv2.INTER_LINEAR)


class _TwinCamera(ABC):
    """Capture thread, zoom state and lifecycle shared by the twins."""

    def __init__(
        self,
        sink: MediaSink,
        config: TwinCameraConfig | None = None,
        name: str = "twin-camera",
    ) -> None:
        self._sink = sink
        self._config = config or TwinCameraConfig()
        self._name = name
        self._zoom_level = 0.0
        self._frame_count = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, "
            f"{self._config.width}x{self._config.height}@{self._config.capture_fps}fps, "
            f"running={self.running})"
        )

    @property
    def config(self) -> TwinCameraConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def zoom_level(self) -> float:
        with self._lock:
            return self._zoom_level

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def set_zoom(self, level: float) -> ControlResult:
        """Apply a linear zoom level, clamped to [0.0, 1.0].

        Returns:
            Failure while the capture thread is not running, like a camera
            whose control interface is not initialized yet.
        """
        if not self.running:
            logger.error("Zoom requested before camera start", camera=self._name)
            return ControlResult.failure("Camera control is not initialized")

        clamped = min(max(float(level), 0.0), 1.0)
        with self._lock:
            self._zoom_level = clamped
        logger.debug("Zoom applied", camera=self._name, zoom_level=clamped)
        return ControlResult.success(f"Zoom level set to {clamped}")

    def capture_frame(self) -> bytes:
        """Render, zoom and JPEG-encode one frame."""
        img = self._render()
        img = apply_linear_zoom(img, self.zoom_level, self._config.max_zoom)
        ok, jpeg = cv2.imencode(
            ".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, self._config.jpeg_quality]
        )
        if not ok:
            raise CaptureError(f"JPEG encoding failed for {self._name}")
        self._frame_count += 1
        return jpeg.tobytes()

    @abstractmethod
    def _render(self) -> NDArray[Any]:
        """Produce the next full-field BGR image, before zoom."""

    def start(self) -> None:
        """Start the capture thread. No-op if already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"camrelay-{self._name}", daemon=True
        )
        self._thread.start()
        logger.info("Camera started", camera=self._name, fps=self._config.capture_fps)

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the capture thread and wait for it."""
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout)
        logger.info("Camera stopped", camera=self._name, frames=self._frame_count)

    def _run(self) -> None:
        interval = 1.0 / self._config.capture_fps
        while not self._stop_event.is_set():
            try:
                self._sink.set_frame(self.capture_frame())
            except Exception as e:
                logger.warning("Frame capture error", camera=self._name, error=str(e))
            self._stop_event.wait(interval)


class SyntheticCamera(_TwinCamera):
    """Twin rendering a moving test pattern."""

    def __init__(
        self,
        sink: MediaSink,
        config: TwinCameraConfig | None = None,
        name: str = "synthetic",
    ) -> None:
        super().__init__(sink, config, name)

    def _render(self) -> NDArray[Any]:
        width = self._config.width
        height = self._config.height

        img: NDArray[Any] = np.zeros((height, width, 3), dtype=np.uint8)

        img[::_SYNTHETIC_GRID_SPACING, :] = [50, 50, 50]
        img[:, ::_SYNTHETIC_GRID_SPACING] = [50, 50, 50]

        cv2.line(img, (width // 2, 0), (width // 2, height), (0, 255, 0), 1)
        cv2.line(img, (0, height // 2), (width, height // 2), (0, 255, 0), 1)
        cv2.circle(img, (width // 2, height // 2), _CROSSHAIR_RADIUS, (0, 100, 0), 1)

        # Marker sweeps left to right so consecutive frames differ visibly
        marker_x = (self._frame_count * 4) % width
        cv2.circle(img, (marker_x, height // 4), 8, (0, 160, 255), -1)

        cv2.putText(
            img,
            f"CAMRELAY TWIN - {self._name}",
            (20, 40),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.8,
            (255, 255, 255),
            2,
        )
        cv2.putText(
            img,
            f"Frame {self._frame_count}  Zoom {self.zoom_level:.2f}",
            (20, height - 50),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.6,
            (200, 200, 200),
            1,
        )
        cv2.putText(
            img,
            datetime.now(UTC).strftime("%H:%M:%S.%f")[:-3],
            (20, height - 20),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.6,
            (200, 200, 200),
            1,
        )
        return img


class DirectoryCamera(_TwinCamera):
    """Twin cycling through the images in a directory.

    Raises:
        CaptureError: At construction if the directory is missing or holds
            no JPEG/PNG files.
    """

    def __init__(
        self,
        sink: MediaSink,
        directory: Path | str,
        config: TwinCameraConfig | None = None,
        name: str = "directory",
    ) -> None:
        super().__init__(sink, config, name)
        self._directory = Path(directory)
        if not self._directory.is_dir():
            raise CaptureError(f"Image directory not found: {self._directory}")
        self._files = sorted(
            p
            for p in self._directory.iterdir()
            if p.suffix.lower() in _IMAGE_SUFFIXES
        )
        if not self._files:
            raise CaptureError(f"No images in {self._directory}")
        self._index = 0

    @property
    def files(self) -> list[Path]:
        return list(self._files)

    def _render(self) -> NDArray[Any]:
        path = self._files[self._index % len(self._files)]
        self._index += 1

        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            raise CaptureError(f"Failed to read image: {path.name}")

        if img.shape[1] != self._config.width or img.shape[0] != self._config.height:
            img = cv2.resize(
                img,
                (self._config.width, self._config.height),
                interpolation=cv2.INTER_AREA,
            )
        return img
