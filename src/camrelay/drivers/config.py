"""Source configuration and factory.

Selects which simulated collaborators feed the relay. Real cameras and
encoders live outside this package and push through the same ``MediaSink``
interface, so ``SourceMode.NONE`` is the mode a host application with its
own capture pipeline uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from camrelay.drivers.audio import SyntheticMicrophone, TwinAudioConfig
from camrelay.drivers.cameras import DirectoryCamera, SyntheticCamera, TwinCameraConfig
from camrelay.drivers.types import CaptureControl, Collaborator, MediaSink
from camrelay.errors import SettingError


class SourceMode(Enum):
    """Video source selection."""

    SYNTHETIC = "synthetic"  # Generated test pattern
    DIRECTORY = "directory"  # Cycle through images in a folder
    NONE = "none"  # Frames pushed by the host application


@dataclass
class DriverConfig:
    """Configuration for the simulated collaborators.

    Attributes:
        mode: Video source selection.
        image_dir: Folder for ``SourceMode.DIRECTORY``.
        camera: Twin camera parameters.
        audio_enabled: Also run the synthetic microphone.
        audio: Twin microphone parameters.
    """

    mode: SourceMode = SourceMode.SYNTHETIC
    image_dir: Path | None = None
    camera: TwinCameraConfig = field(default_factory=TwinCameraConfig)
    audio_enabled: bool = False
    audio: TwinAudioConfig = field(default_factory=TwinAudioConfig)


@dataclass
class Sources:
    """Collaborators created for a relay.

    Attributes:
        capture: Zoom-capable video source, None in ``SourceMode.NONE``.
        collaborators: Everything that needs start/stop, capture included.
    """

    capture: CaptureControl | None = None
    collaborators: list[Collaborator] = field(default_factory=list)


def create_sources(config: DriverConfig, sink: MediaSink) -> Sources:
    """Build the collaborators described by ``config``.

    Nothing is started; register the result with the relay, which starts
    and stops collaborators with its own lifecycle.

    Args:
        config: Source selection.
        sink: Receiver of frames and audio chunks, normally the relay.

    Returns:
        Sources with the capture control and the collaborator list.

    Raises:
        SettingError: DIRECTORY mode without ``image_dir``.
        CaptureError: ``image_dir`` missing or empty.

    Example:
        >>> sources = create_sources(DriverConfig(), sink=relay)
        >>> relay.attach_capture(sources.capture)
    """
    sources = Sources()

    if config.mode is SourceMode.SYNTHETIC:
        camera = SyntheticCamera(sink, config.camera)
        sources.capture = camera
        sources.collaborators.append(camera)
    elif config.mode is SourceMode.DIRECTORY:
        if config.image_dir is None:
            raise SettingError(
                "image_dir", None, "Directory mode requires an image directory"
            )
        camera = DirectoryCamera(sink, config.image_dir, config.camera)
        sources.capture = camera
        sources.collaborators.append(camera)

    if config.audio_enabled:
        sources.collaborators.append(SyntheticMicrophone(sink, config.audio))

    return sources
