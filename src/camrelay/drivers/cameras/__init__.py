"""Simulated capture collaborators.

Example:
    from camrelay.drivers.cameras import SyntheticCamera

    camera = SyntheticCamera(sink=relay)
    camera.start()
    camera.set_zoom(0.5)
"""

from camrelay.drivers.cameras.twin import (
    DirectoryCamera,
    SyntheticCamera,
    TwinCameraConfig,
)

__all__ = [
    "DirectoryCamera",
    "SyntheticCamera",
    "TwinCameraConfig",
]
