"""Collaborator drivers: interfaces and digital twin sources.

Example:
    from camrelay.drivers import DriverConfig, SourceMode, create_sources

    sources = create_sources(DriverConfig(mode=SourceMode.SYNTHETIC), sink=relay)
"""

from camrelay.drivers.config import (
    DriverConfig,
    SourceMode,
    Sources,
    create_sources,
)
from camrelay.drivers.types import (
    CaptureControl,
    Collaborator,
    ControlResult,
    MediaSink,
)

__all__ = [
    "CaptureControl",
    "Collaborator",
    "ControlResult",
    "DriverConfig",
    "MediaSink",
    "SourceMode",
    "Sources",
    "create_sources",
]
