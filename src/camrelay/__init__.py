"""camrelay - live MJPEG video and audio relay over HTTP.

Example:
    from camrelay import RelayConfig, StreamRelay

    with StreamRelay(RelayConfig(port=8080)) as relay:
        relay.set_frame(jpeg_bytes)
"""

from camrelay.errors import (
    CaptureError,
    RelayError,
    RelayNotRunningError,
    SettingError,
)
from camrelay.relay.settings import RelayConfig, StarvationPolicy
from camrelay.server import StreamRelay

__version__ = "0.1.0"

__all__ = [
    "CaptureError",
    "RelayConfig",
    "RelayError",
    "RelayNotRunningError",
    "SettingError",
    "StarvationPolicy",
    "StreamRelay",
    "__version__",
]
