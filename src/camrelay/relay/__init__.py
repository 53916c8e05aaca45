"""Relay core: shared media state, settings, fan-out, producer, framing.

Example:
    from camrelay.relay import FrameBroadcaster, FrameProducer, MediaState

    media = MediaState()
    settings = RelaySettings()
    broadcaster = FrameBroadcaster()
    producer = FrameProducer(media, settings, broadcaster)
"""

from camrelay.relay.broadcast import FrameBroadcaster, FrameSlot
from camrelay.relay.control import ControlOutcome, apply_frame_rate, apply_zoom
from camrelay.relay.holder import LatestValue, MediaState
from camrelay.relay.mjpeg import (
    MultipartEncoder,
    StreamSession,
    encode_part,
    multipart_content_type,
)
from camrelay.relay.producer import FrameProducer
from camrelay.relay.settings import (
    RelayConfig,
    RelaySettings,
    StarvationPolicy,
    validate_frame_rate,
    validate_zoom_level,
)

__all__ = [
    "ControlOutcome",
    "FrameBroadcaster",
    "FrameProducer",
    "FrameSlot",
    "LatestValue",
    "MediaState",
    "MultipartEncoder",
    "RelayConfig",
    "RelaySettings",
    "StarvationPolicy",
    "StreamSession",
    "apply_frame_rate",
    "apply_zoom",
    "encode_part",
    "multipart_content_type",
    "validate_frame_rate",
    "validate_zoom_level",
]
