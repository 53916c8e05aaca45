"""Simulated audio collaborators."""

from camrelay.drivers.audio.twin import (
    WAV_MEDIA_TYPE,
    SyntheticMicrophone,
    TwinAudioConfig,
    encode_wav,
)

__all__ = ["WAV_MEDIA_TYPE", "SyntheticMicrophone", "TwinAudioConfig", "encode_wav"]
