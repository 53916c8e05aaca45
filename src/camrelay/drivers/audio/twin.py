"""Digital twin microphone - simulated audio collaborator.

Produces short sine-tone segments, each packaged as a self-contained WAV
file so a browser can play any single chunk fetched from ``/audio``. The
relay must be configured with ``audio_media_type="audio/wav"`` when this
source is used.

Example:
    mic = SyntheticMicrophone(sink=relay)
    mic.start()
"""

from __future__ import annotations

import io
import threading
import wave
from dataclasses import dataclass

import numpy as np

from camrelay.drivers.types import MediaSink
from camrelay.observability import get_logger

logger = get_logger(__name__)

WAV_MEDIA_TYPE = "audio/wav"


@dataclass(frozen=True)
class TwinAudioConfig:
    """Simulated microphone parameters.

    Attributes:
        sample_rate: Samples per second (mono, 16-bit).
        chunk_seconds: Duration of each pushed chunk.
        tone_hz: Frequency of the generated tone.
        amplitude: Peak amplitude as a fraction of full scale.
    """

    sample_rate: int = 44_100
    chunk_seconds: float = 0.5
    tone_hz: float = 440.0
    amplitude: float = 0.2


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Package int16 mono samples as a WAV file in memory."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(samples.astype("<i2").tobytes())
    return buffer.getvalue()


class SyntheticMicrophone:
    """Audio twin pushing tone chunks at real-time pace."""

    def __init__(self, sink: MediaSink, config: TwinAudioConfig | None = None) -> None:
        self._sink = sink
        self._config = config or TwinAudioConfig()
        self._sample_offset = 0
        self._chunks = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def chunk_count(self) -> int:
        return self._chunks

    def next_chunk(self) -> bytes:
        """Generate the next chunk, continuing the tone phase."""
        cfg = self._config
        count = int(cfg.sample_rate * cfg.chunk_seconds)
        t = (np.arange(count) + self._sample_offset) / cfg.sample_rate
        self._sample_offset += count
        samples = np.sin(2 * np.pi * cfg.tone_hz * t) * cfg.amplitude * 32767
        self._chunks += 1
        return encode_wav(samples, cfg.sample_rate)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="camrelay-microphone", daemon=True
        )
        self._thread.start()
        logger.info("Microphone started", tone_hz=self._config.tone_hz)

    def stop(self, timeout: float = 2.0) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout)
        logger.info("Microphone stopped", chunks=self._chunks)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._sink.set_audio_chunk(self.next_chunk())
            except Exception as e:
                logger.warning("Audio chunk error", error=str(e))
            self._stop_event.wait(self._config.chunk_seconds)
