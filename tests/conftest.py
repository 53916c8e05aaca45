"""Pytest configuration and fixtures for camrelay tests.

Fixtures here build relays and collaborators without binding sockets or
starting threads; tests that need a live server start one explicitly on
an ephemeral port.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from camrelay.drivers.types import ControlResult
from camrelay.observability import configure_logging, reset_logging
from camrelay.relay.settings import RelayConfig, StarvationPolicy
from camrelay.server import StreamRelay

# Minimal JPEG-shaped payloads; the relay never decodes frames
FRAME_A = b"\xff\xd8\xff\xe0frame-a\xff\xd9"
FRAME_B = b"\xff\xd8\xff\xe0frame-b-longer\xff\xd9"


@pytest.fixture
def frame_a() -> bytes:
    return FRAME_A


@pytest.fixture
def frame_b() -> bytes:
    return FRAME_B


@pytest.fixture
def log_buffer() -> Iterator[io.StringIO]:
    """Route camrelay logs into a buffer for the duration of a test.

    Yields:
        StringIO receiving formatted DEBUG-and-above records.
    """
    buffer = io.StringIO()
    configure_logging(level="DEBUG", stream=buffer, force=True)
    yield buffer
    reset_logging()


@pytest.fixture
def capture() -> MagicMock:
    """Capture collaborator that accepts every zoom request."""
    control = MagicMock()
    control.set_zoom.return_value = ControlResult.success("ok")
    return control


@pytest.fixture
def relay(capture: MagicMock) -> StreamRelay:
    """Unstarted relay with a mock capture attached.

    Streams end on the first starved poll and the producer runs at 5 fps
    with a 150 ms poll, so every ``/stream`` body served through
    TestClient terminates after one or two parts.
    """
    config = RelayConfig(
        host="127.0.0.1",
        port=0,
        frame_rate_hz=5,
        poll_timeout_s=0.15,
        starvation_policy=StarvationPolicy.CLOSE,
    )
    relay = StreamRelay(config)
    relay.attach_capture(capture)
    return relay
