"""Integration tests for the FastAPI application.

Uses FastAPI's TestClient, which runs the app lifespan (so the frame
producer is live) without binding a socket. TestClient buffers whole
response bodies, so stream tests rely on the relay fixture's CLOSE
starvation policy to end each ``/stream`` body after one or two parts.
"""

import pytest
from fastapi.testclient import TestClient

from camrelay.drivers.types import ControlResult
from camrelay.relay.mjpeg import encode_part


@pytest.fixture
def client(relay):
    """TestClient with the app lifespan running."""
    with TestClient(relay.app) as test_client:
        yield test_client


class TestIndex:
    """Viewer page."""

    def test_index_embeds_stream(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'src="/stream"' in response.text
        assert "/audio" in response.text


class TestStream:
    """MJPEG stream endpoint."""

    def test_stream_begins_with_exact_part(self, relay, frame_a):
        """Verifies the body starts with one correctly framed JPEG part.

        Arrangement:
        1. Relay holding frame A before the app starts.
        2. CLOSE starvation policy (fixture) so the body terminates.

        Action:
        GET /stream through TestClient.

        Assertion Strategy:
        Multipart content type with boundary "frame", no-cache headers,
        and a body made only of whole copies of frame A's part.
        """
        relay.set_frame(frame_a)
        with TestClient(relay.app) as client:
            response = client.get("/stream")

        expected = encode_part(frame_a)
        assert response.status_code == 200
        assert (
            response.headers["content-type"]
            == "multipart/x-mixed-replace; boundary=frame"
        )
        assert response.headers["cache-control"].startswith("no-cache")
        body = response.content
        assert body.startswith(expected)
        assert len(body) % len(expected) == 0
        assert body == expected * (len(body) // len(expected))

    def test_stream_counts_session(self, relay, frame_a):
        relay.set_frame(frame_a)
        with TestClient(relay.app) as client:
            client.get("/stream")
            status = client.get("/status").json()

        assert status["stats"]["sessions_opened"] == 1
        assert status["stats"]["sessions_closed"] == 1
        assert status["active_streams"] == 0

    def test_stream_without_frames_ends_empty_under_close_policy(self, client):
        response = client.get("/stream")
        assert response.status_code == 200
        assert response.content == b""


class TestAudio:
    """Latest audio chunk endpoint."""

    def test_audio_missing(self, client):
        response = client.get("/audio")
        assert response.status_code == 404
        assert response.text == "No audio available"
        assert response.headers["content-type"].startswith("text/plain")

    def test_audio_returns_exact_bytes(self, relay, client):
        chunk = bytes(range(256)) * 4
        relay.set_audio_chunk(chunk)

        response = client.get("/audio")

        assert response.status_code == 200
        assert response.content == chunk
        assert response.headers["content-type"] == "audio/aac"

    def test_audio_returns_latest_chunk(self, relay, client):
        relay.set_audio_chunk(b"first")
        relay.set_audio_chunk(b"second")
        assert client.get("/audio").content == b"second"


class TestSetZoom:
    """``/setZoom?zoomLevel=``"""

    def test_valid_zoom(self, client, capture, relay):
        response = client.get("/setZoom", params={"zoomLevel": "0.75"})
        assert response.status_code == 200
        assert response.text == "Zoom level set to 0.75"
        capture.set_zoom.assert_called_once_with(0.75)
        assert relay.settings.zoom_level == 0.75

    @pytest.mark.parametrize("query", ["", "?zoomLevel=", "?zoomLevel=abc", "?zoomLevel=1.5", "?zoomLevel=-1"])
    def test_invalid_zoom(self, client, capture, query):
        response = client.get(f"/setZoom{query}")
        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/plain")
        capture.set_zoom.assert_not_called()

    def test_zoom_without_capture(self, relay, client):
        relay.attach_capture(None)
        response = client.get("/setZoom", params={"zoomLevel": "0.5"})
        assert response.status_code == 503

    def test_zoom_refused_by_capture(self, client, capture):
        capture.set_zoom.return_value = ControlResult.failure("not ready")
        response = client.get("/setZoom", params={"zoomLevel": "0.5"})
        assert response.status_code == 503
        assert "not ready" in response.text


class TestSetFps:
    """``/setFPS?fps=``"""

    def test_valid_fps(self, relay, client):
        response = client.get("/setFPS", params={"fps": "15"})
        assert response.status_code == 200
        assert response.text == "Frame rate set to 15 fps"
        assert relay.settings.frame_rate_hz == 15

    @pytest.mark.parametrize("value", ["4", "31", "abc", "12.5", "", "1_5"])
    def test_invalid_fps_leaves_rate_unchanged(self, relay, client, value):
        response = client.get("/setFPS", params={"fps": value})
        assert response.status_code == 400
        assert relay.settings.frame_rate_hz == 5

    def test_missing_fps(self, client):
        response = client.get("/setFPS")
        assert response.status_code == 400
        assert response.text == "Missing fps parameter"


class TestRouting:
    """Unknown paths and methods."""

    @pytest.mark.parametrize("path", ["/unknown-path", "/stream/extra", "/SETFPS"])
    def test_unknown_path_is_plain_404(self, client, path):
        response = client.get(path)
        assert response.status_code == 404
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Not Found"

    def test_wrong_method_is_plain_text(self, client):
        response = client.post("/setFPS?fps=10")
        assert response.status_code == 405
        assert response.headers["content-type"].startswith("text/plain")


class TestStatus:
    """JSON status snapshot."""

    def test_status_fields(self, relay, client, frame_a):
        relay.set_frame(frame_a)
        client.get("/setFPS", params={"fps": "20"})

        status = client.get("/status").json()

        assert status["settings"] == {"frame_rate_hz": 20, "zoom_level": None}
        assert status["frame_available"] is True
        assert status["frame_version"] == 1
        assert status["audio_available"] is False
        assert status["capture_attached"] is True
        assert status["audio_media_type"] == "audio/aac"
        assert "frames_published" in status["stats"]
