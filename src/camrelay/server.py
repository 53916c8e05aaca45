"""Relay host: owns the shared state and runs the HTTP server in a thread."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

import uvicorn

from camrelay.drivers.types import CaptureControl, Collaborator
from camrelay.errors import RelayNotRunningError
from camrelay.observability import RelayStats, get_logger
from camrelay.relay.broadcast import FrameBroadcaster
from camrelay.relay.holder import MediaState
from camrelay.relay.producer import FrameProducer
from camrelay.relay.settings import RelayConfig, RelaySettings
from camrelay.web.app import create_app

logger = get_logger(__name__)

_WILDCARD_HOSTS = ("0.0.0.0", "::", "")


@dataclass
class ServerState:
    """Container for the background uvicorn server.

    Keeps the thread and server instance together so start/stop never
    leave one without the other.
    """

    thread: threading.Thread | None = field(default=None)
    server: uvicorn.Server | None = field(default=None)


class StreamRelay:
    """One relay instance: media state, settings, fan-out and HTTP server.

    Collaborators push media through ``set_frame`` / ``set_audio_chunk``
    from any thread. Viewers connect over HTTP. Everything shared lives on
    this object and is injected into the producer and the web app, so
    several relays can coexist in one process (tests bind port 0).

    Example:
        >>> relay = StreamRelay(RelayConfig(port=8080))
        >>> relay.attach_capture(camera)
        >>> relay.add_collaborator(camera)
        >>> with relay:
        ...     relay.set_frame_rate(15)
    """

    def __init__(self, config: RelayConfig | None = None) -> None:
        self.config = config or RelayConfig()
        self.media = MediaState()
        self.settings = RelaySettings(self.config.frame_rate_hz)
        self.stats = RelayStats()
        self.broadcaster = FrameBroadcaster(self.stats)
        self.producer = FrameProducer(self.media, self.settings, self.broadcaster)
        self.capture: CaptureControl | None = None
        self._collaborators: list[Collaborator] = []
        self._collaborators_started = False
        self._state = ServerState()
        self.app = create_app(self)

    def __repr__(self) -> str:
        return f"StreamRelay(url={self.url!r}, running={self.running})"

    def __enter__(self) -> StreamRelay:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        """True while the server thread is alive and accepting connections."""
        state = self._state
        return (
            state.thread is not None
            and state.thread.is_alive()
            and state.server is not None
            and state.server.started
        )

    @property
    def port(self) -> int:
        """Bound TCP port; differs from the configured one when that is 0."""
        server = self._state.server
        if server is not None and server.started and server.servers:
            sockets = server.servers[0].sockets
            if sockets:
                return int(sockets[0].getsockname()[1])
        return self.config.port

    @property
    def url(self) -> str:
        host = self.config.host
        if host in _WILDCARD_HOSTS:
            host = "127.0.0.1"
        return f"http://{host}:{self.port}"

    # -------------------------------------------------------------------------
    # Host interface
    # -------------------------------------------------------------------------

    def set_frame(self, frame: bytes) -> None:
        """Store the latest JPEG frame. Callable from any thread."""
        self.media.set_frame(frame)

    def set_audio_chunk(self, chunk: bytes) -> None:
        """Store the latest encoded audio chunk. Callable from any thread."""
        self.media.set_audio_chunk(chunk)

    def set_frame_rate(self, fps: int) -> None:
        """Change the relay frame rate, effective on the next producer cycle.

        Raises:
            SettingError: If ``fps`` is outside [5, 30]; nothing changes.
        """
        previous = self.settings.set_frame_rate(fps)
        logger.info("Frame rate set by host", old_fps=previous, new_fps=fps)

    def attach_capture(self, control: CaptureControl | None) -> None:
        """Set the collaborator that receives ``/setZoom`` requests."""
        self.capture = control
        logger.debug("Capture control attached", control=repr(control))

    def add_collaborator(self, collaborator: Collaborator) -> None:
        """Register an object started with the relay and stopped with it."""
        self._collaborators.append(collaborator)
        if self._collaborators_started:
            self._start_collaborator(collaborator)

    def status(self) -> dict[str, Any]:
        """Snapshot of settings, media availability and statistics."""
        frame, frame_version = self.media.frame.get_versioned()
        audio, audio_version = self.media.audio.get_versioned()
        return {
            "running": self.running,
            "url": self.url,
            "settings": self.settings.to_dict(),
            "frame_available": frame is not None,
            "frame_version": frame_version,
            "audio_available": audio is not None,
            "audio_version": audio_version,
            "audio_media_type": self.config.audio_media_type,
            "capture_attached": self.capture is not None,
            "active_streams": self.broadcaster.subscriber_count,
            "producer_cycles": self.producer.cycles,
            "stats": self.stats.get_summary().to_dict(),
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, timeout: float = 5.0) -> None:
        """Start the HTTP server thread and the registered collaborators.

        Blocks until the socket is bound. No-op if already running.

        Raises:
            RelayNotRunningError: If the server did not come up within
                ``timeout`` (port in use, bad host).
        """
        if self.running:
            logger.warning("Relay already running", url=self.url)
            return

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.server_log_level,
            timeout_graceful_shutdown=self.config.shutdown_timeout_s,
            ws="none",
        )
        server = uvicorn.Server(config)
        thread = threading.Thread(
            target=self._serve,
            args=(server,),
            daemon=True,
            name=f"camrelay-server-{self.config.host}:{self.config.port}",
        )
        self._state = ServerState(thread=thread, server=server)
        thread.start()

        deadline = time.monotonic() + timeout
        while not server.started:
            if not thread.is_alive() or time.monotonic() > deadline:
                server.should_exit = True
                thread.join(1.0)
                self._state = ServerState()
                raise RelayNotRunningError(
                    f"Relay server failed to start on "
                    f"{self.config.host}:{self.config.port}"
                )
            time.sleep(0.01)

        logger.info("Relay started", url=self.url, fps=self.settings.frame_rate_hz)

        for collaborator in self._collaborators:
            self._start_collaborator(collaborator)
        self._collaborators_started = True

    def stop(self, timeout: float | None = None) -> None:
        """Stop serving and release collaborators.

        Open ``/stream`` responses end within one poll interval. Safe to
        call when not running.
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout_s + 1.0

        state, self._state = self._state, ServerState()
        self.broadcaster.close()

        if state.server is not None:
            logger.info("Stopping relay server")
            state.server.should_exit = True
            if state.thread is not None:
                state.thread.join(timeout)
                if state.thread.is_alive():
                    logger.warning("Relay server slow to stop, forcing exit")
                    state.server.force_exit = True
                    state.thread.join(1.0)

        if self._collaborators_started:
            for collaborator in self._collaborators:
                try:
                    collaborator.stop()
                except Exception:
                    logger.exception(
                        "Collaborator failed to stop", collaborator=repr(collaborator)
                    )
            self._collaborators_started = False

        if state.server is not None:
            logger.info("Relay stopped", stats=self.stats.get_summary().to_dict())

    def _start_collaborator(self, collaborator: Collaborator) -> None:
        try:
            collaborator.start()
        except Exception:
            logger.exception(
                "Collaborator failed to start", collaborator=repr(collaborator)
            )

    def _serve(self, server: uvicorn.Server) -> None:
        try:
            server.run()
        except OSError as e:
            logger.error(
                "Relay server failed",
                error=str(e),
                host=self.config.host,
                port=self.config.port,
            )
        except SystemExit:
            # uvicorn exits the process on bind failure; keep it to this thread
            logger.error(
                "Relay server exited during startup",
                host=self.config.host,
                port=self.config.port,
            )
        except Exception:
            logger.exception("Unexpected error in relay server")
