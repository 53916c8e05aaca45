"""FastAPI application for the camera relay."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Query, Request
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from camrelay.observability import LogContext, get_logger
from camrelay.relay.control import ControlOutcome, apply_frame_rate, apply_zoom
from camrelay.relay.mjpeg import StreamSession, multipart_content_type

if TYPE_CHECKING:
    from camrelay.server import StreamRelay

logger = get_logger(__name__)

# Paths
WEB_DIR = Path(__file__).parent
TEMPLATES_DIR = WEB_DIR / "templates"

#: Headers that stop browsers and proxies from caching live media.
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _outcome_response(outcome: ControlOutcome) -> PlainTextResponse:
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)


def create_app(relay: StreamRelay) -> FastAPI:
    """Create the FastAPI application serving one relay.

    The app holds no media state of its own; every route reads from the
    injected relay (media holders, settings, broadcaster, statistics).

    Lifespan:
        Startup reopens the broadcaster and launches the frame producer on
        the serving event loop. Shutdown closes the broadcaster, which ends
        every open ``/stream`` body, then stops the producer.

    Routes:
        GET /          Viewer page (MJPEG ``<img>`` plus audio polling)
        GET /stream    multipart/x-mixed-replace MJPEG stream
        GET /audio     Latest audio chunk, 404 until one exists
        GET /setZoom   ``zoomLevel`` in [0.0, 1.0]
        GET /setFPS    ``fps`` in [5, 30]
        GET /status    JSON settings, media availability and statistics
        anything else  404 plain text

    Args:
        relay: The relay whose state the routes expose.

    Returns:
        Configured FastAPI application ready for uvicorn.

    Example:
        >>> relay = StreamRelay(RelayConfig(port=0))
        >>> app = create_app(relay)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Relay services starting")
        relay.broadcaster.reopen()
        relay.producer.start()
        yield
        logger.info("Relay services stopping")
        relay.broadcaster.close()
        await relay.producer.stop()

    app = FastAPI(
        title="camrelay",
        description="Live MJPEG and audio relay",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    templates = Jinja2Templates(directory=TEMPLATES_DIR)
    config = relay.config

    @app.exception_handler(StarletteHTTPException)
    async def plain_text_http_error(
        request: Request, exc: StarletteHTTPException
    ) -> PlainTextResponse:
        """Render routing errors (unknown path, wrong method) as plain text."""
        if exc.status_code == 404:
            logger.debug("Unknown path requested", path=request.url.path)
            return PlainTextResponse("Not Found", status_code=404)
        return PlainTextResponse(
            str(exc.detail), status_code=exc.status_code, headers=exc.headers
        )

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        """Serve the viewer page.

        The page embeds ``<img src="/stream">`` for video and polls
        ``/audio`` for the latest audio chunk.
        """
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "title": "camrelay",
                "audio_media_type": config.audio_media_type,
            },
        )

    @app.get("/stream")
    async def stream(request: Request) -> StreamingResponse:
        """Open a long-lived MJPEG stream for one viewer.

        Each request gets its own StreamSession and relay slot, so viewers
        never take frames from each other. The body ends when the relay
        stops, the client disconnects, or (only under the CLOSE starvation
        policy) no frame arrives within the poll timeout.
        """
        session = StreamSession(
            relay.broadcaster,
            boundary=config.boundary,
            poll_timeout=config.poll_timeout_s,
            starvation_policy=config.starvation_policy,
            stats=relay.stats,
            client=request.client.host if request.client else None,
        )
        return StreamingResponse(
            session.iter_parts(),
            media_type=multipart_content_type(config.boundary),
            headers=NO_CACHE_HEADERS,
        )

    @app.get("/audio")
    async def audio() -> Response:
        """Return the latest audio chunk byte-for-byte, or 404."""
        chunk = relay.media.get_audio_chunk()
        if chunk is None:
            return PlainTextResponse("No audio available", status_code=404)
        return Response(
            content=chunk,
            media_type=config.audio_media_type,
            headers=NO_CACHE_HEADERS,
        )

    @app.get("/setZoom")
    async def set_zoom(
        zoom_level: str | None = Query(None, alias="zoomLevel"),
    ) -> PlainTextResponse:
        """Forward a zoom level in [0.0, 1.0] to the capture source.

        Returns 200 on success, 400 for a missing, non-numeric or
        out-of-range ``zoomLevel``, 503 if the capture source is absent or
        refuses the change.
        """
        with LogContext(endpoint="/setZoom"):
            outcome = apply_zoom(zoom_level, relay.capture, relay.settings)
        return _outcome_response(outcome)

    @app.get("/setFPS")
    async def set_fps(fps: str | None = Query(None)) -> PlainTextResponse:
        """Set the relay frame rate, an integer in [5, 30].

        Open streams pick the new rate up on the producer's next cycle.
        """
        with LogContext(endpoint="/setFPS"):
            outcome = apply_frame_rate(fps, relay.settings)
        return _outcome_response(outcome)

    @app.get("/status")
    async def status() -> JSONResponse:
        """Report live settings, media availability and relay statistics."""
        return JSONResponse(relay.status(), headers=NO_CACHE_HEADERS)

    return app
