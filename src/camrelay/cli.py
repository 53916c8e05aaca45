"""CLI entry point for camrelay.

Provides the ``camrelay`` console script, which runs a relay fed by one of
the built-in digital twin sources.

Usage::

    # Synthetic test pattern on port 8080
    camrelay

    # Cycle through a folder of images at 15 fps, with a test tone
    camrelay --source directory --image-dir ./frames --fps 15 --audio

    # Frames pushed by another process through the Python API only
    camrelay --source none --port 9000 --json-logs
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import time
from pathlib import Path

from camrelay.drivers import DriverConfig, SourceMode, create_sources
from camrelay.drivers.audio import WAV_MEDIA_TYPE
from camrelay.errors import RelayError
from camrelay.observability import configure_logging, get_logger
from camrelay.relay.settings import (
    DEFAULT_FRAME_RATE_HZ,
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_FRAME_RATE_HZ,
    MIN_FRAME_RATE_HZ,
    RelayConfig,
    StarvationPolicy,
)
from camrelay.server import StreamRelay

logger = get_logger(__name__)

LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for the relay.

    Args:
        argv: Argument list, defaults to ``sys.argv[1:]``.

    Returns:
        argparse.Namespace with host, port, fps, source, image_dir, audio,
        close_on_starvation, log_level, json_logs and server_log_level.

    Raises:
        SystemExit: On invalid arguments (e.g., --help, fps out of range,
            directory source without --image-dir).

    Example:
        >>> args = parse_args(["--port", "9000", "--fps", "15"])
        >>> args.port, args.fps
        (9000, 15)
    """
    parser = argparse.ArgumentParser(
        prog="camrelay",
        description="Relay live MJPEG video and audio over HTTP",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_HOST,
        help=f"Interface to bind (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"TCP port, 0 for any free port (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--fps",
        type=int,
        default=DEFAULT_FRAME_RATE_HZ,
        help=(
            f"Relay frame rate, {MIN_FRAME_RATE_HZ}-{MAX_FRAME_RATE_HZ} "
            f"(default: {DEFAULT_FRAME_RATE_HZ})"
        ),
    )
    parser.add_argument(
        "--source",
        type=str,
        choices=[mode.value for mode in SourceMode],
        default=SourceMode.SYNTHETIC.value,
        help=(
            "Video source: 'synthetic' test pattern, 'directory' of images, "
            "or 'none' (default: synthetic)"
        ),
    )
    parser.add_argument(
        "--image-dir",
        type=Path,
        default=None,
        help="Image folder for --source directory",
    )
    parser.add_argument(
        "--audio",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Run the synthetic microphone (WAV test tone)",
    )
    parser.add_argument(
        "--close-on-starvation",
        action="store_true",
        help="End a stream when no frame arrives within one poll interval",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=LOG_LEVELS,
        default="info",
        help="Log level for camrelay (default: info)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    parser.add_argument(
        "--server-log-level",
        type=str,
        choices=LOG_LEVELS,
        default="warning",
        help="Log level for the uvicorn server (default: warning)",
    )
    args = parser.parse_args(argv)

    if not MIN_FRAME_RATE_HZ <= args.fps <= MAX_FRAME_RATE_HZ:
        parser.error(
            f"--fps must be between {MIN_FRAME_RATE_HZ} and {MAX_FRAME_RATE_HZ}"
        )
    if args.source == SourceMode.DIRECTORY.value and args.image_dir is None:
        parser.error("--source directory requires --image-dir")
    return args


def build_configs(args: argparse.Namespace) -> tuple[RelayConfig, DriverConfig]:
    """Translate parsed arguments into relay and source configuration."""
    relay_config = RelayConfig(
        host=args.host,
        port=args.port,
        frame_rate_hz=args.fps,
        starvation_policy=(
            StarvationPolicy.CLOSE
            if args.close_on_starvation
            else StarvationPolicy.KEEP_WAITING
        ),
        server_log_level=args.server_log_level,
    )
    if args.audio:
        relay_config = dataclasses.replace(
            relay_config, audio_media_type=WAV_MEDIA_TYPE
        )

    driver_config = DriverConfig(
        mode=SourceMode(args.source),
        image_dir=args.image_dir,
        audio_enabled=args.audio,
    )
    return relay_config, driver_config


def build_relay(args: argparse.Namespace) -> StreamRelay:
    """Create a relay with its sources attached, not yet started.

    Raises:
        RelayError: If the sources cannot be created (missing or empty
            image directory).
    """
    relay_config, driver_config = build_configs(args)
    relay = StreamRelay(relay_config)

    sources = create_sources(driver_config, sink=relay)
    relay.attach_capture(sources.capture)
    for collaborator in sources.collaborators:
        relay.add_collaborator(collaborator)
    return relay


def main(argv: list[str] | None = None) -> None:
    """Run the relay until interrupted.

    Configures structured logging, builds the relay and its sources, starts
    serving and blocks until Ctrl+C, then shuts everything down.

    Raises:
        SystemExit: On argument errors or when the relay cannot start.
    """
    args = parse_args(argv)

    configure_logging(
        level=getattr(logging, args.log_level.upper()),
        json_format=args.json_logs,
        force=True,
    )

    try:
        relay = build_relay(args)
        relay.start()
    except RelayError as e:
        logger.error("Relay failed to start", error=str(e))
        raise SystemExit(1) from e

    logger.info("Serving", url=relay.url, source=args.source, audio=args.audio)
    try:
        while relay.running:
            time.sleep(0.5)
        logger.error("Relay server exited unexpectedly")
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        relay.stop()


if __name__ == "__main__":  # pragma: no cover
    main()
