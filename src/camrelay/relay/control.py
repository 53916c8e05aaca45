"""Control endpoint logic: parse, range-check, delegate.

Each function takes the raw query string value exactly as received (None
when the parameter is absent) and returns a ``ControlOutcome`` the HTTP
layer turns into a plain-text response. Validation failures never reach
the collaborator and never change settings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from camrelay.drivers.types import CaptureControl
from camrelay.errors import SettingError
from camrelay.observability import get_logger
from camrelay.relay.settings import RelaySettings, validate_zoom_level

logger = get_logger(__name__)

ZOOM_PARAM = "zoomLevel"
FPS_PARAM = "fps"

# ASCII digits only; int() alone also takes "1_5" and other Unicode digits
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class ControlOutcome:
    """Result of a control request.

    Attributes:
        ok: True if the change was applied.
        status_code: HTTP status to answer with.
        message: Plain-text response body.
    """

    ok: bool
    status_code: int
    message: str

    @classmethod
    def applied(cls, message: str) -> ControlOutcome:
        return cls(ok=True, status_code=200, message=message)

    @classmethod
    def invalid(cls, message: str) -> ControlOutcome:
        return cls(ok=False, status_code=400, message=message)

    @classmethod
    def unavailable(cls, message: str) -> ControlOutcome:
        return cls(ok=False, status_code=503, message=message)


def apply_zoom(
    raw: str | None,
    capture: CaptureControl | None,
    settings: RelaySettings | None = None,
) -> ControlOutcome:
    """Validate a zoom request and forward it to the capture collaborator.

    Args:
        raw: Query value of ``zoomLevel``, None if missing.
        capture: Capture collaborator, None if none is attached.
        settings: Where the accepted level is recorded, if given.

    Returns:
        200 when the collaborator applied the level; 400 for a missing,
        non-numeric or out-of-range value; 503 when no collaborator is
        attached or it reports failure.

    Example:
        >>> apply_zoom("0.5", camera).status_code
        200
        >>> apply_zoom("1.5", camera).status_code
        400
    """
    if raw is None or raw.strip() == "":
        return ControlOutcome.invalid(f"Missing {ZOOM_PARAM} parameter")

    try:
        level = float(raw)
    except ValueError:
        logger.info("Rejected zoom request", reason="not_a_number", raw=raw)
        return ControlOutcome.invalid(f"Invalid {ZOOM_PARAM}: must be a number")

    try:
        level = validate_zoom_level(level)
    except SettingError as e:
        logger.info("Rejected zoom request", reason="out_of_range", raw=raw)
        return ControlOutcome.invalid(str(e))

    if capture is None:
        logger.warning("Zoom requested with no capture source attached")
        return ControlOutcome.unavailable("Capture source not available")

    try:
        result = capture.set_zoom(level)
    except Exception as e:
        logger.exception("Capture source failed to set zoom", zoom_level=level)
        return ControlOutcome.unavailable(f"Failed to set zoom: {e}")

    if not result.ok:
        logger.warning(
            "Capture source refused zoom", zoom_level=level, detail=result.message
        )
        return ControlOutcome.unavailable(f"Failed to set zoom: {result.message}")

    if settings is not None:
        settings.set_zoom_level(level)
    logger.info("Zoom level set", zoom_level=level)
    return ControlOutcome.applied(f"Zoom level set to {level}")


def apply_frame_rate(raw: str | None, settings: RelaySettings) -> ControlOutcome:
    """Validate an fps request and update the relay frame rate.

    Args:
        raw: Query value of ``fps``, None if missing.
        settings: Live settings read by the producer loop.

    Returns:
        200 with the new rate, or 400 for a missing, non-integer or
        out-of-range value (settings unchanged).
    """
    if raw is None or raw.strip() == "":
        return ControlOutcome.invalid(f"Missing {FPS_PARAM} parameter")

    if not _INTEGER_RE.fullmatch(raw.strip()):
        logger.info("Rejected fps request", reason="not_an_integer", raw=raw)
        return ControlOutcome.invalid(f"Invalid {FPS_PARAM}: must be an integer")
    fps = int(raw)

    try:
        previous = settings.set_frame_rate(fps)
    except SettingError as e:
        logger.info("Rejected fps request", reason="out_of_range", raw=raw)
        return ControlOutcome.invalid(str(e))

    logger.info("Frame rate set", old_fps=previous, new_fps=fps)
    return ControlOutcome.applied(f"Frame rate set to {fps} fps")
