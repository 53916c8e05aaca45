"""Observability module for camrelay.

Provides structured logging and relay statistics.

Example:
    from camrelay.observability import get_logger, LogContext

    logger = get_logger(__name__)
    logger.info("Relay started", port=8080)

    with LogContext(endpoint="/setFPS"):
        logger.info("Frame rate set", new_fps=15)

Statistics Example:
    from camrelay.observability import RelayStats

    stats = RelayStats()
    stats.record_publish(subscribers=2)
    print(stats.get_summary().to_dict())
"""

from camrelay.observability.logging import (
    JSONFormatter,
    LogContext,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from camrelay.observability.stats import (
    RelayStats,
    RelayStatsSummary,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "RelayStats",
    "RelayStatsSummary",
]
