"""Frame producer loop.

Bridges "latest known frame" into the viewer slots at a controlled
cadence. The capture collaborator may deliver frames faster or slower than
the configured rate; the producer samples whatever is current once per
cycle and publishes it with drop-oldest semantics.

The rate is re-read from ``RelaySettings`` at the start of every cycle, so
``/setFPS`` takes effect on the next cycle without restarting the task.
"""

from __future__ import annotations

import asyncio

from camrelay.observability import get_logger
from camrelay.relay.broadcast import FrameBroadcaster
from camrelay.relay.holder import MediaState
from camrelay.relay.settings import RelaySettings

logger = get_logger(__name__)


class FrameProducer:
    """Single periodic task sampling ``MediaState`` into a broadcaster.

    At most one loop task exists per producer: ``start()`` is a no-op while
    a task is running.

    Example:
        producer = FrameProducer(media, settings, broadcaster)
        producer.start()          # inside the serving event loop
        ...
        await producer.stop()
    """

    def __init__(
        self,
        media: MediaState,
        settings: RelaySettings,
        broadcaster: FrameBroadcaster,
    ) -> None:
        self._media = media
        self._settings = settings
        self._broadcaster = broadcaster
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._cycles = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        """Completed producer cycles, with or without a frame."""
        return self._cycles

    def start(self) -> asyncio.Task[None]:
        """Launch the loop on the running event loop.

        Returns:
            The loop task (the existing one if already running).
        """
        if self._task is not None and not self._task.done():
            return self._task

        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self.run(self._stop_event), name="camrelay-frame-producer"
        )
        return self._task

    async def stop(self) -> None:
        """Ask the loop to exit and wait for it.

        The interval wait wakes immediately. Safe to call when not running.
        """
        task, self._task = self._task, None
        if task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=1.0)
        except TimeoutError:
            task.cancel()
            logger.warning("Frame producer did not stop in time, cancelled")

    def publish_latest(self) -> bool:
        """Run one sampling step without waiting.

        Returns:
            True if a frame was available and published.
        """
        frame = self._media.get_frame()
        if frame is None:
            return False
        self._broadcaster.publish(frame)
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Producer loop body; returns when ``stop_event`` is set."""
        frame_rate = self._settings.frame_rate_hz
        logger.info("Frame producer started", fps=frame_rate)

        try:
            while not stop_event.is_set():
                current_rate = self._settings.frame_rate_hz
                if current_rate != frame_rate:
                    logger.info(
                        "Frame rate changed", old_fps=frame_rate, new_fps=current_rate
                    )
                    frame_rate = current_rate

                try:
                    self.publish_latest()
                except Exception:
                    logger.exception("Frame producer cycle failed")
                self._cycles += 1

                try:
                    await asyncio.wait_for(
                        stop_event.wait(), timeout=self._settings.frame_interval_s
                    )
                except TimeoutError:
                    pass
        finally:
            logger.info("Frame producer stopped", cycles=self._cycles)
