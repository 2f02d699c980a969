"""
Core playback pipeline.
Feeds frames from one frame source to the voice transport at real-time pace.

Two tasks run per track: a reader that decodes ahead into a bounded
buffer, and a deliverer that sends one frame per frame duration against
the event loop's monotonic clock. The pipeline never touches queue or
player state; it reports its end through the on_finished callback.
"""

import asyncio
import logging
from typing import Callable, Optional

from jukebox.utils.audio_utils import AudioUtils
from jukebox.utils.constants import FRAME_DURATION, MAX_CLOCK_DRIFT, MAX_SEND_FAILURES, READ_AHEAD_FRAMES
from jukebox.utils.exceptions import PipelineError, PipelineErrorKind

logger = logging.getLogger(__name__)

_END = object()


class PlaybackPipeline:
    def __init__(
        self,
        source,
        send_frame: Callable[[bytes], None],
        volume: Callable[[], int],
        on_finished: Callable[[Optional[PipelineError]], None],
        frame_duration: float = FRAME_DURATION,
        read_ahead: int = READ_AHEAD_FRAMES,
        max_send_failures: int = MAX_SEND_FAILURES,
    ):
        """
        Args:
            source: Opened frame source (read_frame() / close())
            send_frame: Transport primitive taking one PCM frame
            volume: Returns the volume (0-100) to apply to the next frame
            on_finished: Called once with None (exhausted) or the PipelineError
            frame_duration: Seconds of audio per frame
            read_ahead: Max frames decoded ahead of delivery
            max_send_failures: Consecutive send failures that end the track
        """
        self.source = source
        self.send_frame = send_frame
        self.volume = volume
        self.on_finished = on_finished
        self.frame_duration = frame_duration
        self.max_send_failures = max_send_failures

        self._buffer: asyncio.Queue = asyncio.Queue(maxsize=read_ahead)
        self._running = asyncio.Event()
        self._running.set()
        self._deadline: Optional[float] = None
        self._frames_sent = 0
        self._send_failures = 0
        self._reader_task: Optional[asyncio.Task] = None
        self._deliver_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    @property
    def position(self) -> float:
        """Seconds of audio delivered so far"""
        return self._frames_sent * self.frame_duration

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    def start(self):
        self._reader_task = asyncio.create_task(self._read())
        self._deliver_task = asyncio.create_task(self._deliver())

    def pause(self):
        """Stop delivering; the source and buffered frames are kept."""
        self._running.clear()

    def resume(self):
        self._deadline = None
        self._running.set()

    async def close(self):
        """Cancel both tasks and close the source."""
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._reader_task, self._deliver_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.source.close()

    async def _read(self):
        try:
            while True:
                frame = await self.source.read_frame()
                if frame is None:
                    await self._buffer.put(_END)
                    return
                await self._buffer.put(frame)
        except PipelineError as e:
            await self._buffer.put(e)
        except Exception as e:
            logger.warning(f"Frame source failed: {e!r}")
            await self._buffer.put(PipelineError(PipelineErrorKind.DECODE_FAILED, f"Could not read audio: {e}"))

    async def _deliver(self):
        error = None
        try:
            while True:
                await self._running.wait()
                item = await self._buffer.get()
                if item is _END:
                    break
                if isinstance(item, PipelineError):
                    error = item
                    break

                await self._wait_for_slot()
                if not self._running.is_set():
                    # Paused while waiting: hold this frame until resumed
                    await self._running.wait()
                    await self._wait_for_slot()
                self._send(item)
        except PipelineError as e:
            error = e

        if error is not None:
            logger.warning(f"Pipeline ended after {self._frames_sent} frames: {error}")
        else:
            logger.debug(f"Pipeline exhausted after {self._frames_sent} frames")
        self.on_finished(error)

    async def _wait_for_slot(self):
        """Sleep until the next frame is due on the steady clock."""
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._deadline is None:
            self._deadline = now
        else:
            self._deadline += self.frame_duration
            if now - self._deadline > MAX_CLOCK_DRIFT:
                # Fell far behind: re-anchor rather than burst to catch up
                logger.debug(f"Delivery clock re-anchored ({now - self._deadline:.3f}s behind)")
                self._deadline = now
        await asyncio.sleep(max(self._deadline - now, 0))

    def _send(self, frame: bytes):
        try:
            self.send_frame(AudioUtils.scale_volume(frame, self.volume()))
        except Exception as e:
            self._send_failures += 1
            logger.warning(f"send_frame failed ({self._send_failures}/{self.max_send_failures}): {e}")
            if self._send_failures >= self.max_send_failures:
                raise PipelineError(PipelineErrorKind.SINK_FAILED, f"Could not send audio: {e}")
            return
        self._send_failures = 0
        self._frames_sent += 1
