"""
FFmpeg frame source.

Decodes a stream locator into fixed-size s16le PCM frames through an
ffmpeg subprocess. The subprocess is owned by the source: it is spawned
by open() and always reaped by close(), escalating from SIGTERM to
SIGKILL when ffmpeg doesn't exit within the grace period.
"""

import asyncio
import logging
from typing import List, Optional

import async_timeout

from jukebox.utils.constants import (
    FFMPEG_BEFORE_OPTIONS,
    FFMPEG_OPTIONS,
    FRAME_SIZE,
    OPEN_TIMEOUT,
    STALL_TIMEOUT,
    TERMINATE_GRACE_PERIOD,
)
from jukebox.utils.exceptions import PipelineError, PipelineErrorKind

logger = logging.getLogger(__name__)


class FFmpegFrameSource:
    """
    One-shot PCM frame stream for a single track.

    read_frame() returns a full frame, or None once the stream is
    exhausted, and raises PipelineError on failure. A source is not
    restartable; replaying a track needs a new instance.
    """

    def __init__(
        self,
        stream_url: str,
        executable: str = 'ffmpeg',
        before_options: List[str] = None,
        options: List[str] = None,
        frame_size: int = FRAME_SIZE,
        open_timeout: float = OPEN_TIMEOUT,
        stall_timeout: float = STALL_TIMEOUT,
        grace_period: float = TERMINATE_GRACE_PERIOD,
    ):
        self.stream_url = stream_url
        self.executable = executable
        self.before_options = list(FFMPEG_BEFORE_OPTIONS if before_options is None else before_options)
        self.options = list(FFMPEG_OPTIONS if options is None else options)
        self.frame_size = frame_size
        self.open_timeout = open_timeout
        self.stall_timeout = stall_timeout
        self.grace_period = grace_period

        self._process: Optional[asyncio.subprocess.Process] = None
        self._frames_read = 0
        self._exhausted = False
        self._closed = False

    @property
    def frames_read(self) -> int:
        return self._frames_read

    @property
    def is_open(self) -> bool:
        return self._process is not None and not self._closed

    def _build_args(self) -> List[str]:
        return [*self.before_options, '-i', self.stream_url, *self.options, 'pipe:1']

    async def open(self) -> 'FFmpegFrameSource':
        """
        Spawn the decoder.

        Raises:
            PipelineError: OPEN_FAILED if ffmpeg can't be started or the source was already used
        """
        if self._process is not None or self._closed:
            raise PipelineError(PipelineErrorKind.OPEN_FAILED, "Frame source already used")

        try:
            self._process = await asyncio.create_subprocess_exec(
                self.executable,
                *self._build_args(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PipelineError(PipelineErrorKind.OPEN_FAILED, f"Could not start {self.executable}: {e}")

        logger.debug(f"Spawned {self.executable} (pid {self._process.pid})")
        return self

    async def read_frame(self) -> Optional[bytes]:
        """
        Read the next frame.

        Returns:
            Optional[bytes]: One frame of exactly frame_size bytes, or None when exhausted

        Raises:
            PipelineError: STALLED if no audio arrives in time, DECODE_FAILED if
                ffmpeg exits with an error before producing any audio
        """
        if self._exhausted or self._closed:
            return None
        if self._process is None:
            raise PipelineError(PipelineErrorKind.OPEN_FAILED, "Frame source is not open")

        timeout = self.open_timeout if self._frames_read == 0 else self.stall_timeout
        try:
            async with async_timeout.timeout(timeout):
                data = await self._process.stdout.readexactly(self.frame_size)
        except asyncio.IncompleteReadError as e:
            self._exhausted = True
            if e.partial:
                # Pad the tail so the transport always gets full frames
                self._frames_read += 1
                return e.partial + bytes(self.frame_size - len(e.partial))
            await self._check_exit()
            return None
        except asyncio.TimeoutError:
            raise PipelineError(PipelineErrorKind.STALLED, f"No audio received for {timeout:g}s")

        self._frames_read += 1
        return data

    async def _check_exit(self):
        """Turn an early non-zero exit into DECODE_FAILED."""
        process = self._process
        try:
            async with async_timeout.timeout(self.grace_period):
                returncode = await process.wait()
        except asyncio.TimeoutError:
            # stdout closed but still running; close() will reap it
            return

        if returncode == 0:
            logger.debug(f"{self.executable} finished after {self._frames_read} frames")
            return

        if self._frames_read == 0:
            stderr = b''
            if process.stderr is not None:
                try:
                    async with async_timeout.timeout(1):
                        stderr = await process.stderr.read()
                except asyncio.TimeoutError:
                    pass
            detail = stderr.decode(errors='replace').strip()[:200]
            raise PipelineError(
                PipelineErrorKind.DECODE_FAILED,
                f"{self.executable} exited with status {returncode}" + (f": {detail}" if detail else ""),
            )
        logger.warning(f"{self.executable} exited with status {returncode} after {self._frames_read} frames")

    async def close(self):
        """
        Stop the decoder. Safe to call more than once.

        Sends SIGTERM, waits for the grace period, then SIGKILLs.
        """
        if self._closed:
            return
        self._closed = True

        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            async with async_timeout.timeout(self.grace_period):
                await process.wait()
            logger.debug(f"{self.executable} (pid {process.pid}) terminated")
        except asyncio.TimeoutError:
            logger.warning(f"{self.executable} (pid {process.pid}) ignored SIGTERM, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        frame = await self.read_frame()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def __aenter__(self):
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
