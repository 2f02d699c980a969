"""
Media resolution: turns a user-submitted link into a playable stream.
All yt-dlp operations run on a small thread pool with a hard deadline.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import async_timeout
import yt_dlp

from jukebox.core.interfaces import Requester, Track
from jukebox.utils.constants import RESOLVE_TIMEOUT, YTDL_OPTIONS
from jukebox.utils.exceptions import ResolutionError, ResolutionErrorKind
from jukebox.utils.url_utils import URLUtils

logger = logging.getLogger(__name__)


class MediaResolver:
    """
    Wraps yt-dlp. One extraction per call, never retried here.

    A lookup that outlives its deadline is abandoned: the worker thread
    finishes in the background and its result is thrown away.
    """

    def __init__(self, ytdl_options: Dict = None, timeout: float = RESOLVE_TIMEOUT, max_workers: int = 2):
        self.ytdl_options = {**YTDL_OPTIONS, **(ytdl_options or {})}
        self.timeout = timeout
        self.thread_pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='resolver')

    async def resolve(self, url: str, requester: Optional[Requester] = None) -> Track:
        """
        Resolve a link to a Track.

        Args:
            url: Link as submitted by the user
            requester: Who asked for it

        Returns:
            Track: Stream locator and metadata

        Raises:
            ResolutionError: UNAVAILABLE, BAD_METADATA or TIMEOUT
        """
        if not URLUtils.is_url(url):
            raise ResolutionError(ResolutionErrorKind.UNAVAILABLE, f"Not a valid URL: {url}")

        logger.info(f"Extracting info for URL: {url}")
        loop = asyncio.get_running_loop()
        try:
            async with async_timeout.timeout(self.timeout):
                info = await loop.run_in_executor(self.thread_pool, self._extract_info, url)
        except asyncio.TimeoutError:
            logger.warning(f"Extraction timed out after {self.timeout}s: {url}")
            raise ResolutionError(ResolutionErrorKind.TIMEOUT, f"Lookup timed out after {self.timeout:g}s")
        except yt_dlp.utils.YoutubeDLError as e:
            logger.warning(f"Extraction failed for {url}: {e}")
            raise ResolutionError(ResolutionErrorKind.UNAVAILABLE, str(e))

        track = self._build_track(url, info, requester)
        logger.info(f"Successfully extracted info for: {track.title}")
        return track

    def _extract_info(self, url: str) -> Optional[Dict[str, Any]]:
        """Run yt-dlp (in a worker thread)"""
        with yt_dlp.YoutubeDL(self.ytdl_options) as ydl:
            return ydl.extract_info(url, download=False)

    def _build_track(self, url: str, info: Optional[Dict[str, Any]], requester: Optional[Requester]) -> Track:
        if not info:
            raise ResolutionError(ResolutionErrorKind.UNAVAILABLE, f"Could not extract info for URL: {url}")
        if not isinstance(info, dict):
            raise ResolutionError(ResolutionErrorKind.BAD_METADATA, "Unexpected extractor output")

        # Search results and playlists: take the first playable entry
        if 'entries' in info:
            entries = [e for e in (info.get('entries') or []) if e]
            if not entries:
                raise ResolutionError(ResolutionErrorKind.UNAVAILABLE, f"No playable entry for URL: {url}")
            info = entries[0]

        stream_url = info.get('url') or self._best_audio_url(info.get('formats') or [])
        if not stream_url:
            raise ResolutionError(ResolutionErrorKind.BAD_METADATA, "No stream URL in media info")

        title = info.get('title')
        if not title or not isinstance(title, str):
            raise ResolutionError(ResolutionErrorKind.BAD_METADATA, "No title in media info")

        duration = None
        if not info.get('is_live'):
            raw_duration = info.get('duration')
            if raw_duration is not None:
                try:
                    duration = int(float(raw_duration))
                except (TypeError, ValueError):
                    raise ResolutionError(ResolutionErrorKind.BAD_METADATA, f"Bad duration: {raw_duration!r}")

        return Track(
            url=url,
            stream_url=stream_url,
            title=title,
            duration=duration,
            requester=requester,
            channel=info.get('channel') or info.get('uploader'),
            webpage_url=info.get('webpage_url') or url,
        )

    @staticmethod
    def _best_audio_url(formats) -> Optional[str]:
        """Pick the audio-only format with the highest bitrate"""
        audio_formats = [
            f for f in formats
            if f.get('url') and f.get('acodec') not in (None, 'none') and f.get('vcodec') in (None, 'none')
        ]
        if not audio_formats:
            return None
        best_audio = max(audio_formats, key=lambda f: f.get('abr', 0) or 0)
        return best_audio.get('url')

    def close(self):
        """Stop accepting lookups; abandoned ones finish in the background."""
        self.thread_pool.shutdown(wait=False, cancel_futures=True)
