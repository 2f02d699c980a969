"""
Playback queue: tracks waiting to become current.
Lightweight implementation without persistence or caching.
"""

import logging
from collections import deque
from typing import List, Optional

from jukebox.core.interfaces import Track

logger = logging.getLogger(__name__)


class PlaybackQueue:
    """
    Ordered tracks waiting to be played.

    FIFO for enqueue, with enqueue_next putting a track in front of
    everything already waiting. The currently playing track is never
    stored here. There is no locking: the controller is the only caller.
    """

    def __init__(self):
        self._queue: deque = deque()

    def enqueue(self, track: Track) -> int:
        """
        Add a track to the end of the queue.

        Returns:
            int: 1-based position of the track
        """
        self._queue.append(track)
        logger.info(f"[QUEUE] Added: {track.title} | Queue size now: {len(self._queue)}")
        return len(self._queue)

    def enqueue_next(self, track: Track) -> int:
        """
        Add a track to the front of the queue so it plays next.

        Returns:
            int: 1-based position of the track (always 1)
        """
        self._queue.appendleft(track)
        logger.info(f"[QUEUE] Added next: {track.title} | Queue size now: {len(self._queue)}")
        return 1

    def pop_front(self) -> Optional[Track]:
        """
        Get the next track from the queue.

        Returns:
            Optional[Track]: Next track or None if queue is empty
        """
        if not self._queue:
            return None
        track = self._queue.popleft()
        logger.info(f"[QUEUE] Popped: {track.title} | Queue size now: {len(self._queue)}")
        return track

    def clear(self) -> int:
        """Drop every waiting track and return how many were dropped."""
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            logger.info(f"[QUEUE] Cleared {dropped} track(s)")
        return dropped

    def peek_all(self) -> List[Track]:
        """Get a copy of the queue in play order."""
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)
