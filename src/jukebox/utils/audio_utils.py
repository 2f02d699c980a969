from typing import Optional
import math

import numpy as np

from jukebox.utils.constants import MAX_VOLUME


class AudioUtils:
    """Utility class for audio-related operations."""

    @staticmethod
    def format_duration(seconds: Optional[float]) -> str:
        """
        Format duration in seconds to a human-readable string.

        Args:
            seconds: Duration in seconds

        Returns:
            str: Formatted duration string (e.g., "3:45" or "1:23:45")
        """
        if seconds is None:
            return "LIVE"

        seconds = int(seconds)
        hours = math.floor(seconds / 3600)
        minutes = math.floor((seconds % 3600) / 60)
        seconds = seconds % 60

        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        else:
            return f"{minutes}:{seconds:02d}"

    @staticmethod
    def format_progress(current: float, total: Optional[float], width: int = 20) -> str:
        """
        Create a progress bar string.

        Args:
            current: Current position in seconds
            total: Total duration in seconds
            width: Width of the progress bar

        Returns:
            str: Progress bar string
        """
        if total is None:
            return f"[{'=' * width}] {AudioUtils.format_duration(current)} LIVE"

        progress = min(current / total if total > 0 else 0, 1)
        filled = math.floor(width * progress)
        empty = width - filled

        bar = '=' * filled + '>' + '-' * max(empty - 1, 0)
        current_str = AudioUtils.format_duration(current)
        total_str = AudioUtils.format_duration(total)

        return f"[{bar}] {current_str}/{total_str}"

    @staticmethod
    def scale_volume(frame: bytes, volume: int) -> bytes:
        """
        Scale a s16le PCM frame linearly by volume/100.

        Args:
            frame: Raw PCM bytes
            volume: Volume level (0 to 100)

        Returns:
            bytes: Scaled PCM bytes of the same length
        """
        if volume >= MAX_VOLUME:
            return frame
        if volume <= 0:
            return bytes(len(frame))

        samples = np.frombuffer(frame, dtype='<i2')
        scaled = samples.astype(np.float32) * (volume / MAX_VOLUME)
        return scaled.astype('<i2').tobytes()
