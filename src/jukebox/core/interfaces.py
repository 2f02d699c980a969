"""
Interfaces and data structures for inter-component communication
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

from jukebox.utils.exceptions import MusicBotException


class PlayerState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class CommandType(Enum):
    PLAY = "play"
    PLAY_NEXT = "playnext"
    PAUSE = "pause"
    RESUME = "resume"
    SKIP = "skip"
    STOP = "stop"
    VOLUME = "volume"
    INFO = "info"
    HELP = "help"
    QUIT = "quit"


class PlayerEvent(Enum):
    TRACK_STARTED = "track_started"
    TRACK_QUEUED = "track_queued"
    TRACK_SKIPPED = "track_skipped"
    LOADING_CANCELLED = "loading_cancelled"
    PAUSED = "paused"
    RESUMED = "resumed"
    STOPPED = "stopped"
    NOTHING_PLAYING = "nothing_playing"
    NOT_PAUSED = "not_paused"
    QUEUE_FINISHED = "queue_finished"
    VOLUME_SET = "volume_set"
    VOLUME_REPORTED = "volume_reported"
    INFO = "info"
    HELP = "help"
    RESOLUTION_FAILED = "resolution_failed"
    PLAYBACK_FAILED = "playback_failed"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class Requester:
    """Identity of the chat user a command came from."""
    id: int
    name: str
    channel_id: Optional[int] = None


@dataclass(frozen=True)
class Track:
    url: str
    stream_url: str
    title: str
    duration: Optional[int] = None  # None for live streams
    requester: Optional[Requester] = None
    channel: Optional[str] = None
    webpage_url: Optional[str] = None


@dataclass(frozen=True)
class Command:
    type: CommandType
    requester: Optional[Requester] = None
    url: Optional[str] = None
    volume: Optional[int] = None  # None asks for the current volume


@dataclass
class Notice:
    """Something the user should hear about; formatted into text by the dispatcher."""
    event: PlayerEvent
    requester: Optional[Requester] = None  # None means broadcast
    track: Optional[Track] = None
    error: Optional[MusicBotException] = None
    data: Dict[str, Any] = field(default_factory=dict)
