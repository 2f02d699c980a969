"""
Custom exceptions for the music bot.

Every failure that can reach a user is one of three families:
resolution (turning a link into a stream), pipeline (decoding and
sending audio) and command (parsing and validating chat input).
"""

from enum import Enum


class ResolutionErrorKind(Enum):
    UNAVAILABLE = "unavailable"
    BAD_METADATA = "bad_metadata"
    TIMEOUT = "timeout"


class PipelineErrorKind(Enum):
    OPEN_FAILED = "open_failed"
    STALLED = "stalled"
    DECODE_FAILED = "decode_failed"
    SINK_FAILED = "sink_failed"


class CommandErrorKind(Enum):
    UNRECOGNIZED = "unrecognized"
    MISSING_ARGUMENT = "missing_argument"
    INVALID_ARGUMENT = "invalid_argument"


class MusicBotException(Exception):
    """
    Base exception for all music bot errors.

    Attributes:
        message (str): Detailed error message
        code (int): Optional error code
    """
    def __init__(self, message: str, code: int = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ResolutionError(MusicBotException):
    """
    Raised when a link cannot be turned into a playable track.

    Examples:
        >>> raise ResolutionError(ResolutionErrorKind.TIMEOUT, "lookup took too long")
    """
    def __init__(self, kind: ResolutionErrorKind, message: str, code: int = None):
        self.kind = kind
        super().__init__(message, code)


class PipelineError(MusicBotException):
    """
    Raised when the audio pipeline of a track fails.

    Examples:
        >>> raise PipelineError(PipelineErrorKind.STALLED, "no audio for 10s")
    """
    def __init__(self, kind: PipelineErrorKind, message: str, code: int = None):
        self.kind = kind
        super().__init__(message, code)


class CommandError(MusicBotException):
    """
    Raised when chat input names a command but its argument is missing or invalid.

    Examples:
        >>> raise CommandError(CommandErrorKind.INVALID_ARGUMENT, "Volume must be between 0 and 100")
    """
    def __init__(self, kind: CommandErrorKind, message: str, command: str = None, code: int = None):
        self.kind = kind
        self.command = command
        super().__init__(message, code)
