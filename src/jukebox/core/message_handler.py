"""
Chat side of the bot: parses command lines into Commands and turns
controller notices back into reply text.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from jukebox.core.interfaces import Command, CommandType, Notice, PlayerEvent, Requester
from jukebox.utils.audio_utils import AudioUtils
from jukebox.utils.constants import (
    COMMAND_ALIASES,
    HELP_LINES,
    MAX_VOLUME,
    MESSAGES,
    MIN_VOLUME,
    PIPELINE_REASONS,
    PLAY_NEXT_VERBS,
    RESOLUTION_REASONS,
)
from jukebox.utils.exceptions import CommandError, CommandErrorKind, PipelineError, ResolutionError
from jukebox.utils.url_utils import URLUtils

logger = logging.getLogger(__name__)

VERBS = {alias: name for name, aliases in COMMAND_ALIASES.items() for alias in aliases}

USAGE = {
    CommandType.PLAY: "play <link>",
    CommandType.PLAY_NEXT: "next <link>",
}


def parse_command(text: str, requester: Optional[Requester] = None, prefix: str = '!') -> Optional[Command]:
    """
    Parse one chat line.

    Args:
        text: Raw message text
        requester: Who sent it
        prefix: Character(s) every command starts with

    Returns:
        Optional[Command]: The command, or None if the line isn't a command

    Raises:
        CommandError: The verb is known but its argument is missing or invalid
    """
    # The prefix may use characters that sanitizing would drop
    line = URLUtils.strip_markup(text or '').strip()
    if not line.startswith(prefix):
        return None

    parts = URLUtils.sanitize(line[len(prefix):]).split(maxsplit=1)
    if not parts:
        return None
    verb = parts[0].lower()
    argument = parts[1].strip() if len(parts) > 1 else ''

    name = VERBS.get(verb)
    if name is None:
        return None
    if verb in PLAY_NEXT_VERBS and argument:
        name = 'playnext'
    command_type = CommandType(name)

    if command_type in (CommandType.PLAY, CommandType.PLAY_NEXT):
        if not argument:
            raise CommandError(
                CommandErrorKind.MISSING_ARGUMENT,
                MESSAGES['MISSING_ARGUMENT'].format(command=verb, usage=prefix + USAGE[command_type]),
                command=verb,
            )
        url = argument.split()[0]
        if not URLUtils.is_url(url):
            raise CommandError(CommandErrorKind.INVALID_ARGUMENT, f"Not a valid link: {url}", command=verb)
        return Command(command_type, requester, url=url)

    if command_type is CommandType.VOLUME:
        if not argument:
            return Command(command_type, requester)
        try:
            volume = int(argument.split()[0])
        except ValueError:
            raise CommandError(
                CommandErrorKind.INVALID_ARGUMENT,
                f"Volume must be a whole number between {MIN_VOLUME} and {MAX_VOLUME}",
                command=verb,
            )
        if not MIN_VOLUME <= volume <= MAX_VOLUME:
            raise CommandError(
                CommandErrorKind.INVALID_ARGUMENT,
                f"Volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {volume}",
                command=verb,
            )
        return Command(command_type, requester, volume=volume)

    return Command(command_type, requester)


class CommandDispatcher:
    """
    Connects a chat transport to the controller.

    reply(requester, text) sends text to a user, or broadcasts it when
    requester is None.
    """

    def __init__(self, controller, reply: Callable[[Optional[Requester], str], Awaitable[None]], prefix: str = '!'):
        self.controller = controller
        self.reply = reply
        self.prefix = prefix
        self._reply_tasks = set()

        self._formatters = {
            PlayerEvent.TRACK_STARTED: self._format_started,
            PlayerEvent.TRACK_QUEUED: lambda n: MESSAGES['SONG_ADDED'].format(
                title=n.track.title, position=n.data['position']),
            PlayerEvent.TRACK_SKIPPED: lambda n: MESSAGES['SKIPPED'].format(title=n.track.title),
            PlayerEvent.LOADING_CANCELLED: lambda n: MESSAGES['SKIPPED_LOADING'].format(url=n.data['url']),
            PlayerEvent.PAUSED: lambda n: MESSAGES['PAUSED'],
            PlayerEvent.RESUMED: lambda n: MESSAGES['RESUMED'],
            PlayerEvent.STOPPED: lambda n: MESSAGES['STOPPED'],
            PlayerEvent.NOTHING_PLAYING: lambda n: MESSAGES['NOTHING_PLAYING'],
            PlayerEvent.NOT_PAUSED: lambda n: MESSAGES['NOT_PAUSED'],
            PlayerEvent.QUEUE_FINISHED: lambda n: MESSAGES['QUEUE_FINISHED'],
            PlayerEvent.VOLUME_SET: lambda n: MESSAGES['VOLUME_SET'].format(volume=n.data['volume']),
            PlayerEvent.VOLUME_REPORTED: lambda n: MESSAGES['VOLUME_CURRENT'].format(volume=n.data['volume']),
            PlayerEvent.INFO: self._format_info,
            PlayerEvent.HELP: lambda n: self.help_text(),
            PlayerEvent.RESOLUTION_FAILED: self._format_resolution_failed,
            PlayerEvent.PLAYBACK_FAILED: self._format_playback_failed,
            PlayerEvent.SHUTDOWN: lambda n: MESSAGES['GOODBYE'],
        }
        controller.add_listener(self.on_notice)

    async def handle(self, text: str, requester: Requester) -> Optional[Command]:
        """
        Handle one incoming chat message.

        Returns:
            Optional[Command]: The command that was submitted, if any
        """
        try:
            command = parse_command(text, requester, self.prefix)
        except CommandError as e:
            logger.info(f"Rejected command from {requester.name}: {e}")
            await self._send(requester, self.format_error(e))
            return None
        if command is None:
            return None

        if command.url:
            logger.info(f"Command {command.type.value}: {command.url} (requested by {requester.name})")
        else:
            logger.info(f"Command {command.type.value} (requested by {requester.name})")

        try:
            await self.controller.submit(command)
        except CommandError as e:
            await self._send(requester, self.format_error(e))
        return command

    def on_notice(self, notice: Notice):
        text = self.format_notice(notice)
        if text is None:
            return
        task = asyncio.create_task(self._send(notice.requester, text))
        self._reply_tasks.add(task)
        task.add_done_callback(self._reply_tasks.discard)

    async def flush(self):
        """Wait for replies that are still being sent."""
        if self._reply_tasks:
            await asyncio.gather(*list(self._reply_tasks), return_exceptions=True)

    async def _send(self, requester: Optional[Requester], text: str):
        try:
            await self.reply(requester, text)
        except Exception as e:
            logger.error(f"Failed to send reply: {e}")

    # Formatting

    def format_notice(self, notice: Notice) -> Optional[str]:
        formatter = self._formatters.get(notice.event)
        if formatter is None:
            logger.debug(f"No text for {notice.event.value}")
            return None
        return formatter(notice)

    @staticmethod
    def format_error(error: CommandError) -> str:
        if error.kind is CommandErrorKind.MISSING_ARGUMENT:
            return error.message
        return MESSAGES['INVALID_ARGUMENT'].format(reason=error.message)

    def help_text(self) -> str:
        lines = ["Commands:"]
        for usage, aliases, description in HELP_LINES:
            entry = self.prefix + usage
            if aliases:
                entry += " (" + ", ".join(self.prefix + a.strip() for a in aliases.split(',')) + ")"
            lines.append(f"{entry} - {description}")
        return "\n".join(lines)

    @staticmethod
    def _format_started(notice: Notice) -> str:
        track = notice.track
        return MESSAGES['NOW_PLAYING'].format(title=track.title, duration=AudioUtils.format_duration(track.duration))

    @staticmethod
    def _format_resolution_failed(notice: Notice) -> str:
        error = notice.error
        reason = error.message
        if isinstance(error, ResolutionError):
            reason = RESOLUTION_REASONS.get(error.kind.value, reason)
        return MESSAGES['RESOLUTION_FAILED'].format(url=notice.data.get('url'), reason=reason)

    @staticmethod
    def _format_playback_failed(notice: Notice) -> str:
        error = notice.error
        reason = error.message
        if isinstance(error, PipelineError):
            reason = PIPELINE_REASONS.get(error.kind.value, reason)
        return MESSAGES['PLAYBACK_FAILED'].format(title=notice.track.title, reason=reason)

    @staticmethod
    def _format_info(notice: Notice) -> str:
        data = notice.data
        track = data.get('track')
        lines = [MESSAGES['INFO_HEADER']]
        if track is None:
            lines.append(MESSAGES['INFO_NOTHING'])
        else:
            lines.append(f"Title: {track.title}")
            if track.channel:
                lines.append(f"Channel: {track.channel}")
            lines.append(f"Link: {track.webpage_url or track.url}")
            progress = AudioUtils.format_progress(data.get('position', 0), track.duration)
            if data.get('paused'):
                progress += " (paused)"
            lines.append(progress)
        lines.append(f"Volume: {data.get('volume')} | Queue: {len(data.get('queue', []))} track(s)")
        return "\n".join(lines)
