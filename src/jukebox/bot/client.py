import asyncio
import logging
from typing import Optional

import discord

from jukebox.audio.frame_source import FFmpegFrameSource
from jukebox.core.controller import MusicController
from jukebox.core.interfaces import Requester, Track
from jukebox.core.message_handler import CommandDispatcher
from jukebox.core.resolver import MediaResolver
from jukebox.utils.config import BotConfig
from jukebox.utils.exceptions import PipelineError, PipelineErrorKind

logger = logging.getLogger(__name__)


class MusicBot(discord.Client):
    """
    Discord transport for the music controller.

    Joins one voice channel at startup, reads commands from text
    channels, and sends PCM frames to the voice connection.

    Attributes:
        config (BotConfig): Startup configuration
        controller (MusicController): Owner of all playback state
        dispatcher (CommandDispatcher): Parses chat lines and formats replies
    """

    def __init__(self, config: BotConfig, ffmpeg_path: str = None):
        # Configure Discord intents
        intents = discord.Intents.default()
        intents.message_content = True  # MESSAGE CONTENT INTENT
        intents.voice_states = True
        super().__init__(intents=intents)

        self.config = config
        self.ffmpeg_path = ffmpeg_path or config.ffmpeg_path
        self.voice_client: Optional[discord.VoiceClient] = None

        self.resolver = MediaResolver(timeout=config.resolve_timeout)
        self.controller = MusicController(
            self.resolver,
            self.make_source,
            self.send_frame,
            default_volume=config.default_volume,
            on_shutdown=self._on_quit,
        )
        self.dispatcher = CommandDispatcher(self.controller, self.reply, prefix=config.command_prefix)

        self._last_channel_id: Optional[int] = None
        self._closing = False
        self._close_task: Optional[asyncio.Task] = None

    def make_source(self, track: Track) -> FFmpegFrameSource:
        return FFmpegFrameSource(track.stream_url, executable=self.ffmpeg_path)

    async def setup_hook(self):
        """Start the control loop before the gateway connects"""
        await self.controller.start()

    async def on_ready(self):
        """Called when the bot is ready and connected"""
        logger.info(f"Bot connected as {self.user}")
        logger.info(f"Bot ID: {self.user.id}")

        if self.voice_client is None or not self.voice_client.is_connected():
            try:
                await self.join_voice()
            except (discord.DiscordException, ValueError, asyncio.TimeoutError) as e:
                logger.error(f"Could not join voice channel {self.config.host}: {e}")
                await self.close()
                return
        logger.info("Bot ready to receive commands!")

    async def join_voice(self):
        """Connect to the configured voice channel and get ready to send audio."""
        channel_id = int(self.config.host)
        channel = self.get_channel(channel_id) or await self.fetch_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel):
            raise ValueError(f"Channel {channel_id} is not a voice channel")

        self.voice_client = await channel.connect(self_deaf=True)
        logger.info(f"Joined voice channel: {channel.name}")

        if not self.voice_client.encoder:
            self.voice_client.encoder = discord.opus.Encoder()
        await self.voice_client.ws.speak(discord.SpeakingState.voice)

        me = channel.guild.me
        if self.config.bot_display_name and me.display_name != self.config.bot_display_name:
            try:
                await me.edit(nick=self.config.bot_display_name)
            except discord.Forbidden:
                logger.warning("Missing permission to change nickname")

    def send_frame(self, frame: bytes):
        """Encode one PCM frame to Opus and send it to the voice channel."""
        voice_client = self.voice_client
        if voice_client is None or not voice_client.is_connected():
            raise PipelineError(PipelineErrorKind.SINK_FAILED, "Not connected to voice")
        voice_client.send_audio_packet(frame, encode=True)

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return

        requester = Requester(
            id=message.author.id,
            name=message.author.display_name,
            channel_id=message.channel.id,
        )
        command = await self.dispatcher.handle(message.content, requester)
        if command is not None:
            self._last_channel_id = message.channel.id

    async def reply(self, requester: Optional[Requester], text: str):
        """
        Send text to the requester's channel, or broadcast it.

        Broadcasts go to the configured text channel, falling back to the
        channel the last command came from.
        """
        if requester is not None and requester.channel_id is not None:
            channel = self.get_channel(requester.channel_id)
            text = f"<@{requester.id}> {text}"
        else:
            channel_id = self.config.text_channel_id or self._last_channel_id
            channel = self.get_channel(channel_id) if channel_id else None

        if channel is None:
            logger.info(f"No channel to send to: {text}")
            return
        await channel.send(text, allowed_mentions=discord.AllowedMentions(users=True))

    async def on_voice_state_update(self, member, before, after):
        """Shut down if the bot is removed from its voice channel."""
        if self.user is None or member.id != self.user.id or self._closing:
            return
        if before.channel is not None and after.channel is None:
            logger.error("Disconnected from voice channel, shutting down")
            await self.close()

    def _on_quit(self):
        # An outside close() is already shutting down and sends the goodbye itself
        if self._closing:
            return
        if self._close_task is None:
            self._close_task = asyncio.create_task(self.close())

    async def close(self):
        """Stop playback, say goodbye, then disconnect."""
        if not self._closing:
            self._closing = True
            logger.info("Shutting down bot")
            await self.controller.close()
            await self.dispatcher.flush()
            if self.voice_client is not None and self.voice_client.is_connected():
                await self.voice_client.disconnect(force=True)
            self.resolver.close()
        await super().close()
