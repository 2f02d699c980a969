"""
Music controller: the single owner of player state.

Every command, resolution result and pipeline end is posted to one inbox
and handled in order by the control loop, so state changes never
interleave. Lookups run as tasks beside the loop and report back through
the inbox; their results are applied in the order the requests arrived.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from jukebox.core.interfaces import Command, CommandType, Notice, PlayerEvent, PlayerState, Requester, Track
from jukebox.core.player import PlaybackPipeline
from jukebox.core.queue_manager import PlaybackQueue
from jukebox.utils.constants import (
    DEFAULT_VOLUME,
    FRAME_DURATION,
    MAX_SEND_FAILURES,
    MAX_VOLUME,
    MIN_VOLUME,
    READ_AHEAD_FRAMES,
)
from jukebox.utils.exceptions import (
    CommandError,
    CommandErrorKind,
    PipelineError,
    PipelineErrorKind,
    ResolutionError,
    ResolutionErrorKind,
)

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass(eq=False)
class PlaybackSession:
    """Token for one pipeline run; ends reported under a cancelled token are ignored."""
    track: Track
    id: int = field(default_factory=lambda: next(_ids))
    cancelled: bool = False

    def cancel(self):
        self.cancelled = True


@dataclass(eq=False)
class PendingResolution:
    url: str
    requester: Optional[Requester]
    play_next: bool = False
    task: Optional[asyncio.Task] = None
    track: Optional[Track] = None
    error: Optional[ResolutionError] = None
    done: bool = False
    cancelled: bool = False

    def cancel(self):
        self.cancelled = True
        if self.task is not None and not self.task.done():
            self.task.cancel()


@dataclass
class _CommandMessage:
    command: Command
    future: asyncio.Future


@dataclass
class _ResolutionDone:
    pending: PendingResolution


@dataclass
class _PipelineEnded:
    session: PlaybackSession
    error: Optional[PipelineError]


class MusicController:
    def __init__(
        self,
        resolver,
        source_factory: Callable[[Track], Any],
        send_frame: Callable[[bytes], None],
        default_volume: int = DEFAULT_VOLUME,
        on_shutdown: Optional[Callable[[], None]] = None,
        frame_duration: float = FRAME_DURATION,
        read_ahead: int = READ_AHEAD_FRAMES,
        max_send_failures: int = MAX_SEND_FAILURES,
    ):
        """
        Args:
            resolver: Object with an async resolve(url, requester) -> Track
            source_factory: Builds an unopened frame source for a track
            send_frame: Transport primitive handed to every pipeline
            default_volume: Volume at startup (0-100)
            on_shutdown: Called once after a quit command has been handled
        """
        self.resolver = resolver
        self.source_factory = source_factory
        self.send_frame = send_frame
        self.on_shutdown = on_shutdown
        self.frame_duration = frame_duration
        self.read_ahead = read_ahead
        self.max_send_failures = max_send_failures

        self.queue = PlaybackQueue()
        self.state = PlayerState.IDLE
        self.current: Optional[Track] = None
        self.volume = default_volume

        self._pipeline: Optional[PlaybackPipeline] = None
        self._session: Optional[PlaybackSession] = None
        self._pending: Deque[PendingResolution] = deque()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._listeners: List[Callable[[Notice], None]] = []
        self._loop_task: Optional[asyncio.Task] = None

        self._command_handlers = {
            CommandType.PLAY: self._handle_play,
            CommandType.PLAY_NEXT: self._handle_play_next,
            CommandType.PAUSE: self._handle_pause,
            CommandType.RESUME: self._handle_resume,
            CommandType.SKIP: self._handle_skip,
            CommandType.STOP: self._handle_stop,
            CommandType.VOLUME: self._handle_volume,
            CommandType.INFO: self._handle_info,
            CommandType.HELP: self._handle_help,
            CommandType.QUIT: self._handle_quit,
        }

    @property
    def position(self) -> float:
        """Seconds of the current track delivered so far"""
        return self._pipeline.position if self._pipeline is not None else 0.0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def add_listener(self, listener: Callable[[Notice], None]):
        self._listeners.append(listener)

    async def start(self):
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._control_loop(), name='music-controller')

    async def submit(self, command: Command):
        """
        Hand a command to the control loop and wait until it has been applied.

        Raises:
            CommandError: The command was rejected (e.g. volume out of range)
        """
        if self.state is PlayerState.TERMINATED:
            logger.debug(f"Ignoring {command.type.value}: controller terminated")
            return
        await self.start()
        future = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_CommandMessage(command, future))
        await future

    async def close(self):
        """Quit (if still running) and wait for the control loop to exit."""
        if self.state is not PlayerState.TERMINATED:
            await self.submit(Command(CommandType.QUIT))
        if self._loop_task is not None:
            await self._loop_task

    def snapshot(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'track': self.current,
            'position': self.position,
            'paused': self.state is PlayerState.PAUSED,
            'volume': self.volume,
            'queue': self.queue.peek_all(),
            'pending': len(self._pending),
        }

    # Control loop

    async def _control_loop(self):
        logger.info("Controller started")
        while self.state is not PlayerState.TERMINATED:
            message = await self._inbox.get()
            try:
                await self._dispatch(message)
            except Exception as e:
                logger.exception(f"Error in control loop: {e}")

        # Anything still queued arrived after quit
        while not self._inbox.empty():
            message = self._inbox.get_nowait()
            if isinstance(message, _CommandMessage) and not message.future.done():
                message.future.set_result(None)
        logger.info("Controller stopped")

    async def _dispatch(self, message):
        if isinstance(message, _CommandMessage):
            await self._run_command(message)
        elif isinstance(message, _ResolutionDone):
            await self._on_resolution_done(message.pending)
        elif isinstance(message, _PipelineEnded):
            await self._on_pipeline_ended(message)

    async def _run_command(self, message: _CommandMessage):
        future = message.future
        try:
            await self._command_handlers[message.command.type](message.command)
        except Exception as e:
            if not isinstance(e, CommandError):
                logger.exception(f"Command {message.command.type.value} failed: {e}")
            if not future.done():
                future.set_exception(e)
            return
        if not future.done():
            future.set_result(None)

    def _set_state(self, state: PlayerState):
        if state is not self.state:
            logger.debug(f"State: {self.state.value} -> {state.value}")
            self.state = state

    def _emit(self, event: PlayerEvent, requester: Optional[Requester] = None, **kwargs):
        notice = Notice(event=event, requester=requester, **kwargs)
        for listener in self._listeners:
            try:
                listener(notice)
            except Exception as e:
                logger.error(f"Notice listener failed for {event.value}: {e}")

    # Resolution

    def _request(self, command: Command, play_next: bool):
        pending = PendingResolution(url=command.url, requester=command.requester, play_next=play_next)
        pending.task = asyncio.create_task(self._resolve(pending))
        self._pending.append(pending)
        if self.current is None and self.state is PlayerState.IDLE:
            self._set_state(PlayerState.LOADING)

    async def _resolve(self, pending: PendingResolution):
        try:
            pending.track = await self.resolver.resolve(pending.url, pending.requester)
        except ResolutionError as e:
            pending.error = e
        except Exception as e:
            logger.exception(f"Unexpected error resolving {pending.url}: {e}")
            pending.error = ResolutionError(ResolutionErrorKind.UNAVAILABLE, str(e))
        self._inbox.put_nowait(_ResolutionDone(pending))

    async def _on_resolution_done(self, pending: PendingResolution):
        pending.done = True
        if pending.cancelled or pending not in self._pending:
            logger.debug(f"Discarding stale resolution for {pending.url}")
            return
        await self._drain_resolutions()

    async def _drain_resolutions(self):
        """Apply finished lookups from the front, stopping at the first one still running."""
        while self._pending and self._pending[0].done:
            await self._apply_resolution(self._pending.popleft())
        if self.state is PlayerState.LOADING and self.current is None and not self._pending:
            self._set_state(PlayerState.IDLE)

    async def _apply_resolution(self, pending: PendingResolution):
        if pending.error is not None:
            logger.warning(f"Could not resolve {pending.url}: {pending.error}")
            self._emit(
                PlayerEvent.RESOLUTION_FAILED, pending.requester,
                error=pending.error, data={'url': pending.url},
            )
            return

        track = pending.track
        if pending.play_next:
            position = self.queue.enqueue_next(track)
        else:
            position = self.queue.enqueue(track)

        if self.current is None:
            await self._advance()
        else:
            self._emit(PlayerEvent.TRACK_QUEUED, track.requester, track=track, data={'position': position})

    # Playback

    async def _advance(self) -> bool:
        """
        Start the next queued track.

        Returns:
            bool: True if a track is now playing, False if the queue ran dry
        """
        while True:
            track = self.queue.pop_front()
            if track is None:
                self.current = None
                self._set_state(PlayerState.LOADING if self._pending else PlayerState.IDLE)
                return False

            self._set_state(PlayerState.LOADING)
            self.current = track
            source = None
            try:
                source = self.source_factory(track)
                await source.open()
            except Exception as e:
                error = e if isinstance(e, PipelineError) else PipelineError(
                    PipelineErrorKind.OPEN_FAILED, f"Could not open audio: {e}")
                logger.warning(f"Could not open {track.title}: {error}")
                if source is not None:
                    await source.close()
                self.current = None
                self._emit(PlayerEvent.PLAYBACK_FAILED, track.requester, track=track, error=error)
                continue

            session = PlaybackSession(track=track)
            self._session = session
            self._pipeline = PlaybackPipeline(
                source,
                self.send_frame,
                lambda: self.volume,
                on_finished=lambda error: self._inbox.put_nowait(_PipelineEnded(session, error)),
                frame_duration=self.frame_duration,
                read_ahead=self.read_ahead,
                max_send_failures=self.max_send_failures,
            )
            self._pipeline.start()
            self._set_state(PlayerState.PLAYING)
            logger.info(f"Now playing: {track.title}")
            self._emit(PlayerEvent.TRACK_STARTED, track=track)
            return True

    async def _teardown(self):
        """Stop the current pipeline and wait until its source is closed."""
        pipeline, session = self._pipeline, self._session
        self._pipeline = None
        self._session = None
        if session is not None:
            session.cancel()
        if pipeline is not None:
            self._set_state(PlayerState.STOPPING)
            await pipeline.close()
        self.current = None

    async def _on_pipeline_ended(self, message: _PipelineEnded):
        session = message.session
        if session.cancelled or session is not self._session:
            logger.debug(f"Ignoring end of superseded session {session.id}")
            return

        track = self.current
        await self._teardown()
        if message.error is not None:
            self._emit(PlayerEvent.PLAYBACK_FAILED, track.requester, track=track, error=message.error)
        else:
            logger.info(f"Finished: {track.title}")

        if not await self._advance() and not self._pending:
            self._emit(PlayerEvent.QUEUE_FINISHED)

    def _cancel_pending(self) -> int:
        cancelled = len(self._pending)
        for pending in self._pending:
            pending.cancel()
        self._pending.clear()
        return cancelled

    # Command handlers

    async def _handle_play(self, command: Command):
        self._request(command, play_next=False)

    async def _handle_play_next(self, command: Command):
        self._request(command, play_next=True)

    async def _handle_pause(self, command: Command):
        if self.state is PlayerState.PLAYING:
            self._pipeline.pause()
            self._set_state(PlayerState.PAUSED)
            self._emit(PlayerEvent.PAUSED, command.requester, track=self.current)
        elif self.state is PlayerState.PAUSED:
            self._emit(PlayerEvent.PAUSED, command.requester, track=self.current)
        else:
            self._emit(PlayerEvent.NOTHING_PLAYING, command.requester)

    async def _handle_resume(self, command: Command):
        if self.state is PlayerState.PAUSED:
            self._pipeline.resume()
            self._set_state(PlayerState.PLAYING)
            self._emit(PlayerEvent.RESUMED, command.requester, track=self.current)
        elif self.state is PlayerState.PLAYING:
            self._emit(PlayerEvent.NOT_PAUSED, command.requester)
        else:
            self._emit(PlayerEvent.NOTHING_PLAYING, command.requester)

    async def _handle_skip(self, command: Command):
        if self.state in (PlayerState.PLAYING, PlayerState.PAUSED):
            track = self.current
            await self._teardown()
            self._emit(PlayerEvent.TRACK_SKIPPED, command.requester, track=track)
            if not await self._advance() and not self._pending:
                self._emit(PlayerEvent.QUEUE_FINISHED)
        elif self.state is PlayerState.LOADING and self._pending:
            pending = self._pending.popleft()
            pending.cancel()
            self._emit(PlayerEvent.LOADING_CANCELLED, command.requester, data={'url': pending.url})
            await self._drain_resolutions()
        else:
            self._emit(PlayerEvent.NOTHING_PLAYING, command.requester)

    async def _handle_stop(self, command: Command):
        cancelled = self._cancel_pending()
        cleared = self.queue.clear()
        await self._teardown()
        self._set_state(PlayerState.IDLE)
        self._emit(PlayerEvent.STOPPED, command.requester, data={'cleared': cleared, 'cancelled': cancelled})

    async def _handle_volume(self, command: Command):
        if command.volume is None:
            self._emit(PlayerEvent.VOLUME_REPORTED, command.requester, data={'volume': self.volume})
            return
        if not MIN_VOLUME <= command.volume <= MAX_VOLUME:
            raise CommandError(
                CommandErrorKind.INVALID_ARGUMENT,
                f"Volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {command.volume}",
                command='volume',
            )
        self.volume = command.volume
        logger.info(f"Volume set to {self.volume}")
        self._emit(PlayerEvent.VOLUME_SET, command.requester, data={'volume': self.volume})

    async def _handle_info(self, command: Command):
        self._emit(PlayerEvent.INFO, command.requester, track=self.current, data=self.snapshot())

    async def _handle_help(self, command: Command):
        self._emit(PlayerEvent.HELP, command.requester)

    async def _handle_quit(self, command: Command):
        logger.info("Shutting down controller")
        self._cancel_pending()
        self.queue.clear()
        await self._teardown()
        self._set_state(PlayerState.TERMINATED)
        self._emit(PlayerEvent.SHUTDOWN, command.requester)
        if self.on_shutdown is not None:
            self.on_shutdown()
