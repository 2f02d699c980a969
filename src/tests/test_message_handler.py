import pytest

from jukebox.core.interfaces import CommandType, Notice, PlayerEvent, Requester, Track
from jukebox.core.message_handler import CommandDispatcher, parse_command
from jukebox.utils.exceptions import (
    CommandError,
    CommandErrorKind,
    PipelineError,
    PipelineErrorKind,
    ResolutionError,
    ResolutionErrorKind,
)

ALICE = Requester(id=1, name="alice", channel_id=10)
LINK = "https://www.youtube.com/watch?v=abc123"


@pytest.mark.parametrize("text, expected", [
    ("!play " + LINK, CommandType.PLAY),
    ("!yt " + LINK, CommandType.PLAY),
    ("!PLAY " + LINK, CommandType.PLAY),
    ("!pn " + LINK, CommandType.PLAY_NEXT),
    ("!next " + LINK, CommandType.PLAY_NEXT),
    ("!n " + LINK, CommandType.PLAY_NEXT),
    ("!next", CommandType.SKIP),
    ("!n", CommandType.SKIP),
    ("!s", CommandType.SKIP),
    ("!p", CommandType.PAUSE),
    ("!continue", CommandType.RESUME),
    ("!c", CommandType.RESUME),
    ("!stop", CommandType.STOP),
    ("!i", CommandType.INFO),
    ("!h", CommandType.HELP),
    ("!q", CommandType.QUIT),
])
def test_verbs_and_aliases(text, expected):
    command = parse_command(text, ALICE)
    assert command.type is expected
    assert command.requester == ALICE


def test_play_keeps_the_link():
    command = parse_command("!play " + LINK, ALICE)
    assert command.url == LINK


def test_link_markup_is_stripped():
    command = parse_command(f"!play [URL]{LINK}[/URL]", ALICE)
    assert command.url == LINK

    command = parse_command(f"!play <{LINK}>", ALICE)
    assert command.url == LINK


@pytest.mark.parametrize("text", ["hello there", "play " + LINK, "!dance", "!", ""])
def test_non_commands_are_ignored(text):
    assert parse_command(text, ALICE) is None


def test_custom_prefix():
    assert parse_command("?skip", ALICE, prefix="?").type is CommandType.SKIP
    assert parse_command("!skip", ALICE, prefix="?") is None


@pytest.mark.parametrize("prefix", ["$", ">", "*", "^^"])
def test_prefix_outside_the_safe_characters(prefix):
    assert parse_command(prefix + "skip", ALICE, prefix=prefix).type is CommandType.SKIP
    command = parse_command(f"{prefix}play <{LINK}>", ALICE, prefix=prefix)
    assert command.type is CommandType.PLAY
    assert command.url == LINK
    assert parse_command("!skip", ALICE, prefix=prefix) is None


def test_play_without_link_is_missing_argument():
    with pytest.raises(CommandError) as excinfo:
        parse_command("!play", ALICE)
    assert excinfo.value.kind is CommandErrorKind.MISSING_ARGUMENT


def test_play_with_non_link_is_invalid():
    with pytest.raises(CommandError) as excinfo:
        parse_command("!play never gonna give you up", ALICE)
    assert excinfo.value.kind is CommandErrorKind.INVALID_ARGUMENT


def test_volume_parsing():
    assert parse_command("!volume 50", ALICE).volume == 50
    assert parse_command("!v 0", ALICE).volume == 0
    query = parse_command("!v", ALICE)
    assert query.type is CommandType.VOLUME
    assert query.volume is None


@pytest.mark.parametrize("text", ["!volume 150", "!volume -1", "!volume loud"])
def test_bad_volume_is_invalid(text):
    with pytest.raises(CommandError) as excinfo:
        parse_command(text, ALICE)
    assert excinfo.value.kind is CommandErrorKind.INVALID_ARGUMENT


class FakeController:
    def __init__(self, error=None):
        self.error = error
        self.submitted = []
        self.listeners = []

    def add_listener(self, listener):
        self.listeners.append(listener)

    async def submit(self, command):
        self.submitted.append(command)
        if self.error is not None:
            raise self.error


class Replies:
    def __init__(self):
        self.sent = []

    async def __call__(self, requester, text):
        self.sent.append((requester, text))


@pytest.fixture
def dispatcher():
    return CommandDispatcher(FakeController(), Replies(), prefix='!')


@pytest.mark.asyncio
async def test_dispatcher_submits_commands(dispatcher):
    command = await dispatcher.handle("!play " + LINK, ALICE)
    assert dispatcher.controller.submitted == [command]
    assert dispatcher.reply.sent == []


@pytest.mark.asyncio
async def test_dispatcher_replies_to_bad_input_without_submitting(dispatcher):
    assert await dispatcher.handle("!volume 150", ALICE) is None
    assert dispatcher.controller.submitted == []
    requester, text = dispatcher.reply.sent[0]
    assert requester == ALICE
    assert "between 0 and 100" in text


@pytest.mark.asyncio
async def test_dispatcher_ignores_chatter(dispatcher):
    assert await dispatcher.handle("nice song", ALICE) is None
    assert dispatcher.controller.submitted == []
    assert dispatcher.reply.sent == []


@pytest.mark.asyncio
async def test_dispatcher_reports_rejected_commands():
    error = CommandError(CommandErrorKind.INVALID_ARGUMENT, "Volume must be between 0 and 100, got 150")
    dispatcher = CommandDispatcher(FakeController(error=error), Replies())
    await dispatcher.handle("!volume 100", ALICE)
    assert dispatcher.reply.sent == [(ALICE, "❌ Volume must be between 0 and 100, got 150")]


@pytest.mark.asyncio
async def test_notices_are_sent_as_replies(dispatcher):
    track = Track(url=LINK, stream_url="s", title="Song", duration=125, requester=ALICE)
    listener = dispatcher.controller.listeners[0]

    listener(Notice(PlayerEvent.TRACK_STARTED, track=track))
    listener(Notice(PlayerEvent.TRACK_QUEUED, ALICE, track=track, data={'position': 2}))
    await dispatcher.flush()

    assert dispatcher.reply.sent == [
        (None, "🎵 Now playing: Song (2:05)"),
        (ALICE, "✅ Queued: Song (position 2)"),
    ]


@pytest.mark.asyncio
async def test_failing_reply_is_logged_not_raised():
    async def broken_reply(requester, text):
        raise ConnectionError("discord down")

    dispatcher = CommandDispatcher(FakeController(), broken_reply)
    dispatcher.on_notice(Notice(PlayerEvent.PAUSED, ALICE))
    await dispatcher.flush()


def test_error_notices_explain_the_reason(dispatcher):
    failed = Notice(
        PlayerEvent.RESOLUTION_FAILED, ALICE,
        error=ResolutionError(ResolutionErrorKind.TIMEOUT, "Lookup timed out after 15s"),
        data={'url': LINK},
    )
    assert dispatcher.format_notice(failed) == f"❌ Could not load {LINK}: the lookup timed out"

    track = Track(url=LINK, stream_url="s", title="Song")
    stalled = Notice(
        PlayerEvent.PLAYBACK_FAILED, ALICE, track=track,
        error=PipelineError(PipelineErrorKind.STALLED, "No audio received for 10s"),
    )
    assert dispatcher.format_notice(stalled) == "❌ Playback of Song failed: the stream stalled"


def test_info_text(dispatcher):
    track = Track(url=LINK, stream_url="s", title="Song", duration=200, channel="Artist", webpage_url=LINK)
    notice = Notice(PlayerEvent.INFO, ALICE, data={
        'track': track, 'position': 100.0, 'paused': True, 'volume': 80, 'queue': [track],
    })
    text = dispatcher.format_notice(notice)
    assert "Title: Song" in text
    assert "Channel: Artist" in text
    assert f"Link: {LINK}" in text
    assert "1:40/3:20 (paused)" in text
    assert "Volume: 80 | Queue: 1 track(s)" in text


def test_info_text_when_idle(dispatcher):
    notice = Notice(PlayerEvent.INFO, ALICE, data={'track': None, 'volume': 100, 'queue': []})
    assert "Nothing" in dispatcher.format_notice(notice)


def test_help_uses_the_prefix():
    dispatcher = CommandDispatcher(FakeController(), Replies(), prefix='?')
    text = dispatcher.format_notice(Notice(PlayerEvent.HELP, ALICE))
    assert "?play <link> (?yt <link>)" in text
    assert "?quit (?q) - Quit" in text
