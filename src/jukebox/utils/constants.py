"""
Shared constants: PCM format, tool options, timings, aliases and messages.
"""

# PCM format expected by the voice transport (discord.py Opus encoder)
SAMPLE_RATE = 48000
CHANNELS = 2
SAMPLE_WIDTH = 2  # bytes, signed 16-bit little endian
FRAME_DURATION = 0.02  # seconds
FRAME_SIZE = int(SAMPLE_RATE * FRAME_DURATION) * CHANNELS * SAMPLE_WIDTH  # 3840 bytes

# Playback timings
READ_AHEAD_FRAMES = 50  # 1s of decoded audio buffered ahead of delivery
MAX_CLOCK_DRIFT = 0.2  # re-anchor the delivery clock when this far behind
MAX_SEND_FAILURES = 5  # consecutive send_frame failures before giving up on a track
OPEN_TIMEOUT = 15.0  # wait for the first decoded frame
STALL_TIMEOUT = 10.0  # wait for each following frame
TERMINATE_GRACE_PERIOD = 2.0  # after SIGTERM, before SIGKILL
RESOLVE_TIMEOUT = 15.0

DEFAULT_VOLUME = 100
MIN_VOLUME = 0
MAX_VOLUME = 100

# Configuration YT-DLP
YTDL_OPTIONS = {
    'format': 'bestaudio/best',
    'quiet': True,
    'no_warnings': True,
    'skip_download': True,
    'noplaylist': True,
    'socket_timeout': 5,
    'retries': 1,
    'nocheckcertificate': True,
    'source_address': '0.0.0.0',
    'no_color': True,
    'extract_flat': False,
}

# Configuration FFMPEG
FFMPEG_BEFORE_OPTIONS = [
    '-nostdin',
    '-reconnect', '1',
    '-reconnect_streamed', '1',
    '-reconnect_delay_max', '5',
    '-analyzeduration', '0',
    '-loglevel', 'error',
]
FFMPEG_OPTIONS = [
    '-vn',
    '-f', 's16le',
    '-acodec', 'pcm_s16le',
    '-ar', str(SAMPLE_RATE),
    '-ac', str(CHANNELS),
]

# Command aliases: canonical name -> accepted verbs (case-insensitive)
COMMAND_ALIASES = {
    'play': ['play', 'yt'],
    'playnext': ['playnext', 'pn'],
    'pause': ['pause', 'p'],
    'resume': ['resume', 'r', 'continue', 'c'],
    'skip': ['skip', 's', 'next', 'n'],
    'stop': ['stop'],
    'volume': ['volume', 'v'],
    'info': ['info', 'i'],
    'help': ['help', 'h'],
    'quit': ['quit', 'q'],
}

# Verbs that turn into "play next" when given an argument
PLAY_NEXT_VERBS = ('next', 'n')

# Messages du bot
MESSAGES = {
    'NOW_PLAYING': "🎵 Now playing: {title} ({duration})",
    'SONG_ADDED': "✅ Queued: {title} (position {position})",
    'SKIPPED': "⏭️ Skipped {title}",
    'SKIPPED_LOADING': "⏭️ Cancelled loading {url}",
    'PAUSED': "⏸️ Paused",
    'RESUMED': "▶️ Resumed",
    'STOPPED': "⏹️ Playback stopped, queue cleared",
    'NOTHING_PLAYING': "Nothing is playing",
    'NOT_PAUSED': "Playback is not paused",
    'QUEUE_FINISHED': "The queue is empty. 🎵",
    'VOLUME_SET': "🔊 Volume set to: {volume}",
    'VOLUME_CURRENT': "🔊 Current volume: {volume}",
    'GOODBYE': "👋 Bye!",
    'RESOLUTION_FAILED': "❌ Could not load {url}: {reason}",
    'PLAYBACK_FAILED': "❌ Playback of {title} failed: {reason}",
    'MISSING_ARGUMENT': "❌ {command} needs an argument: {usage}",
    'INVALID_ARGUMENT': "❌ {reason}",
    'INFO_HEADER': "Currently Playing:",
    'INFO_NOTHING': "Nothing",
}

RESOLUTION_REASONS = {
    'unavailable': "the media is unavailable",
    'bad_metadata': "the media information could not be read",
    'timeout': "the lookup timed out",
}

PIPELINE_REASONS = {
    'open_failed': "the decoder could not be started",
    'stalled': "the stream stalled",
    'decode_failed': "the stream could not be decoded",
    'sink_failed': "audio could not be sent to the voice channel",
}

HELP_LINES = [
    ("play <link>", "yt <link>", "Play audio from link, or queue it if already playing"),
    ("next <link>", "n <link>, playnext, pn", "Queue a track as the next track"),
    ("pause", "p", "Pause current track"),
    ("resume", "r, continue, c", "Resume current track"),
    ("skip", "s, next, n", "Skip current track"),
    ("stop", "", "Stop all tracks and clear the queue"),
    ("volume <0-100>", "v", "Change volume, or show it without a number"),
    ("info", "i", "Get info about the current track"),
    ("help", "h", "Get this message"),
    ("quit", "q", "Quit"),
]
