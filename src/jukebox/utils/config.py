import yaml
import os
import shutil
import logging
from dataclasses import dataclass, fields
from typing import Optional
from dotenv import load_dotenv

from jukebox.utils.constants import DEFAULT_VOLUME, MIN_VOLUME, MAX_VOLUME, RESOLVE_TIMEOUT

"""
Bot configuration loading.

Configuration comes from config/config.yaml, with environment variables
(optionally loaded from a .env file) taking precedence.
"""

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join('config', 'config.yaml')

# Environment variable -> config key
ENV_OVERRIDES = {
    'DISCORD_TOKEN': 'bot_identity_credential',
    'VOICE_CHANNEL_ID': 'host',
    'VOICE_PASSWORD': 'password',
    'BOT_NAME': 'bot_display_name',
    'BOT_PREFIX': 'command_prefix',
    'TEXT_CHANNEL_ID': 'text_channel_id',
    'DEFAULT_VOLUME': 'default_volume',
    'FFMPEG_PATH': 'ffmpeg_path',
    'LOG_LEVEL': 'log_level',
}


@dataclass(frozen=True)
class BotConfig:
    """Read-only configuration consumed at startup."""
    host: str
    password: str
    bot_display_name: str
    bot_identity_credential: str
    command_prefix: str = '!'
    text_channel_id: Optional[int] = None
    default_volume: int = DEFAULT_VOLUME
    ffmpeg_path: str = 'ffmpeg'
    resolve_timeout: float = RESOLVE_TIMEOUT
    log_level: str = 'INFO'
    log_file: str = 'logs/bot.log'


def _default_config() -> dict:
    return {
        'host': '',
        'password': '',
        'bot_display_name': 'Jukebox',
        'bot_identity_credential': '',
        'command_prefix': '!',
        'text_channel_id': None,
        'default_volume': DEFAULT_VOLUME,
        'ffmpeg_path': 'ffmpeg',
        'resolve_timeout': RESOLVE_TIMEOUT,
        'log_level': 'INFO',
        'log_file': 'logs/bot.log',
    }


def load_config(path: str = None, env_path: str = None) -> BotConfig:
    """
    Loads configuration from config.yaml and the environment.

    Args:
        path: Path of the YAML file (defaults to config/config.yaml)
        env_path: Path of a .env file to load before reading the environment

    Returns:
        BotConfig: Validated configuration

    Raises:
        ValueError: If a required field is missing or a value is out of range
    """
    # Load .env file if it exists
    env_path = env_path or '.env'
    if os.path.exists(env_path):
        logger.debug(f"Loading .env file from: {env_path}")
        load_dotenv(env_path)

    config = _default_config()

    config_path = path or DEFAULT_CONFIG_PATH
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        unknown = set(yaml_config) - set(config)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        config.update({k: v for k, v in yaml_config.items() if k in config})
    else:
        logger.info(f"No config file at {config_path}, using environment only")

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None and value != '':
            config[key] = value

    return _build(config)


def _build(config: dict) -> BotConfig:
    """Coerce raw values and validate required fields."""
    if not config.get('bot_identity_credential'):
        raise ValueError("Bot token is required in configuration")
    if not config.get('host'):
        raise ValueError("Voice channel (host) is required in configuration")

    try:
        default_volume = int(config['default_volume'])
    except (TypeError, ValueError):
        raise ValueError(f"default_volume must be an integer, got {config['default_volume']!r}")
    if not MIN_VOLUME <= default_volume <= MAX_VOLUME:
        raise ValueError(f"default_volume must be between {MIN_VOLUME} and {MAX_VOLUME}")

    text_channel_id = config.get('text_channel_id')
    if text_channel_id in ('', None):
        text_channel_id = None
    else:
        text_channel_id = int(text_channel_id)

    values = dict(config)
    values.update(
        host=str(config['host']),
        password=str(config.get('password') or ''),
        bot_identity_credential=str(config['bot_identity_credential']),
        bot_display_name=str(config['bot_display_name']),
        command_prefix=str(config['command_prefix']),
        default_volume=default_volume,
        text_channel_id=text_channel_id,
        resolve_timeout=float(config['resolve_timeout']),
    )
    names = {f.name for f in fields(BotConfig)}
    return BotConfig(**{k: v for k, v in values.items() if k in names})


def check_dependencies(config: BotConfig) -> str:
    """
    Make sure the ffmpeg executable can be found.

    Returns:
        str: Resolved path of the ffmpeg executable

    Raises:
        RuntimeError: If ffmpeg is not installed
    """
    ffmpeg = shutil.which(config.ffmpeg_path)
    if not ffmpeg:
        raise RuntimeError(f"Unable to find ffmpeg ({config.ffmpeg_path})")
    logger.info(f"Using FFmpeg from: {ffmpeg}")
    return ffmpeg
