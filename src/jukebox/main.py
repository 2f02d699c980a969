import asyncio
import logging
import sys

from jukebox.bot.client import MusicBot
from jukebox.utils.config import check_dependencies, load_config
from jukebox.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def main():
    """Main entry point for the bot"""
    config = load_config()
    setup_logging(config.log_level, config.log_file)
    ffmpeg_path = check_dependencies(config)

    bot = MusicBot(config, ffmpeg_path=ffmpeg_path)
    async with bot:
        await bot.start(config.bot_identity_credential)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except (ValueError, RuntimeError) as e:
        logger.critical(f"Failed to start bot: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
