import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(level: str = 'INFO', log_file: str = 'logs/bot.log'):
    """
    Configure logging for the bot with both file and console output.
    Creates rotating log files with a max size of 10MB, keeping 5 backup files.

    Args:
        level: Name of the log level (DEBUG, INFO, ...)
        log_file: Path of the rotating log file, or empty to log to console only
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(log_level)

    # Format for logs
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if log_file:
        # Create logs directory if it doesn't exist
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        # File handler with rotation
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10_000_000,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    logger.addHandler(console_handler)

    # discord.py is chatty at DEBUG
    logging.getLogger('discord').setLevel(max(log_level, logging.INFO))
