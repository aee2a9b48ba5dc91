"""
Logging module for the Ease Core Discord bot.

Provides centralized logging with console and rotating-file output plus
optional mirroring of audit and error records to Discord channels.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .constants import DISCORD_MESSAGE_MAX_LENGTH, LOG_FILE_BACKUP_COUNT, LOG_FILE_MAX_BYTES

LOGGER_NAME = "ease_core"
LOG_FORMAT = "[%(asctime)s] %(levelname)s:%(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Global logger instance
logger: Optional[logging.Logger] = None


class DiscordHandler(logging.Handler):
    """Logging handler that forwards records to a Discord text channel."""

    def __init__(self, bot=None, channel_id: Optional[int] = None):
        super().__init__()
        self.bot = bot
        self.channel_id = channel_id

    def emit(self, record: logging.LogRecord) -> None:
        if not (self.bot and self.channel_id):
            return

        channel = self.bot.get_channel(self.channel_id)
        if not channel:
            return

        try:
            base_msg = f"**{record.levelname}**: {record.getMessage()}"
            if record.exc_info:
                formatted_trace = self.format(record)
                if len(formatted_trace) > 1850:
                    formatted_trace = formatted_trace[:1850] + "... (truncated)"
                msg = f"{base_msg}\n```{formatted_trace}```"
            else:
                msg = base_msg
        except Exception:
            msg = f"**{record.levelname}**: {record.msg}"

        if len(msg) > DISCORD_MESSAGE_MAX_LENGTH:
            msg = msg[: DISCORD_MESSAGE_MAX_LENGTH - 3] + "..."

        self._schedule_send(channel, msg)

    def _schedule_send(self, channel, message: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = getattr(self.bot, "loop", None)

        if loop is None or not loop.is_running():
            return

        try:
            asyncio.run_coroutine_threadsafe(self._send_to_discord(channel, message), loop)
        except RuntimeError as e:
            # stderr, not logging, to avoid recursing into this handler
            print(f"DiscordHandler: Failed to schedule message: {e}", file=sys.stderr)

    async def _send_to_discord(self, channel, message: str) -> None:
        try:
            await channel.send(message)
        except Exception as e:
            print(f"DiscordHandler: Failed to send message: {e}", file=sys.stderr)


def _is_audit_record(record: logging.LogRecord) -> bool:
    return record.levelno >= logging.INFO and "audit" in record.name.lower()


def setup_logger(
    level: int = logging.INFO,
    log_file: str | Path | None = None,
    enable_discord: bool = False,
    bot=None,
    audit_channel_id: Optional[int] = None,
    error_channel_id: Optional[int] = None,
) -> logging.Logger:
    """
    Set up the Ease Core logger.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional path of a size-rotated service log
        enable_discord: Whether to enable Discord channel logging
        bot: Discord bot instance for channel logging
        audit_channel_id: Channel receiving ``ease_core.audit`` records
        error_channel_id: Channel receiving ERROR records

    Returns:
        Configured logger instance
    """
    global logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if enable_discord and bot:
        if audit_channel_id:
            audit_handler = DiscordHandler(bot, audit_channel_id)
            audit_handler.setLevel(logging.INFO)
            audit_handler.addFilter(_is_audit_record)
            logger.addHandler(audit_handler)

        if error_channel_id:
            error_handler = DiscordHandler(bot, error_channel_id)
            error_handler.setLevel(logging.ERROR)
            logger.addHandler(error_handler)

    logger.propagate = False

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get the Ease Core logger, or one of its children.

    Creates a basic console logger if setup_logger has not been called yet.
    """
    global logger
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
            logger.propagate = False

    if name:
        return logger.getChild(name)
    return logger


logger = get_logger()
