"""Test the logger module."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from ease_core.logger import LOGGER_NAME, DiscordHandler, _is_audit_record, get_logger, setup_logger


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    setup_logger(level=logging.INFO)


def test_get_logger_returns_package_logger():
    logger = get_logger()
    assert logger.name == LOGGER_NAME


def test_get_logger_returns_child_logger():
    assert get_logger("audit").name == f"{LOGGER_NAME}.audit"


def test_setup_logger_creates_configured_logger():
    logger = setup_logger(level=logging.DEBUG)
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert len(logger.handlers) == 1


def test_setup_logger_with_rotating_file(tmp_path):
    log_file = tmp_path / "ease.log"

    logger = setup_logger(level=logging.INFO, log_file=log_file)
    logger.info("hello file")
    for handler in logger.handlers:
        handler.flush()

    assert "hello file" in log_file.read_text(encoding="utf-8")


def test_setup_logger_adds_discord_handlers():
    bot = MagicMock()

    logger = setup_logger(enable_discord=True, bot=bot, audit_channel_id=1, error_channel_id=2)

    discord_handlers = [handler for handler in logger.handlers if isinstance(handler, DiscordHandler)]
    assert sorted(handler.channel_id for handler in discord_handlers) == [1, 2]


def test_audit_filter_only_passes_audit_records():
    audit_record = logging.LogRecord("ease_core.audit", logging.INFO, __file__, 1, "purchase", None, None)
    other_record = logging.LogRecord("ease_core", logging.INFO, __file__, 1, "hello", None, None)

    assert _is_audit_record(audit_record)
    assert not _is_audit_record(other_record)


def test_discord_handler_without_bot_is_noop():
    handler = DiscordHandler()
    handler.emit(logging.LogRecord("ease_core", logging.ERROR, __file__, 1, "boom", None, None))
    assert handler.bot is None


@pytest.mark.asyncio
async def test_discord_handler_sends_to_channel():
    channel = MagicMock()
    channel.send = AsyncMock()
    bot = MagicMock()
    bot.get_channel.return_value = channel
    handler = DiscordHandler(bot=bot, channel_id=12345)

    handler.emit(logging.LogRecord("ease_core", logging.ERROR, __file__, 1, "boom", None, None))
    await asyncio.sleep(0.05)

    channel.send.assert_awaited_once()
    assert "boom" in channel.send.await_args.args[0]
