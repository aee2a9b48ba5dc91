"""
Ease Core - purchase ledger and rank promotion bot.

This is the main entrypoint: it runs the Discord client and the purchase
webhook server on the same event loop.
"""

import asyncio
import logging
import os
import re
import sys
from pathlib import Path

import discord
from discord.ext import commands, tasks
from dotenv import load_dotenv

from ease_core import AuditLog, IngestionPipeline, LedgerStore, RankTable, apply_env_overrides, load_config
from ease_core.errors import PersistenceError
from ease_core.logger import setup_logger
from ease_core.rate_limiter import get_rate_limiter
from ease_core.utils import DiscordGateway
from ease_core.webhook_server import WebhookServer, create_app

# Load environment variables from .env file
load_dotenv()

logger = setup_logger(level=logging.INFO, log_file=os.environ.get("LOG_FILE"))


def _validate_token_format(token: str) -> bool:
    """Check the token has the three dot-separated base64-like Discord segments."""
    if not token or not isinstance(token, str):
        return False

    parts = token.split(".")
    if len(parts) != 3:
        return False

    if not all(re.match(r"^[A-Za-z0-9_-]+$", part) for part in parts):
        return False

    return len(parts[0]) >= 10 and len(parts[1]) >= 3 and len(parts[2]) >= 10


class EaseBot(commands.Bot):
    """Bot owning the ledger, audit log, rank table and webhook server."""

    def __init__(self, *args, **kwargs):
        self.config = kwargs.pop("config")
        storage = self.config.storage
        self.ledger = LedgerStore(storage.ledger_path, storage.backup_path)
        self.audit = AuditLog(storage.audit_path)
        self.ranks = RankTable(self.config.ranks)
        super().__init__(*args, **kwargs)

        self.gateway = DiscordGateway(self, self.config)
        self.pipeline = IngestionPipeline(self.config, self.ledger, self.audit, self.ranks, self.gateway)
        self.webhook_server = WebhookServer(
            create_app(self.pipeline, self.config, get_rate_limiter()),
            port=self.config.port,
        )

    async def setup_hook(self):
        self.ledger.initialize()
        self.audit.initialize()
        logger.info(f"Ledger storage initialized at {self.config.storage.data_dir}")

        if self.config.audit_channel_id or self.config.error_channel_id:
            setup_logger(
                level=logging.INFO,
                log_file=os.environ.get("LOG_FILE"),
                enable_discord=True,
                bot=self,
                audit_channel_id=self.config.audit_channel_id,
                error_channel_id=self.config.error_channel_id,
            )
            logger.info("Discord channel logging enabled.")

        if not self.config.webhook_secret:
            logger.warning("WEBHOOK_SECRET is not set; webhook deliveries will be rejected.")

        await self.webhook_server.start()
        await self._load_cogs()

        if self.config.guild_id:
            guild = discord.Object(id=self.config.guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info(f"Command tree synced for guild {self.config.guild_id}")
        else:
            await self.tree.sync()
            logger.info("Command tree synced globally")

    async def _load_cogs(self):
        cogs_dir = Path(__file__).resolve().parent / "cogs"
        if not cogs_dir.exists():
            logger.warning("No cogs directory found. Skipping cog loading.")
            return

        for cog_file in sorted(cogs_dir.glob("*.py")):
            if cog_file.stem.startswith("_"):
                continue

            extension = f"cogs.{cog_file.stem}"
            try:
                await self.load_extension(extension)
                logger.info(f"Loaded extension: {extension}")
            except Exception as e:
                logger.error(f"Failed to load extension {extension}: {e}", exc_info=True)

    async def on_ready(self):
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        await self.audit.record("client_ready", user=str(self.user))

    async def close(self):
        if daily_backup_task.is_running():
            daily_backup_task.cancel()
            logger.info("Daily backup task cancelled.")

        await self.pipeline.drain()
        await self.webhook_server.stop()
        await super().close()


@tasks.loop(hours=24.0)
async def daily_backup_task():
    """Snapshot the ledger once a day and prune snapshots past retention."""
    bot = daily_backup_task.bot
    try:
        backup_file = await bot.ledger.create_backup()
        deleted = bot.ledger.prune_backups(bot.config.storage.backup_retention_days)
        logger.info(f"Daily backup created: {backup_file} (deleted {deleted} old backups)")
    except (PersistenceError, OSError) as error:
        logger.error(f"Failed to create daily backup: {error}", exc_info=True)

    purged = get_rate_limiter().purge_idle()
    if purged:
        logger.debug(f"Purged {purged} idle rate limit bucket(s)")


@daily_backup_task.before_loop
async def before_daily_backup_task():
    """Wait for bot to be ready before starting daily backup task."""
    bot = daily_backup_task.bot
    await bot.wait_until_ready()


async def main():
    config_path = os.environ.get("CONFIG_PATH", "config.json")

    try:
        config = apply_env_overrides(load_config(config_path))
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if not config.token:
        logger.error("DISCORD_TOKEN is not set in the environment or config.json.")
        sys.exit(1)
    if not _validate_token_format(config.token):
        logger.error("Invalid DISCORD_TOKEN format.")
        sys.exit(1)

    intents = discord.Intents.default()
    intents.members = True
    intents.guilds = True

    bot = EaseBot(command_prefix=commands.when_mentioned, intents=intents, config=config)

    daily_backup_task.bot = bot
    daily_backup_task.start()
    logger.info("Started daily backup task")

    async with bot:
        await bot.start(config.token)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot shut down by user.")
