"""Ledger backup, audit inspection and rank reconciliation commands."""

from __future__ import annotations

import json

import discord
from discord import app_commands
from discord.ext import commands

from ease_core.constants import AUDIT_LOG_DEFAULT_READ_LIMIT, DISCORD_MESSAGE_MAX_LENGTH
from ease_core.errors import PersistenceError
from ease_core.logger import get_logger
from ease_core.utils import create_embed
from ease_core.utils.permissions import admin_only

logger = get_logger()

AUDIT_PREVIEW_LINES = 15


def _format_audit_entry(entry: dict) -> str:
    details = {key: value for key, value in entry.items() if key not in ("ts", "type")}
    suffix = f" {json.dumps(details, sort_keys=True)}" if details else ""
    return f"`{entry.get('ts', '?')}` **{entry.get('type', '?')}**{suffix}"


class LedgerAdminCog(commands.Cog):
    """Admin-only maintenance commands for the purchase ledger."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @app_commands.command(name="backup", description="Snapshot the purchase ledger (admin only)")
    @admin_only()
    async def backup(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            backup_file = await self.bot.ledger.create_backup()
        except PersistenceError as e:
            logger.error(f"Manual ledger backup failed: {e}")
            await interaction.followup.send(f"❌ Backup failed: {e}", ephemeral=True)
            return

        deleted = self.bot.ledger.prune_backups(self.bot.config.storage.backup_retention_days)
        await self.bot.audit.record("ledger_backup", file=backup_file.name, requestedBy=str(interaction.user.id))

        size_kb = backup_file.stat().st_size / 1024
        embed = create_embed(
            title="✅ Ledger Backup Created",
            description=(
                f"**File:** `{backup_file.name}`\n"
                f"**Size:** {size_kb:.1f} KB\n"
                f"**Old backups removed:** {deleted}"
            ),
            color=discord.Color.green(),
            timestamp=True,
        )
        await interaction.followup.send(embed=embed, ephemeral=True)

    @app_commands.command(name="auditlog", description="Show recent audit entries (admin only)")
    @app_commands.describe(limit="Number of entries to show")
    @admin_only()
    async def auditlog(
        self,
        interaction: discord.Interaction,
        limit: app_commands.Range[int, 1, AUDIT_LOG_DEFAULT_READ_LIMIT] = AUDIT_PREVIEW_LINES,
    ) -> None:
        try:
            entries = await self.bot.audit.read(limit)
        except PersistenceError as e:
            await interaction.response.send_message(f"❌ Could not read audit log: {e}", ephemeral=True)
            return

        if not entries:
            await interaction.response.send_message("The audit log is empty.", ephemeral=True)
            return

        lines: list[str] = []
        length = 0
        for entry in entries:
            line = _format_audit_entry(entry)
            if length + len(line) + 1 > DISCORD_MESSAGE_MAX_LENGTH - 100:
                break
            lines.append(line)
            length += len(line) + 1

        embed = create_embed(
            title="🧾 Audit Log",
            description="\n".join(lines),
            footer=f"Showing {len(lines)} of {len(entries)} requested entries (newest first)",
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @app_commands.command(name="resync", description="Re-apply rank roles for every ledger account (admin only)")
    @admin_only()
    async def resync(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        promoted = await self.bot.pipeline.reconcile_all()
        await self.bot.audit.record("rank_resync", promoted=promoted, requestedBy=str(interaction.user.id))
        await interaction.followup.send(
            f"✅ Rank roles reconciled. {promoted} member(s) promoted.", ephemeral=True
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "🚫 You don't have permission to use this command."
        else:
            command_name = interaction.command.name if interaction.command else "unknown"
            logger.error(f"Command /{command_name} failed: {error}", exc_info=error)
            await self.bot.audit.record(
                "command_error", command=command_name, userId=str(interaction.user.id), error=str(error)
            )
            message = "Something went wrong while processing your command."

        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    """Load the LedgerAdminCog cog."""
    await bot.add_cog(LedgerAdminCog(bot))
