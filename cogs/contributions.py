"""Member-facing purchase commands: manual recording and total lookup."""

from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from ease_core.constants import COOLDOWN_MANUAL_PURCHASE_SECONDS, RATE_LIMIT_MANUAL_PURCHASE_MAX
from ease_core.errors import PersistenceError, ValidationError
from ease_core.logger import get_logger
from ease_core.rate_limiter import rate_limit
from ease_core.utils import create_embed, format_amount

logger = get_logger()


class ContributionsCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot

    @property
    def pipeline(self):
        return self.bot.pipeline

    @app_commands.command(name="comprar", description="Register a purchase")
    @app_commands.describe(valor="Purchase amount")
    @rate_limit(
        key="comprar",
        window=COOLDOWN_MANUAL_PURCHASE_SECONDS,
        max_uses=RATE_LIMIT_MANUAL_PURCHASE_MAX,
    )
    async def comprar(self, interaction: discord.Interaction, valor: float) -> None:
        logger.info(
            "Command: /comprar | User: %s (%s) | Guild: %s | Amount: %s",
            interaction.user.name,
            interaction.user.id,
            interaction.guild_id,
            valor,
        )

        config = self.bot.config
        if not config.allow_test_commands:
            await interaction.response.send_message(
                "Manual purchase recording is disabled on this server.", ephemeral=True
            )
            return

        try:
            receipt = await self.pipeline.record_manual(interaction.user.id, valor)
        except ValidationError:
            await interaction.response.send_message("Enter a valid amount.", ephemeral=True)
            return
        except PersistenceError as e:
            logger.error(f"Manual purchase for {interaction.user.id} could not be saved: {e}")
            await interaction.response.send_message(
                "Could not save your purchase right now. Please try again later.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            f"Purchase of {format_amount(receipt.amount, config.currency_symbol)} recorded!",
            ephemeral=True,
        )
        self.pipeline.schedule_sync(receipt.account.user_id, receipt.account.total, source="manual")

    @app_commands.command(name="total", description="Show your accumulated purchases and rank")
    async def total(self, interaction: discord.Interaction) -> None:
        config = self.bot.config
        account = await self.bot.ledger.get_or_create(str(interaction.user.id))
        tier = self.bot.ranks.resolve(account.total)

        rank_text = f"<@&{tier.role_id}> ({tier.label})" if tier else "No rank yet"
        embed = create_embed(
            title="Your purchases",
            description=(
                f"**Total spent:** {format_amount(account.total, config.currency_symbol)}\n"
                f"**Purchases:** {len(account.history)}\n"
                f"**Current rank:** {rank_text}"
            ),
            color=discord.Color.blurple(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        command_name = interaction.command.name if interaction.command else "unknown"
        logger.error(f"Command /{command_name} failed: {error}", exc_info=error)
        await self.bot.audit.record("command_error", command=command_name, userId=str(interaction.user.id), error=str(error))

        message = "Something went wrong while processing your command."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    """Load the ContributionsCog cog."""
    await bot.add_cog(ContributionsCog(bot))
