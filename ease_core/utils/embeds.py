"""Embed factory utilities."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import discord

from ..config import RankTier
from .currency import format_amount


def create_embed(
    title: Optional[str] = None,
    description: Optional[str] = None,
    color: discord.Color = discord.Color.blue(),
    footer: Optional[str] = None,
    timestamp: bool = False
) -> discord.Embed:
    """
    Create a standardized Discord embed.

    Args:
        title: Embed title
        description: Embed description
        color: Embed color (default: blue)
        footer: Footer text
        timestamp: Whether to add current timestamp

    Returns:
        Configured Discord Embed
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=color
    )

    if footer:
        embed.set_footer(text=footer)

    if timestamp:
        embed.timestamp = discord.utils.utcnow()

    return embed


def build_promotion_embed(member, tier: RankTier, total: Decimal, currency_symbol: str) -> discord.Embed:
    """Announcement embed for a member reaching a new rank."""
    embed = create_embed(
        title=f"🎉 {member.display_name} was promoted!",
        description=(
            f"**Total spent:** {format_amount(total, currency_symbol)}\n"
            f"**New rank:** <@&{tier.role_id}> ({tier.label})"
        ),
        color=discord.Color.gold(),
        timestamp=True,
    )
    avatar = getattr(member, "display_avatar", None)
    if avatar is not None:
        embed.set_thumbnail(url=avatar.url)
    return embed
