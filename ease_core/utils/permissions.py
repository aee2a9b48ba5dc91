"""Permission checking utilities for ledger administration commands."""

from __future__ import annotations

from typing import Optional

import discord
from discord import app_commands

from ..config import Config


def is_admin(
    user: discord.abc.User,
    guild: Optional[discord.Guild],
    config: Config,
) -> bool:
    """
    Check if a user may run ledger administration commands.

    A member qualifies with the configured admin role or, when no admin role
    is configured, with the Administrator permission.

    Args:
        user: Discord user to check
        guild: Guild context (None if in DMs)
        config: Bot configuration

    Returns:
        True if user has admin privileges, False otherwise
    """
    if guild is None:
        return False

    member = guild.get_member(user.id)
    if not member:
        return False

    if config.admin_role_id:
        return any(role.id == config.admin_role_id for role in getattr(member, "roles", []))

    permissions = getattr(member, "guild_permissions", None)
    return bool(permissions and permissions.administrator)


def admin_command_check(interaction: discord.Interaction) -> bool:
    if not interaction.guild:
        return False
    config = getattr(interaction.client, "config", None)
    if config is None:
        return False
    return is_admin(interaction.user, interaction.guild, config)


def admin_only():
    """Decorator restricting an app command to ledger admins."""
    return app_commands.check(admin_command_check)
