"""Discord-side role membership and promotion announcements."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Awaitable, TypeVar

import discord

from ..constants import COLLABORATOR_TIMEOUT_SECONDS
from ..errors import CollaboratorError
from .embeds import build_promotion_embed

if TYPE_CHECKING:
    from ..config import Config, RankTier
    from ..ranks import PromotionPlan

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _bounded(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await a Discord call once, converting failures into CollaboratorError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except (discord.HTTPException, asyncio.TimeoutError) as exc:
        raise CollaboratorError(operation, exc) from exc


def held_role_ids(member) -> set[int]:
    return {role.id for role in getattr(member, "roles", [])}


class DiscordGateway:
    """Narrow adapter over the bot for guild, member, role and channel access."""

    def __init__(self, bot, config: Config, timeout: float = COLLABORATOR_TIMEOUT_SECONDS) -> None:
        self.bot = bot
        self.config = config
        self.timeout = timeout

    def get_guild(self):
        if not self.config.guild_id:
            return None
        return self.bot.get_guild(self.config.guild_id)

    async def fetch_member(self, guild, user_id: str):
        """Return the guild member for ``user_id`` or None if unavailable."""
        member_id = int(user_id)
        member = guild.get_member(member_id)
        if member is not None:
            return member

        try:
            return await _bounded(f"fetch member {member_id}", guild.fetch_member(member_id), self.timeout)
        except CollaboratorError as e:
            if isinstance(e.cause, discord.NotFound):
                logger.info("User %s is not a member of guild %s", member_id, guild.id)
            else:
                logger.warning("Could not fetch member %s: %s", member_id, e)
            return None

    async def apply_plan(self, member, guild, plan: PromotionPlan) -> list[CollaboratorError]:
        """
        Execute a promotion plan: every removal first, then the addition.

        Each call is attempted once; failures are logged and collected without
        interrupting the remaining calls.

        Returns:
            The errors raised by individual role calls
        """
        errors: list[CollaboratorError] = []

        for role_id in plan.to_remove:
            error = await self._change_role(member, guild, role_id, add=False)
            if error:
                errors.append(error)

        for role_id in plan.to_add:
            error = await self._change_role(member, guild, role_id, add=True)
            if error:
                errors.append(error)

        return errors

    async def _change_role(self, member, guild, role_id: int, *, add: bool) -> CollaboratorError | None:
        verb = "add" if add else "remove"
        role = guild.get_role(role_id)
        if role is None:
            error = CollaboratorError(f"{verb} role {role_id}")
            logger.warning("Rank role %s not found in guild %s", role_id, guild.id)
            return error

        try:
            if add:
                await _bounded(f"add role {role_id}", member.add_roles(role, reason="Rank promotion"), self.timeout)
            else:
                await _bounded(f"remove role {role_id}", member.remove_roles(role, reason="Rank change"), self.timeout)
        except CollaboratorError as e:
            logger.warning("Failed to %s role %s for user %s: %s", verb, role_id, member.id, e)
            return e

        logger.info("%s rank role %s for user %s", "Added" if add else "Removed", role_id, member.id)
        return None

    async def announce(self, guild, member, tier: RankTier, total: Decimal) -> bool:
        """Post the promotion embed to the promotion channel. Returns True if sent."""
        if not self.config.promotion_channel_id:
            return False

        channel = guild.get_channel(self.config.promotion_channel_id)
        if channel is None or not callable(getattr(channel, "send", None)):
            logger.warning("Promotion channel %s not found", self.config.promotion_channel_id)
            return False

        embed = build_promotion_embed(member, tier, total, self.config.currency_symbol)
        try:
            await _bounded("announce promotion", channel.send(embed=embed), self.timeout)
        except CollaboratorError as e:
            logger.warning("Failed to announce promotion for user %s: %s", member.id, e)
            return False
        return True
