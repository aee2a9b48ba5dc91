"""Shared utilities for Ease Core."""

from .currency import add_rounded, format_amount, round_cents, to_decimal
from .embeds import build_promotion_embed, create_embed
from .roles import DiscordGateway, held_role_ids

__all__ = [
    "add_rounded",
    "format_amount",
    "round_cents",
    "to_decimal",
    "create_embed",
    "build_promotion_embed",
    "DiscordGateway",
    "held_role_ids",
]
