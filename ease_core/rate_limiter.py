"""Sliding-window rate limiting for the webhook endpoint and slash commands."""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import discord

from .constants import (
    RATE_LIMIT_ALERT_THRESHOLD,
    RATE_LIMIT_ALERT_WINDOW_SECONDS,
)
from .logger import get_logger

logger = get_logger()

F = TypeVar("F", bound=Callable[..., Any])


class RateLimitBucket:
    """Tracks request timestamps for one source within a rolling window."""

    __slots__ = ("window", "max_uses", "timestamps", "lock")

    def __init__(self, window: float, max_uses: int) -> None:
        self.window = window
        self.max_uses = max_uses
        self.timestamps: deque[float] = deque()
        self.lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        timestamps = self.timestamps
        while timestamps and (now - timestamps[0]) >= self.window:
            timestamps.popleft()

    async def acquire(self) -> tuple[bool, int, int]:
        """
        Attempt to consume a token.

        Returns:
            allowed: Whether the request may continue
            retry_after: Seconds before the next available token (0 if allowed)
            remaining_uses: Remaining uses within the current window
        """
        async with self.lock:
            now = time.monotonic()
            self._prune(now)

            if len(self.timestamps) >= self.max_uses:
                oldest = self.timestamps[0]
                retry_after = math.ceil(self.window - (now - oldest))
                return False, max(retry_after, 1), 0

            self.timestamps.append(now)
            return True, 0, max(0, self.max_uses - len(self.timestamps))

    def is_idle(self, now: float) -> bool:
        return not self.timestamps or (now - self.timestamps[-1]) >= self.window


class RateLimiter:
    """In-memory rate limiter keyed by ``<scope>:<identifier>``."""

    def __init__(self) -> None:
        self._buckets: dict[str, RateLimitBucket] = {}
        self._violation_history: dict[str, deque[float]] = {}
        self._violation_lock = asyncio.Lock()
        self.alert_threshold = RATE_LIMIT_ALERT_THRESHOLD
        self.alert_window = RATE_LIMIT_ALERT_WINDOW_SECONDS

    def _get_bucket(self, key: str, window: float, max_uses: int) -> RateLimitBucket:
        bucket = self._buckets.get(key)
        if bucket is None or bucket.window != window or bucket.max_uses != max_uses:
            bucket = RateLimitBucket(window, max_uses)
            self._buckets[key] = bucket
        return bucket

    async def try_acquire(
        self,
        scope: str,
        identifier: str | int,
        window: float,
        max_uses: int,
    ) -> tuple[bool, int, int]:
        """Attempt to use a rate limited operation for ``identifier``."""
        bucket = self._get_bucket(f"{scope}:{identifier}", window, max_uses)
        return await bucket.acquire()

    async def record_violation(self, key: str) -> tuple[int, bool]:
        """
        Record a violation and report whether it crossed the alert threshold.

        Returns:
            (violation_count, should_alert)
        """
        now = time.monotonic()
        async with self._violation_lock:
            history = self._violation_history.setdefault(key, deque())
            history.append(now)
            while history and (now - history[0]) > self.alert_window:
                history.popleft()
            return len(history), len(history) == self.alert_threshold

    def purge_idle(self) -> int:
        """Drop buckets with no activity in their window. Returns the count removed."""
        now = time.monotonic()
        idle = [key for key, bucket in self._buckets.items() if bucket.is_idle(now)]
        for key in idle:
            del self._buckets[key]
        return len(idle)


_RATE_LIMITER = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    """Expose the singleton rate limiter."""
    return _RATE_LIMITER


def _format_wait(seconds: int) -> str:
    if seconds >= 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"


def rate_limit(*, key: str, window: int, max_uses: int) -> Callable[[F], F]:
    """Per-user rate limit for cog app-command callbacks ``(self, interaction, ...)``."""

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(self_obj: Any, interaction: discord.Interaction, *args: Any, **kwargs: Any) -> Any:
            limiter = get_rate_limiter()
            allowed, retry_after, _remaining = await limiter.try_acquire(
                scope=key,
                identifier=interaction.user.id,
                window=window,
                max_uses=max_uses,
            )
            if allowed:
                return await func(self_obj, interaction, *args, **kwargs)

            logger.warning("Rate limit triggered | command=%s user=%s", key, interaction.user.id)
            await limiter.record_violation(f"{key}:{interaction.user.id}")
            await interaction.response.send_message(
                f"⏱️ Please wait {_format_wait(retry_after)} before using this command again.",
                ephemeral=True,
            )
            return None

        return wrapper  # type: ignore[return-value]

    return decorator
