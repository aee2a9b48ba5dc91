from unittest.mock import patch

import pytest

from ease_core.rate_limiter import RateLimitBucket, RateLimiter, _format_wait, rate_limit

from conftest import MockDiscordMember, MockInteraction


@pytest.mark.asyncio
async def test_bucket_blocks_after_max_uses():
    bucket = RateLimitBucket(window=60, max_uses=2)

    assert (await bucket.acquire())[0] is True
    allowed, _retry, remaining = await bucket.acquire()
    assert allowed is True
    assert remaining == 0

    allowed, retry_after, remaining = await bucket.acquire()
    assert allowed is False
    assert 1 <= retry_after <= 60
    assert remaining == 0


@pytest.mark.asyncio
async def test_bucket_frees_slots_after_window():
    bucket = RateLimitBucket(window=10, max_uses=1)

    with patch("ease_core.rate_limiter.time.monotonic", return_value=100.0):
        assert (await bucket.acquire())[0] is True
        assert (await bucket.acquire())[0] is False
    with patch("ease_core.rate_limiter.time.monotonic", return_value=110.5):
        assert (await bucket.acquire())[0] is True


@pytest.mark.asyncio
async def test_limiter_keys_by_scope_and_identifier():
    limiter = RateLimiter()

    assert (await limiter.try_acquire("webhook", "1.1.1.1", 60, 1))[0] is True
    assert (await limiter.try_acquire("webhook", "1.1.1.1", 60, 1))[0] is False
    assert (await limiter.try_acquire("webhook", "2.2.2.2", 60, 1))[0] is True
    assert (await limiter.try_acquire("comprar", "1.1.1.1", 60, 1))[0] is True


@pytest.mark.asyncio
async def test_violation_alert_fires_once_at_threshold():
    limiter = RateLimiter()
    limiter.alert_threshold = 3

    results = [await limiter.record_violation("webhook:1.1.1.1") for _ in range(4)]

    assert [count for count, _alert in results] == [1, 2, 3, 4]
    assert [alert for _count, alert in results] == [False, False, True, False]


@pytest.mark.asyncio
async def test_purge_idle_drops_expired_buckets():
    limiter = RateLimiter()
    with patch("ease_core.rate_limiter.time.monotonic", return_value=0.0):
        await limiter.try_acquire("webhook", "a", 5, 3)
    with patch("ease_core.rate_limiter.time.monotonic", return_value=100.0):
        assert limiter.purge_idle() == 1


def test_format_wait():
    assert _format_wait(5) == "5s"
    assert _format_wait(75) == "1m 15s"


class _Command:
    def __init__(self) -> None:
        self.calls = 0

    @rate_limit(key="test_command", window=60, max_uses=1)
    async def run(self, interaction) -> None:
        self.calls += 1


@pytest.mark.asyncio
async def test_rate_limit_decorator_replies_when_exhausted(mock_guild):
    interaction = MockInteraction(MockDiscordMember(31337), mock_guild)
    command = _Command()

    with patch("ease_core.rate_limiter._RATE_LIMITER", RateLimiter()):
        await command.run(interaction)
        await command.run(interaction)

    assert command.calls == 1
    reply = interaction.response.messages[-1]
    assert reply["ephemeral"] is True
    assert "Please wait" in reply["content"]
