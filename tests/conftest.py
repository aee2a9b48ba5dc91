from decimal import Decimal
from unittest.mock import MagicMock

import discord
import pytest
import pytest_asyncio

from ease_core.audit import AuditLog
from ease_core.config import Config, RankTier, RateLimitRule, StorageSettings
from ease_core.ledger import LedgerStore
from ease_core.pipeline import IngestionPipeline
from ease_core.ranks import RankTable
from ease_core.utils.roles import DiscordGateway

GUILD_ID = 987654321
PROMOTION_CHANNEL_ID = 999001
WEBHOOK_SECRET = "s3cret"

TIER_50_ROLE = 5001
TIER_100_ROLE = 5002
TIER_500_ROLE = 5003
TIER_1000_ROLE = 5004


def not_found_error() -> discord.NotFound:
    response = MagicMock()
    response.status = 404
    response.reason = "Not Found"
    return discord.NotFound(response, "Unknown Member")


class MockDiscordRole:
    def __init__(self, role_id: int, name: str = "Role") -> None:
        self.id = role_id
        self.name = name


class MockDiscordMember:
    def __init__(self, member_id: int, name: str = "Member", roles: list[MockDiscordRole] | None = None) -> None:
        self.id = member_id
        self.name = name
        self.display_name = name
        self.roles: list[MockDiscordRole] = list(roles or [])
        self.roles_added: list[tuple[MockDiscordRole, str | None]] = []
        self.roles_removed: list[tuple[MockDiscordRole, str | None]] = []
        self.calls: list[tuple[str, int]] = []

    async def add_roles(self, role: MockDiscordRole, *, reason: str | None = None) -> None:
        self.calls.append(("add", role.id))
        self.roles_added.append((role, reason))
        self.roles.append(role)

    async def remove_roles(self, role: MockDiscordRole, *, reason: str | None = None) -> None:
        self.calls.append(("remove", role.id))
        self.roles_removed.append((role, reason))
        self.roles = [held for held in self.roles if held.id != role.id]


class MockTextChannel:
    def __init__(self, channel_id: int) -> None:
        self.id = channel_id
        self.messages: list[dict] = []

    async def send(self, content: str | None = None, *, embed=None) -> None:
        self.messages.append({"content": content, "embed": embed})


class MockGuild:
    def __init__(self, guild_id: int = GUILD_ID) -> None:
        self.id = guild_id
        self._members: dict[int, MockDiscordMember] = {}
        self._remote_members: dict[int, MockDiscordMember] = {}
        self._roles: dict[int, MockDiscordRole] = {}
        self._channels: dict[int, MockTextChannel] = {}

    def add_member(self, member: MockDiscordMember, *, cached: bool = True) -> None:
        if cached:
            self._members[member.id] = member
        else:
            self._remote_members[member.id] = member

    def get_member(self, member_id: int) -> MockDiscordMember | None:
        return self._members.get(member_id)

    async def fetch_member(self, member_id: int) -> MockDiscordMember:
        member = self._remote_members.get(member_id) or self._members.get(member_id)
        if member is None:
            raise not_found_error()
        return member

    def add_role(self, role: MockDiscordRole) -> None:
        self._roles[role.id] = role

    def get_role(self, role_id: int) -> MockDiscordRole | None:
        return self._roles.get(role_id)

    def add_channel(self, channel: MockTextChannel) -> None:
        self._channels[channel.id] = channel

    def get_channel(self, channel_id: int) -> MockTextChannel | None:
        return self._channels.get(channel_id)


class MockInteractionResponse:
    def __init__(self) -> None:
        self.messages: list[dict] = []
        self.deferred = False

    async def send_message(self, content: str | None = None, *, embed=None, ephemeral: bool = False) -> None:
        self.messages.append({"content": content, "embed": embed, "ephemeral": ephemeral})

    async def defer(self, *, ephemeral: bool = False, thinking: bool = False) -> None:
        self.deferred = True

    def is_done(self) -> bool:
        return self.deferred or bool(self.messages)


class MockFollowup:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def send(self, content: str | None = None, *, embed=None, ephemeral: bool = False) -> None:
        self.messages.append({"content": content, "embed": embed, "ephemeral": ephemeral})


class MockInteraction:
    def __init__(self, user: MockDiscordMember, guild: MockGuild, client=None) -> None:
        self.user = user
        self.guild = guild
        self.guild_id = guild.id if guild else None
        self.client = client
        self.command = None
        self.response = MockInteractionResponse()
        self.followup = MockFollowup()


class MockBot:
    def __init__(self, guild: MockGuild | None, config: Config) -> None:
        self.guilds = [guild] if guild else []
        self.config = config

    def get_guild(self, guild_id: int) -> MockGuild | None:
        for guild in self.guilds:
            if guild.id == guild_id:
                return guild
        return None


@pytest.fixture
def rank_tiers() -> list[RankTier]:
    return [
        RankTier(threshold=Decimal("50"), role_id=TIER_50_ROLE, name="Bronze"),
        RankTier(threshold=Decimal("100"), role_id=TIER_100_ROLE, name="Silver"),
        RankTier(threshold=Decimal("500"), role_id=TIER_500_ROLE, name="Gold"),
        RankTier(threshold=Decimal("1000"), role_id=TIER_1000_ROLE, name="Diamond"),
    ]


@pytest.fixture
def rank_table(rank_tiers: list[RankTier]) -> RankTable:
    return RankTable(rank_tiers)


@pytest.fixture
def sample_config(rank_tiers: list[RankTier], tmp_path) -> Config:
    return Config(
        token="TEST",
        guild_id=GUILD_ID,
        promotion_channel_id=PROMOTION_CHANNEL_ID,
        admin_role_id=42,
        webhook_secret=WEBHOOK_SECRET,
        ranks=rank_tiers,
        rate_limit=RateLimitRule(max_requests=30, window_seconds=60),
        storage=StorageSettings(data_dir=tmp_path / "data"),
    )


@pytest.fixture
def mock_guild(rank_tiers: list[RankTier]) -> MockGuild:
    guild = MockGuild()
    for tier in rank_tiers:
        guild.add_role(MockDiscordRole(tier.role_id, name=tier.name))
    guild.add_channel(MockTextChannel(PROMOTION_CHANNEL_ID))
    return guild


@pytest.fixture
def mock_member(mock_guild: MockGuild) -> MockDiscordMember:
    member = MockDiscordMember(42, "Buyer")
    mock_guild.add_member(member)
    return member


@pytest.fixture
def mock_bot(mock_guild: MockGuild, sample_config: Config) -> MockBot:
    return MockBot(mock_guild, sample_config)


@pytest.fixture
def ledger(sample_config: Config) -> LedgerStore:
    store = LedgerStore(sample_config.storage.ledger_path, sample_config.storage.backup_path)
    store.initialize()
    return store


@pytest.fixture
def audit_log(sample_config: Config) -> AuditLog:
    log = AuditLog(sample_config.storage.audit_path)
    log.initialize()
    return log


@pytest.fixture
def gateway(mock_bot: MockBot, sample_config: Config) -> DiscordGateway:
    return DiscordGateway(mock_bot, sample_config, timeout=1.0)


@pytest_asyncio.fixture
async def pipeline(sample_config, ledger, audit_log, rank_table, gateway) -> IngestionPipeline:
    pipeline = IngestionPipeline(sample_config, ledger, audit_log, rank_table, gateway)
    yield pipeline
    await pipeline.drain()
