"""Ingestion pipeline shared by the purchase webhook and the manual command.

Webhook path:  RECEIVED -> VERIFIED -> PERSISTED -> RESOLVED -> SYNCED -> NOTIFIED
Manual path:   RECEIVED -> PERSISTED -> RESOLVED -> SYNCED -> NOTIFIED

Signature and payload checks always run before the ledger is touched. Once a
contribution is persisted it stands: role sync and announcements are
best-effort and their failures are only logged.
"""

from __future__ import annotations

import asyncio
import enum
import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from .audit import AuditLog
from .config import Config, RankTier
from .errors import AuthenticationError, ConfigurationError, PersistenceError, ValidationError
from .ledger import LedgerStore, UserAccount, validate_amount
from .logger import get_logger
from .ranks import NO_CHANGE, PromotionResult, RankTable, plan_promotion
from .signature import authenticate
from .utils.roles import DiscordGateway, held_role_ids

logger = get_logger()

NON_DIGITS = re.compile(r"\D")
BUYER_ID_KEYS = ("buyer_id", "user_id", "id")
AMOUNT_KEYS = ("amount", "value")
EVENT_ID_KEYS = ("event_id", "transaction_id")
PAYLOAD_SNAPSHOT_MAX_CHARS = 2000

NOTE_GUILD_NOT_FOUND = "saved but guild not found"
NOTE_MEMBER_NOT_FOUND = "saved but member not in guild"
NOTE_DUPLICATE_EVENT = "duplicate event"


class IngestionState(enum.Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    PERSISTED = "persisted"
    RESOLVED = "resolved"
    SYNCED = "synced"
    NOTIFIED = "notified"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class WebhookResponse:
    status: int
    body: dict[str, Any]


@dataclass(frozen=True)
class PurchasePayload:
    buyer_id: str
    amount: Decimal
    event_id: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncOutcome:
    result: PromotionResult = NO_CHANGE
    note: str | None = None
    announced: bool = False


@dataclass(frozen=True)
class ManualReceipt:
    account: UserAccount
    amount: Decimal
    tier: RankTier | None


def _first_truthy(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return None


def _snapshot(raw_body: bytes) -> Any:
    text = raw_body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text[:PAYLOAD_SNAPSHOT_MAX_CHARS]


def parse_purchase_payload(raw_body: bytes) -> PurchasePayload:
    """
    Decode a webhook body into a purchase.

    The buyer is the first truthy of ``buyer_id``/``user_id``/``id`` with every
    non-digit stripped; the amount is the first truthy of ``amount``/``value``.

    Raises:
        ValidationError: If the body is not a JSON object, has no buyer, or the
            amount is not a finite positive number
    """
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ValidationError(f"payload is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    raw_buyer = _first_truthy(payload, BUYER_ID_KEYS)
    buyer_id = NON_DIGITS.sub("", str(raw_buyer)) if raw_buyer is not None else ""
    if not buyer_id:
        raise ValidationError("payload has no buyer identifier")

    amount = validate_amount(_first_truthy(payload, AMOUNT_KEYS))

    raw_event_id = _first_truthy(payload, EVENT_ID_KEYS)
    event_id = str(raw_event_id) if raw_event_id is not None else None

    context = {key: payload[key] for key in ("order_id", "product", "currency") if key in payload}
    return PurchasePayload(buyer_id=buyer_id, amount=amount, event_id=event_id, context=context)


class IngestionPipeline:
    """Orchestrates verification, persistence, rank resolution and role sync."""

    def __init__(
        self,
        config: Config,
        ledger: LedgerStore,
        audit: AuditLog,
        ranks: RankTable,
        gateway: DiscordGateway,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.audit = audit
        self.ranks = ranks
        self.gateway = gateway
        self._background_tasks: set[asyncio.Task] = set()

    def _advance(self, label: str, state: IngestionState) -> None:
        logger.debug("ingestion %s -> %s", label, state.value)

    # region Webhook
    async def handle_webhook(self, raw_body: bytes, signature: str | None, *, source_ip: str | None = None) -> WebhookResponse:
        """Run the webhook path and map its outcome to an HTTP-style response."""
        try:
            return await self._handle_webhook(raw_body, signature, source_ip)
        except Exception as e:
            logger.error(f"Webhook processing failed: {e}", exc_info=True)
            await self.audit.record("webhook_top_error", error=str(e))
            return WebhookResponse(500, {"error": "internal"})

    async def _handle_webhook(self, raw_body: bytes, signature: str | None, source_ip: str | None) -> WebhookResponse:
        label = "webhook"
        self._advance(label, IngestionState.RECEIVED)

        signature = (signature or "").strip()
        try:
            authenticate(raw_body, signature, self.config.webhook_secret)
        except ConfigurationError:
            logger.error("Webhook rejected: WEBHOOK_SECRET is not configured")
            await self.audit.record("hmac_missing")
            self._advance(label, IngestionState.REJECTED)
            return WebhookResponse(500, {"error": "server misconfigured"})
        except AuthenticationError as e:
            await self.audit.record(e.category, ip=source_ip)
            self._advance(label, IngestionState.REJECTED)
            return WebhookResponse(401, {"error": str(e)})
        self._advance(label, IngestionState.VERIFIED)

        try:
            purchase = parse_purchase_payload(raw_body)
        except ValidationError as e:
            logger.warning(f"Webhook rejected with bad payload: {e}")
            await self.audit.record("bad_payload", payload=_snapshot(raw_body), reason=str(e))
            self._advance(label, IngestionState.REJECTED)
            return WebhookResponse(400, {"error": "bad payload"})

        try:
            contribution = await self.ledger.apply_contribution(
                purchase.buyer_id,
                purchase.amount,
                "webhook",
                event_id=purchase.event_id,
                context=purchase.context,
            )
        except PersistenceError as e:
            logger.error(f"Ledger write failed for buyer {purchase.buyer_id}: {e}")
            await self.audit.record("webhook_top_error", error="persistence", buyerId=purchase.buyer_id)
            return WebhookResponse(500, {"error": "internal"})

        if contribution.duplicate:
            await self.audit.record("duplicate_event", buyerId=purchase.buyer_id, eventId=purchase.event_id)
            self._advance(label, IngestionState.ACCEPTED)
            return WebhookResponse(200, {"ok": True, "note": NOTE_DUPLICATE_EVENT})

        await self.audit.record("purchase", buyerId=purchase.buyer_id, amount=float(purchase.amount), eventId=purchase.event_id)
        self._advance(f"webhook:{purchase.buyer_id}", IngestionState.PERSISTED)

        outcome = await self.sync_member(purchase.buyer_id, contribution.account.total, source="webhook")
        self._advance(f"webhook:{purchase.buyer_id}", IngestionState.ACCEPTED)

        body: dict[str, Any] = {"ok": True}
        if outcome.note:
            body["note"] = outcome.note
        return WebhookResponse(200, body)
    # endregion

    # region Manual
    async def record_manual(self, user_id: str | int, amount: Any) -> ManualReceipt:
        """
        Apply a manually reported contribution and resolve the resulting rank.

        Role synchronization is not performed here; call :meth:`schedule_sync`
        once the caller has answered the user.

        Raises:
            ValidationError: If the amount is not a finite positive number
            PersistenceError: If the ledger cannot be written
        """
        user_key = NON_DIGITS.sub("", str(user_id))
        contribution = await self.ledger.apply_contribution(user_key, amount, "manual")
        credited = contribution.event.amount
        await self.audit.record("manual_purchase", userId=user_key, amount=float(credited))
        tier = self.ranks.resolve(contribution.account.total)
        self._advance(f"manual:{user_key}", IngestionState.RESOLVED)
        return ManualReceipt(account=contribution.account, amount=credited, tier=tier)

    def schedule_sync(self, user_id: str, total: Decimal, *, source: str = "manual") -> asyncio.Task:
        """Run :meth:`sync_member` in the background and keep a reference to the task."""
        task = asyncio.create_task(self.sync_member(user_id, total, source=source))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding background syncs (used at shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
    # endregion

    # region Sync
    async def sync_member(self, user_id: str, total: Decimal, *, source: str) -> SyncOutcome:
        """
        Resolve the target rank for ``total`` and align the member's roles.

        Never raises: Discord failures are logged and reported as notes.
        """
        try:
            return await self._sync_member(user_id, total, source)
        except Exception as e:
            logger.error(f"Role sync failed for user {user_id}: {e}", exc_info=True)
            await self.audit.record("role_sync_error", userId=user_id, error=str(e))
            return SyncOutcome()

    async def _sync_member(self, user_id: str, total: Decimal, source: str) -> SyncOutcome:
        label = f"{source}:{user_id}"
        target = self.ranks.resolve(total)
        self._advance(label, IngestionState.RESOLVED)

        guild = self.gateway.get_guild()
        if guild is None:
            logger.warning(f"Guild {self.config.guild_id} not available; skipping role sync for {user_id}")
            return SyncOutcome(note=NOTE_GUILD_NOT_FOUND)

        member = await self.gateway.fetch_member(guild, user_id)
        if member is None:
            return SyncOutcome(note=NOTE_MEMBER_NOT_FOUND)

        plan = plan_promotion(held_role_ids(member), target, self.ranks.role_ids)
        if plan.is_empty:
            return SyncOutcome()

        errors = await self.gateway.apply_plan(member, guild, plan)
        self._advance(label, IngestionState.SYNCED)
        result = plan.result
        if not result.promoted:
            return SyncOutcome(result=result)

        await self.audit.record(
            f"role_added_{source}",
            userId=user_id,
            role=str(result.tier.role_id),
            removed=[str(role_id) for role_id in plan.to_remove],
            failures=len(errors),
        )
        announced = await self.gateway.announce(guild, member, result.tier, total)
        if announced:
            self._advance(label, IngestionState.NOTIFIED)
        return SyncOutcome(result=result, announced=announced)

    async def reconcile_all(self) -> int:
        """Re-derive and re-apply the target rank for every ledger account."""
        state = await self.ledger.load()
        promoted = 0
        for user_id, account in state.users.items():
            outcome = await self.sync_member(user_id, account.total, source="resync")
            if outcome.result.promoted:
                promoted += 1
        logger.info(f"Rank reconciliation finished: {promoted} promotion(s) across {len(state.users)} account(s)")
        return promoted
    # endregion
