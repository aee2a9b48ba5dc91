"""Durable purchase ledger backed by a single JSON file."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from .constants import BACKUP_RETENTION_DAYS, MAX_CONTRIBUTION_AMOUNT, PROCESSED_EVENT_HISTORY
from .errors import PersistenceError, ValidationError
from .logger import get_logger
from .utils.currency import add_rounded, to_decimal
from .utils.files import read_json, write_json_atomically

logger = get_logger()

VALID_SOURCES = frozenset({"manual", "webhook"})
ZERO = Decimal("0")
BACKUP_PREFIX = "ledger_backup_"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _as_number(value: Decimal) -> int | float:
    # Keep the on-disk format plain JSON numbers.
    return int(value) if value == value.to_integral_value() else float(value)


def _stored_decimal(value: Any, *, field_name: str) -> Decimal:
    number = to_decimal(value)
    if number is None or not number.is_finite():
        raise PersistenceError(f"Ledger field {field_name} is not a number: {value!r}")
    return number


@dataclass(frozen=True)
class PurchaseEvent:
    ts: str
    amount: Decimal
    source: str
    event_id: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ts": self.ts, "amount": _as_number(self.amount), "source": self.source}
        if self.event_id:
            data["eventId"] = self.event_id
        if self.context:
            data["context"] = dict(self.context)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PurchaseEvent:
        return cls(
            ts=str(data.get("ts", "")),
            amount=_stored_decimal(data.get("amount"), field_name="history.amount"),
            source=str(data.get("source", "")),
            event_id=data.get("eventId"),
            context=dict(data.get("context") or {}),
        )


@dataclass
class UserAccount:
    user_id: str
    total: Decimal = ZERO
    history: list[PurchaseEvent] = field(default_factory=list)

    def credit(self, event: PurchaseEvent) -> None:
        self.total = add_rounded(self.total, event.amount)
        self.history.append(event)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": _as_number(self.total),
            "history": [event.to_dict() for event in self.history],
        }

    @classmethod
    def from_dict(cls, user_id: str, data: Mapping[str, Any]) -> UserAccount:
        return cls(
            user_id=user_id,
            total=_stored_decimal(data.get("total", 0), field_name=f"users.{user_id}.total"),
            history=[PurchaseEvent.from_dict(item) for item in data.get("history", [])],
        )


@dataclass
class GlobalMeta:
    total_all: Decimal = ZERO
    processed_events: list[str] = field(default_factory=list)

    def record(self, amount: Decimal, event_id: str | None = None) -> None:
        self.total_all = add_rounded(self.total_all, amount)
        if event_id:
            self.processed_events.append(event_id)
            if len(self.processed_events) > PROCESSED_EVENT_HISTORY:
                del self.processed_events[: len(self.processed_events) - PROCESSED_EVENT_HISTORY]

    def to_dict(self) -> dict[str, Any]:
        return {"totalAll": _as_number(self.total_all), "processedEvents": list(self.processed_events)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> GlobalMeta:
        data = data or {}
        return cls(
            total_all=_stored_decimal(data.get("totalAll", 0), field_name="meta.totalAll"),
            processed_events=[str(item) for item in data.get("processedEvents", [])],
        )


@dataclass
class LedgerState:
    users: dict[str, UserAccount] = field(default_factory=dict)
    meta: GlobalMeta = field(default_factory=GlobalMeta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": {user_id: account.to_dict() for user_id, account in self.users.items()},
            "meta": self.meta.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> LedgerState:
        if not isinstance(data, Mapping) or not isinstance(data.get("users", {}), Mapping):
            raise PersistenceError("Ledger file does not contain a users mapping")
        try:
            users = {
                str(user_id): UserAccount.from_dict(str(user_id), payload)
                for user_id, payload in data.get("users", {}).items()
            }
            meta = GlobalMeta.from_dict(data.get("meta"))
        except (AttributeError, TypeError) as exc:
            raise PersistenceError(f"Ledger file is malformed: {exc}") from exc
        return cls(users=users, meta=meta)


@dataclass(frozen=True)
class ContributionResult:
    account: UserAccount
    total_all: Decimal
    event: PurchaseEvent | None
    duplicate: bool = False


def validate_amount(amount: Any) -> Decimal:
    """Return ``amount`` as a Decimal or raise ValidationError if it is not finite and positive."""
    value = to_decimal(amount)
    if value is None or not value.is_finite() or value <= 0:
        raise ValidationError(f"amount must be a finite positive number (got {amount!r})")
    if value > MAX_CONTRIBUTION_AMOUNT:
        raise ValidationError(f"amount exceeds the maximum of {MAX_CONTRIBUTION_AMOUNT} (got {amount!r})")
    return value


class LedgerStore:
    """Single-owner store for user totals, purchase history and global meta.

    Every mutation runs one load/mutate/save cycle under ``self._lock`` so
    concurrent contributions from the webhook and the slash command never
    lose an update.
    """

    def __init__(self, path: str | Path, backup_dir: str | Path | None = None) -> None:
        self.path = Path(path)
        self.backup_dir = Path(backup_dir) if backup_dir is not None else self.path.parent / "backups"
        self._lock = asyncio.Lock()

    def initialize(self) -> None:
        """Create the data and backup directories and an empty ledger if absent."""
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to create ledger directories: {exc}") from exc
        if not self.path.exists():
            write_json_atomically(self.path, LedgerState().to_dict())
            logger.info(f"Created empty ledger at {self.path}")

    def _read_state(self) -> LedgerState:
        return LedgerState.from_dict(read_json(self.path, {"users": {}, "meta": {"totalAll": 0}}))

    def _write_state(self, state: LedgerState) -> None:
        write_json_atomically(self.path, state.to_dict())

    async def load(self) -> LedgerState:
        return await asyncio.to_thread(self._read_state)

    async def save(self, state: LedgerState) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_state, state)

    async def get_or_create(self, user_id: str) -> UserAccount:
        """Return the stored account or a zero-valued one (not persisted)."""
        state = await self.load()
        return state.users.get(user_id) or UserAccount(user_id=user_id)

    async def apply_contribution(
        self,
        user_id: str,
        amount: Any,
        source: str,
        *,
        event_id: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> ContributionResult:
        """
        Credit ``amount`` to ``user_id`` and persist the whole ledger.

        Args:
            user_id: Digits-only user identifier
            amount: Positive finite amount in currency units
            source: ``"manual"`` or ``"webhook"``
            event_id: Sender-supplied identifier used to drop redeliveries
            context: Correlation fields kept on the purchase event

        Returns:
            ContributionResult with the updated account; ``duplicate`` is set
            (and nothing is written) when ``event_id`` was already applied

        Raises:
            ValidationError: If the amount, source or user id is invalid
            PersistenceError: If the ledger cannot be read or written
        """
        value = validate_amount(amount)
        if source not in VALID_SOURCES:
            raise ValidationError(f"source must be one of {sorted(VALID_SOURCES)} (got {source!r})")
        if not user_id:
            raise ValidationError("user_id is required")

        async with self._lock:
            state = await asyncio.to_thread(self._read_state)
            account = state.users.get(user_id)

            if event_id and event_id in state.meta.processed_events:
                logger.info(f"Skipping already applied event {event_id} for user {user_id}")
                return ContributionResult(
                    account=account or UserAccount(user_id=user_id),
                    total_all=state.meta.total_all,
                    event=None,
                    duplicate=True,
                )

            if account is None:
                account = UserAccount(user_id=user_id)
                state.users[user_id] = account

            event = PurchaseEvent(
                ts=_utcnow_iso(),
                amount=value,
                source=source,
                event_id=event_id,
                context=dict(context or {}),
            )
            account.credit(event)
            state.meta.record(value, event_id)

            await asyncio.to_thread(self._write_state, state)

        logger.info(f"Recorded {source} contribution of {value} for user {user_id} (total {account.total})")
        return ContributionResult(account=account, total_all=state.meta.total_all, event=event)

    async def create_backup(self) -> Path:
        """Copy the current ledger into a timestamped snapshot file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        destination = self.backup_dir / f"{BACKUP_PREFIX}{timestamp}.json"

        async with self._lock:
            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
                if self.path.exists():
                    await asyncio.to_thread(shutil.copy2, self.path, destination)
                else:
                    await asyncio.to_thread(write_json_atomically, destination, LedgerState().to_dict())
            except OSError as exc:
                raise PersistenceError(f"Unable to create ledger backup: {exc}") from exc

        logger.info(f"Ledger backup created: {destination}")
        return destination

    def list_backups(self) -> list[Path]:
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.json"))

    def prune_backups(self, keep_days: int = BACKUP_RETENTION_DAYS) -> int:
        """Delete snapshots older than ``keep_days``. Returns the number removed."""
        cutoff = datetime.now() - timedelta(days=keep_days)
        deleted = 0
        for backup in self.list_backups():
            try:
                date_str = backup.stem[len(BACKUP_PREFIX):].split("_")[0]
                backup_date = datetime.strptime(date_str, "%Y%m%d")
            except (ValueError, IndexError):
                continue
            if backup_date < cutoff:
                backup.unlink()
                deleted += 1
        return deleted
