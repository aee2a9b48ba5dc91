"""Bounded, append-only audit trail of accepted and rejected events."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .constants import AUDIT_LOG_CAPACITY, AUDIT_LOG_DEFAULT_READ_LIMIT
from .errors import PersistenceError
from .logger import get_logger
from .utils.files import read_json, write_json_atomically

logger = get_logger()
audit_logger = get_logger("audit")


def _json_safe(context: dict[str, Any]) -> dict[str, Any]:
    # Decimals and other non-JSON values are kept as their string form.
    return json.loads(json.dumps(context, default=str))


class AuditLog:
    """Ring of audit entries persisted as a JSON array.

    Once the log holds more than ``capacity`` entries the oldest ones are
    dropped from the front. Appends are independent of the ledger and carry
    no transactional guarantee with it.
    """

    def __init__(self, path: str | Path, capacity: int = AUDIT_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive (got {capacity})")
        self.path = Path(path)
        self.capacity = capacity
        self._lock = asyncio.Lock()

    def initialize(self) -> None:
        if not self.path.exists():
            write_json_atomically(self.path, [])

    def _read_entries(self) -> list[dict[str, Any]]:
        entries = read_json(self.path, [])
        if not isinstance(entries, list):
            raise PersistenceError(f"Audit log {self.path} is not a JSON array")
        return entries

    def _append_entry(self, entry: dict[str, Any]) -> None:
        entries = self._read_entries()
        entries.append(entry)
        if len(entries) > self.capacity:
            del entries[: len(entries) - self.capacity]
        write_json_atomically(self.path, entries)

    async def append(self, entry_type: str, **context: Any) -> dict[str, Any]:
        """
        Append an entry and trim the log to capacity.

        The read-trim-write cycle runs in a worker thread under ``self._lock``.

        Raises:
            PersistenceError: If the log cannot be read or written
        """
        entry = {"ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"), "type": entry_type}
        entry.update(_json_safe(context))

        async with self._lock:
            await asyncio.to_thread(self._append_entry, entry)

        audit_logger.info("%s %s", entry_type, json.dumps(context, default=str, sort_keys=True))
        return entry

    async def record(self, entry_type: str, **context: Any) -> dict[str, Any] | None:
        """Best-effort :meth:`append`; storage failures are logged, not raised."""
        try:
            return await self.append(entry_type, **context)
        except PersistenceError as e:
            logger.error(f"Failed to write audit entry {entry_type}: {e}")
            return None

    async def read(self, limit: int = AUDIT_LOG_DEFAULT_READ_LIMIT) -> list[dict[str, Any]]:
        """Return up to ``limit`` most recent entries, newest first."""
        if limit <= 0:
            return []
        entries = await asyncio.to_thread(self._read_entries)
        return list(reversed(entries[-limit:]))
