"""
Durable retry buffer for deletions that failed or were deferred.

The buffer is one persisted list. It holds at most one *pending* entry per
URL, is capped at ``buffer_max_entries`` (oldest ``firstSeenAt`` evicted
first, whatever the status), and drops entries older than
``buffer_max_age_ms``. An entry that reaches ``buffer_max_attempts``
freezes into ``failed`` and stays in the buffer for inspection until it
ages out or the buffer is cleared.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, ValidationError

from ..constants import STORAGE_KEY_BUFFER
from ..core.clock import Clock, SystemClock
from ..core.config import Settings
from ..deletion.engine import DeletionEngine
from ..deletion.urls import extract_hostname
from ..rules.schema import CamelModel, RuleActions
from ..runtime.action_log import ActionLog
from ..storage.helpers import Storage

STATUS_PENDING = "pending"
STATUS_FAILED = "failed"


class BufferEntry(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str
    hostname: Optional[str] = None
    actions: RuleActions
    rule_id_matched: Optional[str] = None
    first_seen_at: int
    last_attempt_at: Optional[int] = None
    attempts: int = 0
    status: Literal["pending", "failed"] = STATUS_PENDING


@dataclass
class FlushSummary:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class RetryBuffer:
    def __init__(
        self,
        storage: Storage,
        deletion: DeletionEngine,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        action_log: Optional[ActionLog] = None,
    ) -> None:
        self.logger = logging.getLogger("buffer")
        self.storage = storage
        self.deletion = deletion
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.action_log = action_log

    def _parse(self, documents: Any) -> List[BufferEntry]:
        entries: List[BufferEntry] = []
        for document in documents or []:
            try:
                entries.append(BufferEntry.model_validate(document))
            except ValidationError as exc:
                self.logger.warning("Dropping malformed buffer entry: %s", exc.errors()[0]["msg"])
        return entries

    @staticmethod
    def _dump(entries: List[BufferEntry]) -> List[Dict[str, Any]]:
        return [entry.to_document() for entry in entries]

    async def get_entries(self) -> List[BufferEntry]:
        return self._parse(await self.storage.get_local(STORAGE_KEY_BUFFER, []))

    async def enqueue(
        self,
        url: str,
        actions: RuleActions,
        *,
        hostname: Optional[str] = None,
        rule_id_matched: Optional[str] = None,
    ) -> BufferEntry:
        """Add ``url`` for retry, or refresh its existing pending entry."""
        now = self.clock.now_ms()
        capacity = self.settings.buffer_max_entries
        stored: List[BufferEntry] = []

        def _apply(documents: Any) -> List[Dict[str, Any]]:
            entries = self._parse(documents)
            existing = next((e for e in entries if e.url == url and e.status == STATUS_PENDING), None)
            if existing is not None:
                existing.last_attempt_at = now
                existing.actions = actions
                stored.append(existing)
                return self._dump(entries)

            entry = BufferEntry(
                url=url,
                hostname=hostname or extract_hostname(url),
                actions=actions,
                rule_id_matched=rule_id_matched,
                first_seen_at=now,
            )
            entries.append(entry)
            stored.append(entry)
            if len(entries) > capacity:
                entries.sort(key=lambda e: e.first_seen_at)
                evicted = len(entries) - capacity
                del entries[:evicted]
                self.logger.warning("Buffer full; evicted %s oldest entries", evicted)
            return self._dump(entries)

        await self.storage.update_local(STORAGE_KEY_BUFFER, _apply, [])
        return stored[0]

    async def dequeue_ready(self) -> List[BufferEntry]:
        """Pending entries under the attempt ceiling and outside the retry spacing."""
        now = self.clock.now_ms()
        spacing = self.settings.buffer_retry_spacing_ms
        ceiling = self.settings.buffer_max_attempts
        return [
            entry
            for entry in await self.get_entries()
            if entry.status == STATUS_PENDING
            and entry.attempts < ceiling
            and (entry.last_attempt_at is None or now - entry.last_attempt_at > spacing)
        ]

    async def mark_success(self, entry_id: str) -> bool:
        removed: List[bool] = []

        def _apply(documents: Any) -> List[Dict[str, Any]]:
            entries = self._parse(documents)
            kept = [e for e in entries if e.id != entry_id]
            removed.append(len(kept) != len(entries))
            return self._dump(kept)

        await self.storage.update_local(STORAGE_KEY_BUFFER, _apply, [])
        return removed[0]

    async def mark_failed(self, entry_id: str) -> Optional[BufferEntry]:
        """Count a failed attempt; freeze the entry at the attempt ceiling."""
        now = self.clock.now_ms()
        ceiling = self.settings.buffer_max_attempts
        updated: List[BufferEntry] = []

        def _apply(documents: Any) -> List[Dict[str, Any]]:
            entries = self._parse(documents)
            entry = next((e for e in entries if e.id == entry_id), None)
            if entry is not None:
                entry.attempts += 1
                entry.last_attempt_at = now
                if entry.attempts >= ceiling:
                    entry.status = STATUS_FAILED
                updated.append(entry)
            return self._dump(entries)

        await self.storage.update_local(STORAGE_KEY_BUFFER, _apply, [])
        if not updated:
            return None
        entry = updated[0]
        if entry.status == STATUS_FAILED:
            self.logger.warning("Giving up on %s after %s attempts", entry.url, entry.attempts)
            if self.action_log is not None:
                await self.action_log.append(
                    entry.url,
                    ["Retry buffer"],
                    entry.actions,
                    {"success": False, "error": f"Gave up after {entry.attempts} attempts"},
                )
        return entry

    async def trim_expired(self) -> int:
        """Drop entries older than the maximum age; returns how many went."""
        cutoff = self.clock.now_ms() - self.settings.buffer_max_age_ms
        async with self.storage.key_lock(STORAGE_KEY_BUFFER):
            entries = await self.get_entries()
            kept = [e for e in entries if e.first_seen_at > cutoff]
            removed = len(entries) - len(kept)
            if removed:
                await self.storage.set_local(STORAGE_KEY_BUFFER, self._dump(kept))
                self.logger.info("Trimmed %s expired buffer entries", removed)
        return removed

    async def flush(self) -> FlushSummary:
        """Retry every ready entry, one at a time."""
        summary = FlushSummary()
        ready = await self.dequeue_ready()
        if not ready:
            return summary
        self.logger.info("Flushing %s buffered entries", len(ready))
        for entry in ready:
            result = await self.deletion.execute_actions(entry.url, entry.actions, history_log_context="buffer")
            summary.processed += 1
            if result.success:
                await self.mark_success(entry.id)
                summary.succeeded += 1
            else:
                await self.mark_failed(entry.id)
                summary.failed += 1
        return summary

    async def get_stats(self) -> Dict[str, int]:
        entries = await self.get_entries()
        return {
            "total": len(entries),
            "pending": sum(1 for e in entries if e.status == STATUS_PENDING),
            "failed": sum(1 for e in entries if e.status == STATUS_FAILED),
        }

    async def clear(self) -> None:
        await self.storage.set_local(STORAGE_KEY_BUFFER, [])
