"""
Append-only audit log of executed deletions, newest first.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from ..constants import STORAGE_KEY_ACTION_LOG
from ..core.clock import Clock, SystemClock
from ..core.config import Settings
from ..rules.schema import CamelModel, RuleActions
from ..storage.helpers import Storage


class ActionLogEntry(CamelModel):
    timestamp: int
    url: str
    rule_names: List[str] = Field(default_factory=list)
    actions: RuleActions
    result: Dict[str, Any] = Field(default_factory=dict)


class ActionLog:
    def __init__(self, storage: Storage, settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> None:
        self.logger = logging.getLogger("action_log")
        self.storage = storage
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()

    async def append(
        self,
        url: str,
        rule_names: Sequence[str],
        actions: RuleActions,
        result: BaseModel | Dict[str, Any],
    ) -> ActionLogEntry:
        result_doc = result.model_dump(by_alias=True) if isinstance(result, BaseModel) else dict(result)
        entry = ActionLogEntry(
            timestamp=self.clock.now_ms(),
            url=url,
            rule_names=list(rule_names),
            actions=actions,
            result=result_doc,
        )
        limit = self.settings.action_log_max_entries

        def _prepend(log: Any) -> List[Dict[str, Any]]:
            entries = list(log or [])
            entries.insert(0, entry.to_document())
            return entries[:limit]

        await self.storage.update_local(STORAGE_KEY_ACTION_LOG, _prepend, [])
        return entry

    async def list(self, limit: int = 20) -> List[ActionLogEntry]:
        documents = await self.storage.get_local(STORAGE_KEY_ACTION_LOG, [])
        entries: List[ActionLogEntry] = []
        for document in documents[: max(0, int(limit))]:
            try:
                entries.append(ActionLogEntry.model_validate(document))
            except ValidationError as exc:
                self.logger.warning("Skipping malformed action log entry: %s", exc.errors()[0]["msg"])
        return entries

    async def clear(self) -> None:
        await self.storage.set_local(STORAGE_KEY_ACTION_LOG, [])
