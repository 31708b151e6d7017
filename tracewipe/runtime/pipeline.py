"""
Deletion pipeline: decides whether a URL event turns into a deletion.

Every trigger (visit, tab close, browser close) funnels through
:meth:`Pipeline.process_deletion`. After the paused flag is read, the
dedup check, rule evaluation, trigger gate, token acquisition and dedup
mark run without yielding to the event loop, so two events for the same
URL cannot both pass the dedup check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..buffer.retry_buffer import RetryBuffer
from ..constants import SESSION_KEY_PAUSED, TRIGGER_ASAP, TRIGGER_BROWSER_CLOSE, TRIGGER_TAB_CLOSE
from ..deletion.engine import DeletionEngine
from ..deletion.results import ExecutionResult
from ..deletion.urls import extract_hostname
from ..rules.engine import RulesEngine
from ..rules.schema import RuleTiming
from ..storage.helpers import Storage
from .action_log import ActionLog
from .dedup import RecentUrlCache
from .rate_limit import TokenBucketLimiter


class PipelineOutcome(str, Enum):
    PAUSED = "paused"
    DUPLICATE = "duplicate"
    NO_MATCH = "no-match"
    TRIGGER_DISABLED = "trigger-disabled"
    RATE_LIMITED = "rate-limited"
    DELETED = "deleted"
    BUFFERED = "buffered"


@dataclass
class PipelineResult:
    outcome: PipelineOutcome
    url: str
    trigger: str
    rule_names: List[str] = field(default_factory=list)
    execution: Optional[ExecutionResult] = None


def trigger_enabled(timing: RuleTiming, trigger: str) -> bool:
    if trigger == TRIGGER_ASAP:
        return timing.asap
    if trigger == TRIGGER_TAB_CLOSE:
        return timing.on_tab_close
    if trigger == TRIGGER_BROWSER_CLOSE:
        return timing.on_browser_close
    return False


class Pipeline:
    def __init__(
        self,
        storage: Storage,
        rules: RulesEngine,
        deletion: DeletionEngine,
        buffer: RetryBuffer,
        action_log: ActionLog,
        limiter: TokenBucketLimiter,
        recent: RecentUrlCache,
    ) -> None:
        self.logger = logging.getLogger("pipeline")
        self.storage = storage
        self.rules = rules
        self.deletion = deletion
        self.buffer = buffer
        self.action_log = action_log
        self.limiter = limiter
        self.recent = recent

    async def is_paused(self) -> bool:
        return bool(await self.storage.get_session(SESSION_KEY_PAUSED, False))

    async def process_deletion(self, url: str, trigger: str) -> PipelineResult:
        if await self.is_paused():
            return PipelineResult(PipelineOutcome.PAUSED, url, trigger)

        if self.recent.was_recently_processed(url):
            return PipelineResult(PipelineOutcome.DUPLICATE, url, trigger)

        matches = self.rules.evaluate_url(url)
        if not matches:
            return PipelineResult(PipelineOutcome.NO_MATCH, url, trigger)

        rule_names = [m.rule_name for m in matches]
        if not trigger_enabled(self.rules.merge_timing(matches), trigger):
            return PipelineResult(PipelineOutcome.TRIGGER_DISABLED, url, trigger, rule_names)

        actions = self.rules.merge_actions(matches)
        hostname = extract_hostname(url)
        max_per_minute = min(m.safety.max_deletes_per_minute for m in matches)
        if not self.limiter.acquire(max_per_minute):
            self.logger.info("Rate limited, buffering %s", url)
            await self.buffer.enqueue(url, actions, hostname=hostname, rule_id_matched=matches[0].rule_id)
            return PipelineResult(PipelineOutcome.RATE_LIMITED, url, trigger, rule_names)

        self.recent.mark_processed(url)

        result = await self.deletion.execute_actions(url, actions)
        await self.action_log.append(url, rule_names, actions, result)

        if not result.success:
            await self.buffer.enqueue(url, actions, hostname=hostname, rule_id_matched=matches[0].rule_id)
            outcome = PipelineOutcome.BUFFERED
        else:
            outcome = PipelineOutcome.DELETED

        self.logger.info("[%s] %s %s (rules: %s)", trigger, outcome.value, url, ", ".join(rule_names))
        return PipelineResult(outcome, url, trigger, rule_names, result)
