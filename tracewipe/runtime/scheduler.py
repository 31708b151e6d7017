"""
Alarm-driven scheduler for periodic sweeps and buffer flushing.

Host alarms are the only timers: one periodic alarm per enabled rule with
``periodicMinutes`` (named ``ALARM_PERIODIC_PREFIX + rule id``) and one
fixed-interval alarm that flushes the retry buffer.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Set

from pydantic import ValidationError

from ..buffer.retry_buffer import RetryBuffer
from ..constants import ALARM_BUFFER_FLUSH, ALARM_PERIODIC_PREFIX, STORAGE_KEY_RULES
from ..core.config import Settings
from ..core.errors import log_exception
from ..deletion.engine import DeletionEngine
from ..host.capabilities import Alarm, AlarmCapability, HistoryCapability
from ..rules.engine import RulesEngine
from ..rules.schema import Rule
from ..storage.helpers import Storage


def periodic_alarm_name(rule_id: str) -> str:
    return f"{ALARM_PERIODIC_PREFIX}{rule_id}"


class Scheduler:
    """Reconciles host alarms with rules and routes alarm firings."""

    def __init__(
        self,
        alarms: AlarmCapability,
        history: HistoryCapability,
        storage: Storage,
        rules: RulesEngine,
        deletion: DeletionEngine,
        buffer: RetryBuffer,
        settings: Optional[Settings] = None,
    ) -> None:
        self.logger = logging.getLogger("scheduler")
        self.alarms = alarms
        self.history = history
        self.storage = storage
        self.rules = rules
        self.deletion = deletion
        self.buffer = buffer
        self.settings = settings or Settings()

    def _parse_rules(self, documents: Iterable[Any]) -> list[Rule]:
        parsed: list[Rule] = []
        for document in documents or []:
            if isinstance(document, Rule):
                parsed.append(document)
                continue
            try:
                parsed.append(Rule.model_validate(document))
            except ValidationError:
                self.logger.warning("Ignoring malformed rule while syncing alarms")
        return parsed

    async def sync_alarms(self, rules: Iterable[Any]) -> None:
        """Create missing periodic alarms and clear orphaned ones."""
        existing = {alarm.name for alarm in await self.alarms.get_all()}
        wanted: Set[str] = set()
        for rule in self._parse_rules(rules):
            if not rule.enabled or rule.timing.periodic_minutes is None:
                continue
            name = periodic_alarm_name(rule.id)
            wanted.add(name)
            if name in existing:
                continue
            period = max(self.settings.alarm_min_period_minutes, rule.timing.periodic_minutes)
            await self.alarms.create(name, period, period)
            self.logger.info('Created periodic alarm for rule "%s" every %smin', rule.name, period)

        for name in existing:
            if name.startswith(ALARM_PERIODIC_PREFIX) and name not in wanted:
                await self.alarms.clear(name)
                self.logger.info("Removed orphaned alarm %s", name)

    async def ensure_buffer_flush_alarm(self) -> None:
        if await self.alarms.get(ALARM_BUFFER_FLUSH) is not None:
            return
        interval = self.settings.buffer_flush_interval_minutes
        await self.alarms.create(ALARM_BUFFER_FLUSH, interval, interval)
        self.logger.info("Created buffer flush alarm every %smin", interval)

    async def handle_alarm(self, alarm: Alarm | str) -> int:
        """Route one alarm firing; returns the number of URLs it deleted."""
        name = alarm if isinstance(alarm, str) else alarm.name
        if name == ALARM_BUFFER_FLUSH:
            try:
                summary = await self.buffer.flush()
            except Exception as exc:
                log_exception(self.logger, "Buffer flush failed", exc=exc)
                return 0
            return summary.succeeded
        if name.startswith(ALARM_PERIODIC_PREFIX):
            return await self.run_periodic_sweep(name)
        return 0

    async def run_periodic_sweep(self, alarm_name: str) -> int:
        """
        Sweep the full history for the alarm's rule.

        The alarm's rule only decides whether the alarm survives; every
        compiled rule is applied to the history items found. Returns the
        number of items whose plan executed successfully.
        """
        rule_id = alarm_name[len(ALARM_PERIODIC_PREFIX):]
        deleted = 0
        try:
            documents = await self.storage.get_local(STORAGE_KEY_RULES, [])
            rule = next((r for r in self._parse_rules(documents) if r.id == rule_id), None)
            if rule is None or not rule.enabled:
                await self.alarms.clear(alarm_name)
                self.logger.info("Cleared alarm %s: rule missing or disabled", alarm_name)
                return 0

            await self.rules.load_rules()
            items = await self.history.search("", 0, self.settings.history_search_max_results)
            for item in items or []:
                if not item or not item.url:
                    continue
                matches = self.rules.evaluate_url(item.url)
                if not matches:
                    continue
                actions = self.rules.merge_actions(matches)
                result = await self.deletion.execute_actions(item.url, actions, history_log_context="periodic")
                if result.success:
                    deleted += 1
        except Exception as exc:
            log_exception(self.logger, "Periodic sweep failed", extra={"alarm": alarm_name}, exc=exc)
            return deleted

        if deleted:
            self.logger.info('Periodic sweep for rule "%s" deleted %s entries', rule.name, deleted)
        return deleted
