"""
Event handlers and command dispatcher for the TraceWipe engine.

A host calls one handler per browser event (history visit, navigation,
tab/window removal, storage change, alarm) and routes command messages
from user interfaces through :meth:`Service.handle_message`. The HTTP
layer in :mod:`tracewipe.api` and the CLI are thin adapters over this
class.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .constants import (
    AREA_LOCAL,
    INTERNAL_URL_PREFIXES,
    SESSION_KEY_PAUSED,
    STORAGE_KEY_ACTION_LOG,
    STORAGE_KEY_RULES,
    TRIGGER_ASAP,
    TRIGGER_BROWSER_CLOSE,
    TRIGGER_TAB_CLOSE,
)
from .core.errors import log_exception
from .deletion.urls import expand_hostnames, extract_hostname
from .host.capabilities import Alarm
from .host.memory import MemoryAlarms
from .rules.schema import RuleActions
from .runtime.context import EngineContext
from .runtime.pipeline import PipelineResult

FORGET_ACTIONS = RuleActions(history="delete", cookies="delete", cache="keep", site_data="delete")
FORGET_RULE_NAME = "Manual forget"
DEFAULT_ACTION_LOG_LIMIT = 20


def is_internal_url(url: str) -> bool:
    return url.startswith(INTERNAL_URL_PREFIXES)


class Service:
    def __init__(self, context: EngineContext) -> None:
        self.logger = logging.getLogger("service")
        self.context = context
        self._commands = {
            "GET_STATUS": self._get_status,
            "SET_PAUSED": self._set_paused,
            "FORGET_URL": self._forget_url,
            "GET_ACTION_LOG": self._get_action_log,
            "TEST_URL": self._test_url,
            "CLEAR_ACTION_LOG": self._clear_action_log,
            "CLEAR_BUFFER": self._clear_buffer,
        }

    # ------------------------------------------------------------------
    # Browser events

    async def handle_visited(self, url: Optional[str]) -> Optional[PipelineResult]:
        if not url or is_internal_url(url):
            return None
        return await self.context.pipeline.process_deletion(url, TRIGGER_ASAP)

    async def handle_navigation(self, tab_id: int | str, url: Optional[str], frame_id: int = 0) -> Optional[PipelineResult]:
        """Top-level navigations update the tab map and act as a second asap trigger."""
        if frame_id != 0 or not url or is_internal_url(url):
            return None
        await self.context.tabs.track_navigation(tab_id, url)
        return await self.context.pipeline.process_deletion(url, TRIGGER_ASAP)

    async def handle_tab_removed(self, tab_id: int | str) -> Optional[PipelineResult]:
        url = await self.context.tabs.get_tab_url(tab_id)
        await self.context.tabs.remove_tab(tab_id)
        if not url:
            return None
        return await self.context.pipeline.process_deletion(url, TRIGGER_TAB_CLOSE)

    async def handle_window_removed(self, window_id: int | str, remaining_windows: int) -> List[PipelineResult]:
        results: List[PipelineResult] = []
        if remaining_windows > 0:
            return results
        try:
            self.logger.info("Last window %s closing; flushing pending deletions", window_id)
            await self.context.buffer.flush()
            tracked = await self.context.tabs.get_all_tracked()
            for entry in tracked.values():
                url = entry.get("url")
                if url:
                    results.append(await self.context.pipeline.process_deletion(url, TRIGGER_BROWSER_CLOSE))
        except Exception as exc:
            log_exception(self.logger, "Browser close handling failed", extra={"window": window_id}, exc=exc)
        return results

    async def handle_storage_changed(self, changes: Mapping[str, Any], area: str) -> None:
        """Reload rules and resync alarms when the durable rule list changes."""
        if area != AREA_LOCAL or STORAGE_KEY_RULES not in changes:
            return
        self.logger.info("Rules changed, reloading")
        change = changes[STORAGE_KEY_RULES] or {}
        await self.context.rules.load_rules()
        await self.context.scheduler.sync_alarms(change.get("newValue") or [])

    async def handle_alarm(self, alarm: Alarm | str) -> int:
        return await self.context.scheduler.handle_alarm(alarm)

    # ------------------------------------------------------------------
    # Lifecycle

    async def bootstrap(self) -> None:
        self.logger.info("Bootstrapping")
        ctx = self.context
        await ctx.rules.load_rules()
        await ctx.buffer.trim_expired()
        await ctx.buffer.flush()
        await ctx.scheduler.sync_alarms(await ctx.storage.get_local(STORAGE_KEY_RULES, []))
        await ctx.scheduler.ensure_buffer_flush_alarm()
        self.logger.info("Bootstrap complete")

    async def on_installed(self, reason: str) -> None:
        self.logger.info("Installed (%s)", reason)
        if reason == "install":
            await self.context.storage.set_local(STORAGE_KEY_RULES, [])
            await self.context.storage.set_local(STORAGE_KEY_ACTION_LOG, [])
        await self.bootstrap()

    async def save_rules(self, rules: Sequence[Dict[str, Any]]) -> None:
        """Persist the rule list and apply it as a storage-change event would."""
        documents = list(rules)
        await self.context.storage.set_local(STORAGE_KEY_RULES, documents)
        await self.handle_storage_changed({STORAGE_KEY_RULES: {"newValue": documents}}, AREA_LOCAL)

    # ------------------------------------------------------------------
    # Commands

    async def handle_message(self, message: Mapping[str, Any]) -> Any:
        handler = self._commands.get(message.get("type") if isinstance(message, Mapping) else None)
        if handler is None:
            return {"error": "Unknown message type"}
        return await handler(message)

    async def _get_status(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        ctx = self.context
        rules = await ctx.storage.get_local(STORAGE_KEY_RULES, [])
        return {
            "paused": await ctx.pipeline.is_paused(),
            "bufferStats": await ctx.buffer.get_stats(),
            "ruleCount": len(rules),
            "activeRuleCount": sum(1 for r in rules if isinstance(r, Mapping) and r.get("enabled")),
        }

    async def _set_paused(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        paused = bool(message.get("value"))
        await self.context.storage.set_session(SESSION_KEY_PAUSED, paused)
        self.logger.info("Engine %s", "paused" if paused else "resumed")
        return {"ok": True}

    async def _forget_url(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        url = message.get("url")
        if not url:
            return {"ok": False, "error": "No URL provided"}
        result = await self.context.deletion.execute_actions(url, FORGET_ACTIONS)
        await self.context.action_log.append(url, [FORGET_RULE_NAME], FORGET_ACTIONS, result)
        return {"ok": result.success, "result": result.to_document()}

    async def _get_action_log(self, message: Mapping[str, Any]) -> List[Dict[str, Any]]:
        try:
            limit = int(message.get("limit") or DEFAULT_ACTION_LOG_LIMIT)
        except (TypeError, ValueError):
            limit = DEFAULT_ACTION_LOG_LIMIT
        if limit < 1:
            limit = DEFAULT_ACTION_LOG_LIMIT
        return [entry.to_document() for entry in await self.context.action_log.list(limit)]

    async def _test_url(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        url = message.get("url")
        if not url:
            return {"matches": [], "mergedActions": None, "mergedTiming": None, "hostname": None, "hostnames": []}
        rules = self.context.rules
        await rules.load_rules()
        matches = rules.evaluate_url(url)
        hostname = extract_hostname(url)
        return {
            "matches": [m.to_dict() for m in matches],
            "mergedActions": rules.merge_actions(matches).to_document() if matches else None,
            "mergedTiming": rules.merge_timing(matches).to_document() if matches else None,
            "hostname": hostname,
            "hostnames": expand_hostnames(hostname) if hostname else [],
        }

    async def _clear_action_log(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        await self.context.action_log.clear()
        return {"ok": True}

    async def _clear_buffer(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        await self.context.buffer.clear()
        return {"ok": True}


async def pump_alarms(service: Service, alarms: MemoryAlarms, stop: asyncio.Event, poll_interval_sec: float) -> None:
    """Fire due in-process alarms until ``stop`` is set."""
    logger = logging.getLogger("alarms")
    while not stop.is_set():
        for alarm in alarms.pop_due():
            try:
                await service.handle_alarm(alarm)
            except Exception as exc:
                log_exception(logger, "Alarm handler failed", extra={"alarm": alarm.name}, exc=exc)
        try:
            await asyncio.wait_for(stop.wait(), timeout=poll_interval_sec)
        except asyncio.TimeoutError:
            continue
