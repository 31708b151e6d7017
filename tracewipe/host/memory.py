"""
In-process adapters for every host capability.

These back the standalone service (``tracewipe serve``) and the test
suite. Values written to :class:`MemoryKeyValueStore` are deep-copied on
the way in and out so callers observe the same copy semantics as a
serializing store.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.clock import Clock, SystemClock
from .capabilities import Alarm, HistoryItem

MINUTE_MS = 60_000


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


class MemoryHistory:
    """Visit history kept in insertion order; search returns newest first."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self._items: Dict[str, HistoryItem] = {}

    def add_visit(self, url: str, title: Optional[str] = None) -> HistoryItem:
        item = HistoryItem(url=url, title=title, last_visit_time=self.clock.now_ms())
        self._items.pop(url, None)
        self._items[url] = item
        return item

    def urls(self) -> List[str]:
        return list(self._items)

    async def search(self, text: str, start_time: int, max_results: int) -> List[HistoryItem]:
        needle = (text or "").lower()
        results: List[HistoryItem] = []
        for item in reversed(list(self._items.values())):
            if (item.last_visit_time or 0) < start_time:
                continue
            haystack = f"{item.url} {item.title or ''}".lower()
            if needle and needle not in haystack:
                continue
            results.append(item)
            if len(results) >= max_results:
                break
        return results

    async def delete_url(self, url: str) -> None:
        self._items.pop(url, None)


class MemorySiteData:
    """Records every removal request; there is no real data to clear."""

    def __init__(self) -> None:
        self.logger = logging.getLogger("host.site_data")
        self.removals: List[Dict[str, Any]] = []

    async def remove(self, hostnames: Optional[Iterable[str]], data_types: Iterable[str]) -> None:
        request = {
            "hostnames": list(hostnames) if hostnames is not None else None,
            "data_types": sorted(data_types),
        }
        self.removals.append(request)
        self.logger.debug("Site data removal hostnames=%s types=%s", request["hostnames"], request["data_types"])


class MemoryAlarms:
    """Named alarms driven by :meth:`pop_due`.

    Creating an alarm with an existing name replaces it, matching the
    browser alarm API.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or SystemClock()
        self._alarms: Dict[str, Alarm] = {}

    async def create(self, name: str, delay_minutes: float, period_minutes: Optional[float]) -> None:
        scheduled = self.clock.now_ms() + int(delay_minutes * MINUTE_MS)
        self._alarms[name] = Alarm(name=name, scheduled_time=scheduled, period_minutes=period_minutes)

    async def get(self, name: str) -> Optional[Alarm]:
        alarm = self._alarms.get(name)
        return copy.copy(alarm) if alarm else None

    async def get_all(self) -> List[Alarm]:
        return [copy.copy(alarm) for alarm in self._alarms.values()]

    async def clear(self, name: str) -> bool:
        return self._alarms.pop(name, None) is not None

    def pop_due(self, now_ms: Optional[int] = None) -> List[Alarm]:
        """Return alarms whose time has come, rescheduling periodic ones."""
        now = self.clock.now_ms() if now_ms is None else now_ms
        due: List[Alarm] = []
        for name, alarm in list(self._alarms.items()):
            if alarm.scheduled_time > now:
                continue
            due.append(copy.copy(alarm))
            if alarm.period_minutes:
                alarm.scheduled_time = now + int(alarm.period_minutes * MINUTE_MS)
            else:
                del self._alarms[name]
        return due


__all__ = ["MemoryAlarms", "MemoryHistory", "MemoryKeyValueStore", "MemorySiteData"]
