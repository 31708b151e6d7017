"""
Capability interfaces the engine consumes from its host.

The engine never talks to a browser directly. A host provides one
:class:`HostCapabilities` bundle; every call is a coroutine and adapters
signal failure by raising (``StorageIOError``, ``HistorySearchError``,
``DeletionCapabilityError`` or any other exception).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol


@dataclass
class HistoryItem:
    url: str
    title: Optional[str] = None
    last_visit_time: Optional[int] = None


@dataclass
class Alarm:
    name: str
    scheduled_time: int
    period_minutes: Optional[float] = None


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


class HistoryCapability(Protocol):
    async def search(self, text: str, start_time: int, max_results: int) -> List[HistoryItem]: ...

    async def delete_url(self, url: str) -> None: ...


class SiteDataCapability(Protocol):
    async def remove(self, hostnames: Optional[Iterable[str]], data_types: Iterable[str]) -> None:
        """Clear ``data_types`` for ``hostnames``; ``None`` means every origin."""
        ...


class AlarmCapability(Protocol):
    async def create(self, name: str, delay_minutes: float, period_minutes: Optional[float]) -> None: ...

    async def get(self, name: str) -> Optional[Alarm]: ...

    async def get_all(self) -> List[Alarm]: ...

    async def clear(self, name: str) -> bool: ...


@dataclass
class HostCapabilities:
    """Everything the engine needs from its host.

    ``session`` may be ``None`` when the host has no volatile store; the
    storage layer then keeps volatile keys in process memory.
    """

    local: KeyValueStore
    history: HistoryCapability
    site_data: SiteDataCapability
    alarms: AlarmCapability
    session: Optional[KeyValueStore] = None


__all__ = [
    "Alarm",
    "AlarmCapability",
    "HistoryCapability",
    "HistoryItem",
    "HostCapabilities",
    "KeyValueStore",
    "SiteDataCapability",
]
