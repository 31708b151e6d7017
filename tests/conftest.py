from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from tracewipe.core.config import Settings
from tracewipe.host import HostCapabilities, MemoryAlarms, MemoryHistory, MemoryKeyValueStore, MemorySiteData
from tracewipe.rules.schema import create_rule
from tracewipe.runtime.context import EngineContext


class FakeClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_rule(name: str, patterns: List[str], **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {"name": name, "match": {"urlRegex": patterns}}
    data.update(overrides)
    return create_rule(data).to_document()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_context(clock):
    """Factory for an engine wired to in-memory host adapters."""

    def _make(
        rules: Optional[List[Dict[str, Any]]] = None,
        *,
        history: Any = None,
        site_data: Any = None,
        **settings: Any,
    ) -> EngineContext:
        local = MemoryKeyValueStore({"tracewipe_rules": rules or []})
        host = HostCapabilities(
            local=local,
            session=MemoryKeyValueStore(),
            history=history if history is not None else MemoryHistory(clock),
            site_data=site_data if site_data is not None else MemorySiteData(),
            alarms=MemoryAlarms(clock),
        )
        return EngineContext.create(host, settings=Settings(**settings), clock=clock)

    return _make
