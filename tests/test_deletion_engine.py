from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from conftest import FakeClock
from tracewipe.core.config import Settings
from tracewipe.core.errors import DeletionCapabilityError, HistorySearchError
from tracewipe.deletion.engine import DeletionEngine
from tracewipe.host import HistoryItem, MemoryHistory, MemorySiteData
from tracewipe.rules.schema import RuleActions


class _FlakyHistory:
    """History whose deletes fail for selected URLs."""

    def __init__(self, urls: List[str], failing: Optional[set] = None, search_error: bool = False) -> None:
        self.items = [HistoryItem(url=u) for u in urls]
        self.failing = failing or set()
        self.search_error = search_error
        self.deleted: List[str] = []

    async def search(self, text, start_time, max_results):
        if self.search_error:
            raise HistorySearchError("history unavailable")
        return [item for item in self.items if text in item.url][:max_results]

    async def delete_url(self, url):
        if url in self.failing:
            raise DeletionCapabilityError(f"cannot delete {url}")
        self.deleted.append(url)


class _BrokenSiteData:
    def __init__(self) -> None:
        self.calls = 0

    async def remove(self, hostnames, data_types):
        self.calls += 1
        raise DeletionCapabilityError("browsing data locked")


def _history(clock: FakeClock, *urls: str) -> MemoryHistory:
    history = MemoryHistory(clock)
    for url in urls:
        history.add_visit(url)
    return history


def test_delete_history_removes_equivalent_variants(clock) -> None:
    history = _history(
        clock,
        "http://example.com/page",
        "https://www.example.com/page/",
        "https://example.com/page/child",
        "https://example.com/other",
    )
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    result = asyncio.run(engine.delete_history("https://example.com/page"))
    assert result.success is True
    assert result.partial is False
    assert set(result.deleted_urls) == {
        "https://example.com/page",
        "http://example.com/page",
        "https://www.example.com/page/",
    }
    assert history.urls() == ["https://example.com/page/child", "https://example.com/other"]


def test_delete_history_subtree(clock) -> None:
    history = _history(clock, "https://example.com/docs/a", "https://example.com/docs/b/c", "https://example.com/blog")
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    result = asyncio.run(engine.delete_history("https://example.com/docs", include_subpages=True))
    assert result.include_subpages is True
    assert history.urls() == ["https://example.com/blog"]


def test_delete_history_partial_failure(clock) -> None:
    history = _FlakyHistory(
        ["https://example.com/p", "http://www.example.com/p"],
        failing={"http://www.example.com/p"},
    )
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    result = asyncio.run(engine.delete_history("https://example.com/p"))
    assert result.success is True
    assert result.partial is True
    assert result.deleted_urls == ["https://example.com/p"]
    assert [e.url for e in result.errors] == ["http://www.example.com/p"]


def test_delete_history_total_failure(clock) -> None:
    history = _FlakyHistory([], failing={"https://example.com/p"})
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    result = asyncio.run(engine.delete_history("https://example.com/p"))
    assert result.success is False
    assert result.error == "cannot delete https://example.com/p"
    assert len(result.errors) == 1


def test_search_failure_falls_back_to_exact_url(clock, caplog) -> None:
    history = _FlakyHistory(["https://example.com/p"], search_error=True)
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    caplog.set_level(logging.WARNING)
    result = asyncio.run(engine.delete_history("https://example.com/p"))
    assert result.success is True
    assert history.deleted == ["https://example.com/p"]
    assert any("History search failed" in rec.message for rec in caplog.records)


def test_delete_site_data_expands_hostnames(clock) -> None:
    site_data = MemorySiteData()
    engine = DeletionEngine(MemoryHistory(clock), site_data, clock=clock)
    result = asyncio.run(engine.delete_site_data("www.example.com", RuleActions(cookies="delete", site_data="delete")))
    assert result.success is True
    assert result.hostnames == ["www.example.com", "example.com"]
    assert site_data.removals == [
        {
            "hostnames": ["www.example.com", "example.com"],
            "data_types": ["cookies", "indexedDB", "localStorage", "serviceWorkers"],
        }
    ]


def test_delete_site_data_skips_when_nothing_requested(clock) -> None:
    site_data = MemorySiteData()
    engine = DeletionEngine(MemoryHistory(clock), site_data, clock=clock)
    result = asyncio.run(engine.delete_site_data("example.com", RuleActions()))
    assert result.success is True
    assert result.skipped is True
    assert site_data.removals == []


def test_delete_site_data_captures_errors(clock) -> None:
    engine = DeletionEngine(MemoryHistory(clock), _BrokenSiteData(), clock=clock)
    result = asyncio.run(engine.delete_site_data("example.com", RuleActions(cookies="delete")))
    assert result.success is False
    assert result.error == "browsing data locked"


def test_cache_clear_is_rate_limited(clock) -> None:
    site_data = MemorySiteData()
    engine = DeletionEngine(MemoryHistory(clock), site_data, settings=Settings(cache_clear_min_interval_ms=60000), clock=clock)

    async def scenario():
        first = await engine.clear_global_cache()
        clock.advance(30_000)
        second = await engine.clear_global_cache()
        clock.advance(30_000)
        third = await engine.clear_global_cache()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.success is True and first.skipped is False
    assert second.skipped is True and second.reason == "rate-limited"
    assert third.skipped is False
    assert site_data.removals == [{"hostnames": None, "data_types": ["cache"]}] * 2


def test_failed_cache_clear_does_not_advance_timestamp(clock) -> None:
    site_data = _BrokenSiteData()
    engine = DeletionEngine(MemoryHistory(clock), site_data, clock=clock)

    async def scenario():
        await engine.clear_global_cache()
        return await engine.clear_global_cache()

    second = asyncio.run(scenario())
    assert second.success is False
    assert site_data.calls == 2
    assert engine.last_cache_clear_ms is None


def test_execute_actions_runs_requested_sub_operations(clock) -> None:
    history = _history(clock, "https://example.com/a")
    site_data = MemorySiteData()
    engine = DeletionEngine(history, site_data, clock=clock)
    actions = RuleActions(history="delete", cookies="delete", cache="delete")
    result = asyncio.run(engine.execute_actions("https://example.com/a", actions))
    assert result.success is True
    assert result.history.success is True
    assert result.site_data.data_types == ["cookies"]
    assert result.cache.success is True
    assert result.timestamp == clock.now_ms()
    assert history.urls() == []


def test_execute_actions_partial_history_is_failure(clock) -> None:
    history = _FlakyHistory(["http://example.com/a"], failing={"http://example.com/a"})
    engine = DeletionEngine(history, MemorySiteData(), clock=clock)
    result = asyncio.run(engine.execute_actions("https://example.com/a", RuleActions()))
    assert result.history.partial is True
    assert result.success is False


def test_execute_actions_unparsable_url(clock) -> None:
    engine = DeletionEngine(_FlakyHistory([]), MemorySiteData(), clock=clock)
    result = asyncio.run(engine.execute_actions("nonsense", RuleActions(history="keep", cookies="delete")))
    assert result.history is None
    assert result.site_data.error == "Could not parse URL"
    assert result.success is False
