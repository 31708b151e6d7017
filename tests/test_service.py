from __future__ import annotations

import asyncio

from conftest import make_rule
from tracewipe.constants import ALARM_BUFFER_FLUSH
from tracewipe.rules.schema import RuleActions
from tracewipe.runtime.pipeline import PipelineOutcome
from tracewipe.service import Service, pump_alarms


def _service(make_context, rules=None, **settings) -> Service:
    return Service(make_context(rules, **settings))


def test_bootstrap_loads_rules_and_schedules_alarms(make_context) -> None:
    rule = make_rule("P", ["example"], id="p", timing={"periodicMinutes": 15})
    service = _service(make_context, [rule])

    async def scenario():
        await service.context.buffer.enqueue("https://example.com/x", RuleActions())
        await service.bootstrap()
        return sorted(a.name for a in await service.context.host.alarms.get_all())

    names = asyncio.run(scenario())
    assert names == [ALARM_BUFFER_FLUSH, "tracewipe_periodic_p"]
    assert [r.id for r in service.context.rules.compiled_rules] == ["p"]
    assert asyncio.run(service.context.buffer.get_stats())["total"] == 0


def test_on_installed_seeds_empty_collections(make_context) -> None:
    service = _service(make_context, [make_rule("R", ["x"])])
    asyncio.run(service.on_installed("install"))
    local = service.context.host.local.snapshot()
    assert local["tracewipe_rules"] == []
    assert local["tracewipe_action_log"] == []


def test_on_installed_update_keeps_rules(make_context) -> None:
    service = _service(make_context, [make_rule("R", ["x"])])
    asyncio.run(service.on_installed("update"))
    assert len(service.context.host.local.snapshot()["tracewipe_rules"]) == 1


def test_internal_and_empty_urls_are_ignored(make_context) -> None:
    service = _service(make_context, [make_rule("All", [".*"])])

    async def scenario():
        await service.bootstrap()
        return [
            await service.handle_visited(""),
            await service.handle_visited("about:blank"),
            await service.handle_navigation(1, "moz-extension://abc/options.html"),
            await service.handle_navigation(1, "https://example.com/", frame_id=3),
        ]

    assert asyncio.run(scenario()) == [None, None, None, None]


def test_tab_close_flow(make_context) -> None:
    rule = make_rule("Tabs", ["example"], timing={"asap": False, "onTabClose": True})
    service = _service(make_context, [rule])

    async def scenario():
        await service.bootstrap()
        nav = await service.handle_navigation(7, "https://example.com/a")
        closed = await service.handle_tab_removed(7)
        unknown = await service.handle_tab_removed(8)
        return nav, closed, unknown, await service.context.tabs.get_all_tracked()

    nav, closed, unknown, tracked = asyncio.run(scenario())
    assert nav.outcome is PipelineOutcome.TRIGGER_DISABLED
    assert closed.outcome is PipelineOutcome.DELETED
    assert unknown is None
    assert tracked == {}


def test_browser_close_runs_only_when_last_window_closes(make_context) -> None:
    rule = make_rule("Session", ["example"], timing={"asap": False, "onBrowserClose": True})
    service = _service(make_context, [rule])

    async def scenario():
        await service.bootstrap()
        await service.handle_navigation(1, "https://example.com/a")
        await service.handle_navigation(2, "https://example.com/b")
        still_open = await service.handle_window_removed(10, remaining_windows=1)
        last = await service.handle_window_removed(11, remaining_windows=0)
        return still_open, last

    still_open, last = asyncio.run(scenario())
    assert still_open == []
    assert [r.outcome for r in last] == [PipelineOutcome.DELETED, PipelineOutcome.DELETED]


def test_storage_change_reloads_rules_and_alarms(make_context) -> None:
    service = _service(make_context)
    rule = make_rule("New", ["example"], id="new", timing={"periodicMinutes": 5})

    async def scenario():
        await service.bootstrap()
        await service.handle_storage_changed({"tracewipe_rules": {"newValue": [rule]}}, "session")
        before = list(service.context.rules.compiled_rules)
        await service.save_rules([rule])
        return before, await service.context.host.alarms.get("tracewipe_periodic_new")

    before, alarm = asyncio.run(scenario())
    assert before == []
    assert [r.id for r in service.context.rules.compiled_rules] == ["new"]
    assert alarm is not None


def test_status_and_pause_commands(make_context) -> None:
    service = _service(make_context, [make_rule("A", ["a"]), make_rule("B", ["b"], enabled=False)])

    async def scenario():
        ok = await service.handle_message({"type": "SET_PAUSED", "value": True})
        return ok, await service.handle_message({"type": "GET_STATUS"})

    ok, status = asyncio.run(scenario())
    assert ok == {"ok": True}
    assert status == {
        "paused": True,
        "bufferStats": {"total": 0, "pending": 0, "failed": 0},
        "ruleCount": 2,
        "activeRuleCount": 1,
    }


def test_forget_url_command(make_context) -> None:
    service = _service(make_context)
    service.context.host.history.add_visit("https://www.example.com/a")

    async def scenario():
        missing = await service.handle_message({"type": "FORGET_URL"})
        forgot = await service.handle_message({"type": "FORGET_URL", "url": "https://www.example.com/a"})
        log = await service.handle_message({"type": "GET_ACTION_LOG"})
        return missing, forgot, log

    missing, forgot, log = asyncio.run(scenario())
    assert missing == {"ok": False, "error": "No URL provided"}
    assert forgot["ok"] is True
    assert forgot["result"]["siteData"]["hostnames"] == ["www.example.com", "example.com"]
    assert forgot["result"]["cache"] is None
    assert log[0]["ruleNames"] == ["Manual forget"]
    assert log[0]["actions"] == {"history": "delete", "cookies": "delete", "cache": "keep", "siteData": "delete"}
    assert service.context.host.history.urls() == []


def test_test_url_command(make_context) -> None:
    service = _service(make_context, [make_rule("Example", ["example"], id="ex")])

    async def scenario():
        hit = await service.handle_message({"type": "TEST_URL", "url": "https://example.com/"})
        miss = await service.handle_message({"type": "TEST_URL", "url": "https://other.org/"})
        empty = await service.handle_message({"type": "TEST_URL"})
        return hit, miss, empty

    hit, miss, empty = asyncio.run(scenario())
    assert [m["ruleId"] for m in hit["matches"]] == ["ex"]
    assert hit["mergedActions"]["history"] == "delete"
    assert hit["mergedTiming"]["asap"] is True
    assert hit["hostname"] == "example.com"
    assert hit["hostnames"] == ["example.com", "www.example.com"]
    assert miss["matches"] == [] and miss["mergedActions"] is None and miss["mergedTiming"] is None
    assert empty["matches"] == [] and empty["mergedActions"] is None


def test_clear_commands_and_unknown(make_context) -> None:
    service = _service(make_context)

    async def scenario():
        await service.context.buffer.enqueue("https://example.com/", RuleActions())
        await service.context.action_log.append("https://example.com/", ["R"], RuleActions(), {"success": True})
        cleared_buffer = await service.handle_message({"type": "CLEAR_BUFFER"})
        cleared_log = await service.handle_message({"type": "CLEAR_ACTION_LOG"})
        unknown = await service.handle_message({"type": "NOPE"})
        return (
            cleared_buffer,
            cleared_log,
            unknown,
            await service.context.buffer.get_stats(),
            await service.handle_message({"type": "GET_ACTION_LOG", "limit": 5}),
        )

    cleared_buffer, cleared_log, unknown, stats, log = asyncio.run(scenario())
    assert cleared_buffer == {"ok": True}
    assert cleared_log == {"ok": True}
    assert unknown == {"error": "Unknown message type"}
    assert stats["total"] == 0
    assert log == []


def test_action_log_limit_and_cap(make_context) -> None:
    service = _service(make_context, action_log_max_entries=5)

    async def scenario():
        for i in range(8):
            await service.context.action_log.append(f"https://e.com/{i}", [], RuleActions(), {"success": True})
        return (
            await service.handle_message({"type": "GET_ACTION_LOG", "limit": 3}),
            service.context.host.local.snapshot()["tracewipe_action_log"],
        )

    limited, stored = asyncio.run(scenario())
    assert [e["url"] for e in limited] == ["https://e.com/7", "https://e.com/6", "https://e.com/5"]
    assert len(stored) == 5


def test_action_log_limit_falls_back_to_default(make_context) -> None:
    service = _service(make_context)

    async def scenario():
        for i in range(25):
            await service.context.action_log.append(f"https://e.com/{i}", [], RuleActions(), {"success": True})
        return [
            len(await service.handle_message({"type": "GET_ACTION_LOG", "limit": limit}))
            for limit in ("abc", None, -4, [3], "2")
        ]

    assert asyncio.run(scenario()) == [20, 20, 20, 20, 2]


def test_pump_alarms_fires_due_alarms(make_context, clock) -> None:
    service = _service(make_context)

    async def scenario():
        await service.context.buffer.enqueue("https://example.com/", RuleActions())
        await service.context.host.alarms.create(ALARM_BUFFER_FLUSH, 0, 5)
        stop = asyncio.Event()
        task = asyncio.create_task(pump_alarms(service, service.context.host.alarms, stop, 0.01))
        await asyncio.sleep(0.05)
        stop.set()
        await task
        return await service.context.buffer.get_stats()

    assert asyncio.run(scenario())["total"] == 0
