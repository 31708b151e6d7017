from __future__ import annotations

import asyncio
import logging

from conftest import make_rule
from tracewipe.constants import ALARM_BUFFER_FLUSH
from tracewipe.rules.schema import RuleActions


def _periodic(name: str, minutes, **overrides):
    return make_rule(name, ["example\\.com"], id=name, timing={"asap": False, "periodicMinutes": minutes}, **overrides)


def test_sync_alarms_creates_preserves_and_removes(make_context, clock) -> None:
    ctx = make_context()
    alarms = ctx.host.alarms

    async def scenario():
        await alarms.create("tracewipe_periodic_gone", 5, 5)
        await alarms.create("unrelated", 5, 5)
        await ctx.scheduler.sync_alarms([_periodic("keep", 10)])
        first = await alarms.get("tracewipe_periodic_keep")
        clock.advance(60_000)
        await ctx.scheduler.sync_alarms([_periodic("keep", 10), _periodic("off", 3, enabled=False), make_rule("plain", ["x"])])
        second = await alarms.get("tracewipe_periodic_keep")
        return first, second, sorted(a.name for a in await alarms.get_all())

    first, second, names = asyncio.run(scenario())
    assert first.period_minutes == 10
    # an existing alarm is left alone, so its schedule does not move
    assert second.scheduled_time == first.scheduled_time
    assert names == ["tracewipe_periodic_keep", "unrelated"]


def test_sync_alarms_applies_minimum_period(make_context) -> None:
    ctx = make_context()

    async def scenario():
        doc = _periodic("fast", 5)
        doc["timing"]["periodicMinutes"] = 0.5
        await ctx.scheduler.sync_alarms([doc])
        return await ctx.host.alarms.get("tracewipe_periodic_fast")

    alarm = asyncio.run(scenario())
    assert alarm.period_minutes == 1


def test_ensure_buffer_flush_alarm_is_idempotent(make_context, clock) -> None:
    ctx = make_context()

    async def scenario():
        await ctx.scheduler.ensure_buffer_flush_alarm()
        first = await ctx.host.alarms.get(ALARM_BUFFER_FLUSH)
        clock.advance(1000)
        await ctx.scheduler.ensure_buffer_flush_alarm()
        return first, await ctx.host.alarms.get(ALARM_BUFFER_FLUSH)

    first, second = asyncio.run(scenario())
    assert first.period_minutes == 5
    assert second.scheduled_time == first.scheduled_time


def test_periodic_sweep_deletes_all_matching_history(make_context, clock) -> None:
    ctx = make_context([_periodic("sweep", 10), make_rule("other", ["other\\.org"], id="other")])
    history = ctx.host.history
    for url in ("https://example.com/a", "https://other.org/b", "https://keep.net/c"):
        history.add_visit(url)

    deleted = asyncio.run(ctx.scheduler.handle_alarm("tracewipe_periodic_sweep"))
    assert deleted == 2
    assert history.urls() == ["https://keep.net/c"]


def test_periodic_sweep_clears_alarm_for_missing_or_disabled_rule(make_context) -> None:
    ctx = make_context([_periodic("off", 10, enabled=False)])
    alarms = ctx.host.alarms

    async def scenario():
        await alarms.create("tracewipe_periodic_off", 10, 10)
        await alarms.create("tracewipe_periodic_missing", 10, 10)
        off = await ctx.scheduler.handle_alarm("tracewipe_periodic_off")
        missing = await ctx.scheduler.handle_alarm("tracewipe_periodic_missing")
        return off, missing, await alarms.get_all()

    off, missing, remaining = asyncio.run(scenario())
    assert (off, missing) == (0, 0)
    assert remaining == []


def test_periodic_sweep_errors_do_not_propagate(make_context, caplog) -> None:
    class _BrokenHistory:
        async def search(self, text, start_time, max_results):
            raise RuntimeError("history gone")

        async def delete_url(self, url):
            return None

    ctx = make_context([_periodic("sweep", 10)], history=_BrokenHistory())
    caplog.set_level(logging.ERROR)
    assert asyncio.run(ctx.scheduler.handle_alarm("tracewipe_periodic_sweep")) == 0
    assert any("Periodic sweep failed" in rec.message for rec in caplog.records)


def test_buffer_flush_alarm_flushes(make_context) -> None:
    ctx = make_context()

    async def scenario():
        await ctx.buffer.enqueue("https://example.com/a", RuleActions())
        flushed = await ctx.scheduler.handle_alarm(ALARM_BUFFER_FLUSH)
        return flushed, await ctx.buffer.get_stats()

    flushed, stats = asyncio.run(scenario())
    assert flushed == 1
    assert stats["total"] == 0


def test_unknown_alarm_is_ignored(make_context) -> None:
    ctx = make_context()
    assert asyncio.run(ctx.scheduler.handle_alarm("someone_else")) == 0
