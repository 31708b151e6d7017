"""
Engine wiring.

:class:`EngineContext` owns every long-lived component and the shared
in-memory state (compiled rule cache, token bucket, dedup cache, cache
clear timestamp). One context is built per process at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..buffer.retry_buffer import RetryBuffer
from ..core.clock import Clock, SystemClock
from ..core.config import Settings
from ..deletion.engine import DeletionEngine
from ..host.capabilities import HostCapabilities
from ..rules.engine import RulesEngine
from ..storage.helpers import Storage
from .action_log import ActionLog
from .dedup import RecentUrlCache
from .pipeline import Pipeline
from .rate_limit import TokenBucketLimiter
from .scheduler import Scheduler
from .tab_tracker import TabTracker


@dataclass
class EngineContext:
    settings: Settings
    clock: Clock
    host: HostCapabilities
    storage: Storage
    rules: RulesEngine
    deletion: DeletionEngine
    action_log: ActionLog
    buffer: RetryBuffer
    tabs: TabTracker
    limiter: TokenBucketLimiter
    recent: RecentUrlCache
    pipeline: Pipeline
    scheduler: Scheduler

    @classmethod
    def create(
        cls,
        host: HostCapabilities,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> "EngineContext":
        settings = settings or Settings()
        clock = clock or SystemClock()
        storage = Storage(host.local, host.session)
        rules = RulesEngine(storage)
        deletion = DeletionEngine(host.history, host.site_data, settings=settings, clock=clock)
        action_log = ActionLog(storage, settings=settings, clock=clock)
        buffer = RetryBuffer(storage, deletion, settings=settings, clock=clock, action_log=action_log)
        limiter = TokenBucketLimiter(
            settings.default_max_deletes_per_minute,
            window_ms=settings.rate_limit_window_ms,
            clock=clock,
        )
        recent = RecentUrlCache(settings.dedup_window_ms, settings.dedup_max_entries, clock=clock)
        pipeline = Pipeline(storage, rules, deletion, buffer, action_log, limiter, recent)
        scheduler = Scheduler(host.alarms, host.history, storage, rules, deletion, buffer, settings=settings)
        return cls(
            settings=settings,
            clock=clock,
            host=host,
            storage=storage,
            rules=rules,
            deletion=deletion,
            action_log=action_log,
            buffer=buffer,
            tabs=TabTracker(storage, clock=clock),
            limiter=limiter,
            recent=recent,
            pipeline=pipeline,
            scheduler=scheduler,
        )
