"""
Deletion orchestrator.

Executes a merged action plan for one URL against the host's history and
site-data capabilities. History deletion sweeps redirect and protocol
variants of the visited page (and optionally its whole subtree); site
data is cleared per origin for both the www and non-www hostnames; cache
clearing is global and rate-limited.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ..core.clock import Clock, SystemClock
from ..core.config import Settings
from ..core.errors import error_message, log_exception
from ..host.capabilities import HistoryCapability, SiteDataCapability
from ..rules.schema import RuleActions
from .results import CacheResult, ExecutionResult, HistoryResult, SiteDataResult, UrlError
from .urls import (
    are_equivalent_history_urls,
    expand_hostnames,
    extract_hostname,
    is_history_url_in_subtree,
)

UrlMatcher = Callable[[str, str], bool]

COOKIE_DATA_TYPES = ("cookies",)
SITE_DATA_TYPES = ("localStorage", "indexedDB", "serviceWorkers")
CACHE_DATA_TYPES = ("cache",)


class DeletionEngine:
    """
    Performs history, site-data and cache erasure through host capabilities.

    Parameters
    ----------
    history: HistoryCapability
        Host history search/delete.
    site_data: SiteDataCapability
        Host browsing-data removal (cookies, storage, cache).
    settings: Settings
        Supplies the cache-clear interval and history search limit.
    clock: Clock
        Source of the timestamps used by the cache-clear rate limit.
    """

    def __init__(
        self,
        history: HistoryCapability,
        site_data: SiteDataCapability,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.logger = logging.getLogger("deletion")
        self.history = history
        self.site_data = site_data
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.last_cache_clear_ms: Optional[int] = None

    async def find_matching_history_urls(self, url: str, matcher: UrlMatcher) -> List[str]:
        """Search history by hostname and keep the results ``matcher`` accepts."""
        hostname = extract_hostname(url)
        if not hostname:
            return []
        try:
            items = await self.history.search(hostname, 0, self.settings.history_search_max_results)
        except Exception as exc:
            self.logger.warning("History search failed for %s; falling back to exact delete: %s", hostname, exc)
            return []
        return [item.url for item in items or [] if item and item.url and matcher(url, item.url)]

    async def delete_history(self, url: str, *, include_subpages: bool = False, log_context: Optional[str] = None) -> HistoryResult:
        context = log_context or "history"
        matcher = is_history_url_in_subtree if include_subpages else are_equivalent_history_urls
        # dict keeps insertion order and drops duplicates
        targets: Dict[str, None] = {url: None}
        for match_url in await self.find_matching_history_urls(url, matcher):
            targets.setdefault(match_url, None)

        deleted: List[str] = []
        errors: List[UrlError] = []
        for candidate in targets:
            try:
                await self.history.delete_url(candidate)
            except Exception as exc:
                errors.append(UrlError(url=candidate, error=error_message(exc)))
                self.logger.warning("[%s] failed to delete history entry %s: %s", context, candidate, exc)
                continue
            deleted.append(candidate)
            self.logger.info("[%s] deleted history entry %s", context, candidate)

        if not deleted and errors:
            return HistoryResult(success=False, error=errors[0].error, errors=errors, include_subpages=include_subpages)
        if errors:
            return HistoryResult(
                success=True,
                partial=True,
                deleted_urls=deleted,
                errors=errors,
                include_subpages=include_subpages,
            )
        return HistoryResult(success=True, deleted_urls=deleted, include_subpages=include_subpages)

    async def delete_site_data(self, hostname: str, actions: RuleActions) -> SiteDataResult:
        data_types: List[str] = []
        if actions.cookies == "delete":
            data_types.extend(COOKIE_DATA_TYPES)
        if actions.site_data == "delete":
            data_types.extend(SITE_DATA_TYPES)
        if not data_types:
            return SiteDataResult(success=True, skipped=True)

        hostnames = expand_hostnames(hostname)
        try:
            await self.site_data.remove(hostnames, data_types)
        except Exception as exc:
            log_exception(self.logger, "Site data removal failed", extra={"hostname": hostname}, exc=exc)
            return SiteDataResult(success=False, error=error_message(exc))
        return SiteDataResult(success=True, hostnames=hostnames, data_types=data_types)

    async def clear_global_cache(self) -> CacheResult:
        """Clear the whole cache at most once per configured interval."""
        now = self.clock.now_ms()
        last = self.last_cache_clear_ms
        if last is not None and now - last < self.settings.cache_clear_min_interval_ms:
            return CacheResult(success=True, skipped=True, reason="rate-limited")
        try:
            await self.site_data.remove(None, CACHE_DATA_TYPES)
        except Exception as exc:
            log_exception(self.logger, "Global cache clear failed", exc=exc)
            return CacheResult(success=False, error=error_message(exc))
        self.last_cache_clear_ms = now
        return CacheResult(success=True)

    async def execute_actions(
        self,
        url: str,
        actions: RuleActions,
        *,
        history_include_subpages: bool = False,
        history_log_context: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run every sub-operation the plan asks for.

        Overall success needs each invoked sub-operation to succeed
        outright: a partial history deletion counts as a failure so the
        URL is retried from the buffer.
        """
        result = ExecutionResult(url=url, timestamp=self.clock.now_ms())

        if actions.history == "delete":
            result.history = await self.delete_history(
                url,
                include_subpages=history_include_subpages,
                log_context=history_log_context,
            )

        if actions.cookies == "delete" or actions.site_data == "delete":
            hostname = extract_hostname(url)
            if not hostname:
                result.site_data = SiteDataResult(success=False, error="Could not parse URL")
            else:
                result.site_data = await self.delete_site_data(hostname, actions)

        if actions.cache == "delete":
            result.cache = await self.clear_global_cache()

        history_ok = result.history is None or (result.history.success and not result.history.partial)
        site_data_ok = result.site_data is None or result.site_data.success
        cache_ok = result.cache is None or result.cache.success
        result.success = history_ok and site_data_ok and cache_ok
        return result
