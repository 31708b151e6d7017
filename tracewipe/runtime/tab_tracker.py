"""
Tab -> URL tracking for tab-close and browser-close triggers.

The map lives in the volatile store so it disappears with the session.
Tab ids are stored as string keys.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..constants import SESSION_KEY_TAB_MAP
from ..core.clock import Clock, SystemClock
from ..storage.helpers import Storage


class TabTracker:
    def __init__(self, storage: Storage, clock: Optional[Clock] = None) -> None:
        self.storage = storage
        self.clock = clock or SystemClock()

    async def _get_map(self) -> Dict[str, Dict[str, Any]]:
        return dict(await self.storage.get_session(SESSION_KEY_TAB_MAP, {}) or {})

    async def track_navigation(self, tab_id: int | str, url: str) -> None:
        tabs = await self._get_map()
        tabs[str(tab_id)] = {"url": url, "timestamp": self.clock.now_ms()}
        await self.storage.set_session(SESSION_KEY_TAB_MAP, tabs)

    async def get_tab_url(self, tab_id: int | str) -> Optional[str]:
        entry = (await self._get_map()).get(str(tab_id))
        return entry.get("url") if entry else None

    async def remove_tab(self, tab_id: int | str) -> None:
        tabs = await self._get_map()
        if tabs.pop(str(tab_id), None) is not None:
            await self.storage.set_session(SESSION_KEY_TAB_MAP, tabs)

    async def get_all_tracked(self) -> Dict[str, Dict[str, Any]]:
        return await self._get_map()
