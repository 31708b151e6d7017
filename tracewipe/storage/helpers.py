"""
Storage helper over the durable ("local") and volatile ("session") stores.

Persisted collections are read, copied, mutated and written back whole.
Concurrent ``get_local``/``set_local`` pairs on the same key are
last-writer-wins. :meth:`Storage.update_local` serializes read-modify-write
sequences per key with an ``asyncio.Lock`` so two mutations issued within
one event-loop turn cannot drop each other's changes.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Callable, Dict, Optional

from ..host.capabilities import KeyValueStore


class Storage:
    def __init__(self, local: KeyValueStore, session: Optional[KeyValueStore] = None) -> None:
        self.logger = logging.getLogger("storage")
        self._local = local
        self._session = session
        # Volatile keys live here when the host has no session store.
        self._session_fallback: Dict[str, Any] = {}
        self._key_locks: Dict[str, asyncio.Lock] = {}
        if session is None:
            self.logger.info("No volatile store available; using in-process fallback")

    @property
    def has_session_store(self) -> bool:
        return self._session is not None

    async def get_local(self, key: str, default: Any = None) -> Any:
        value = await self._local.get(key)
        return default if value is None else value

    async def set_local(self, key: str, value: Any) -> None:
        await self._local.set(key, value)

    def key_lock(self, key: str) -> asyncio.Lock:
        """Lock serializing read-modify-write sequences on one durable key."""
        return self._key_locks.setdefault(key, asyncio.Lock())

    async def update_local(self, key: str, updater: Callable[[Any], Any], default: Any = None) -> Any:
        """Read ``key``, apply ``updater`` and write the result back."""
        async with self.key_lock(key):
            current = await self.get_local(key, copy.deepcopy(default))
            updated = updater(current)
            await self.set_local(key, updated)
            return updated

    async def get_session(self, key: str, default: Any = None) -> Any:
        if self._session is None:
            value = self._session_fallback.get(key)
            return default if value is None else copy.deepcopy(value)
        value = await self._session.get(key)
        return default if value is None else value

    async def set_session(self, key: str, value: Any) -> None:
        if self._session is None:
            self._session_fallback[key] = copy.deepcopy(value)
            return
        await self._session.set(key, value)

    async def remove_session(self, key: str) -> None:
        if self._session is None:
            self._session_fallback.pop(key, None)
            return
        await self._session.remove(key)
