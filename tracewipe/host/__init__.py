"""
Host capability interfaces and in-process adapters.
"""

from .capabilities import (
    Alarm,
    AlarmCapability,
    HistoryCapability,
    HistoryItem,
    HostCapabilities,
    KeyValueStore,
    SiteDataCapability,
)
from .memory import MemoryAlarms, MemoryHistory, MemoryKeyValueStore, MemorySiteData

__all__ = [
    'Alarm',
    'AlarmCapability',
    'HistoryCapability',
    'HistoryItem',
    'HostCapabilities',
    'KeyValueStore',
    'SiteDataCapability',
    'MemoryAlarms',
    'MemoryHistory',
    'MemoryKeyValueStore',
    'MemorySiteData',
]
