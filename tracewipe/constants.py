"""
Storage keys, alarm names and trigger names shared across the engine.

Tunable limits (buffer size, windows, intervals) live on
:class:`tracewipe.core.config.Settings`; the names here are part of the
persisted data format and are not configurable.
"""

# Durable store keys
STORAGE_KEY_RULES = "tracewipe_rules"
STORAGE_KEY_BUFFER = "tracewipe_buffer"
STORAGE_KEY_ACTION_LOG = "tracewipe_action_log"

# Volatile store keys
SESSION_KEY_TAB_MAP = "tracewipe_tab_map"
SESSION_KEY_PAUSED = "tracewipe_paused"

# Alarm names
ALARM_PERIODIC_PREFIX = "tracewipe_periodic_"
ALARM_BUFFER_FLUSH = "tracewipe_buffer_flush"

# Storage areas reported by storage-changed events
AREA_LOCAL = "local"

# Pipeline triggers
TRIGGER_ASAP = "asap"
TRIGGER_TAB_CLOSE = "tabClose"
TRIGGER_BROWSER_CLOSE = "browserClose"

ACTION_KINDS = ("history", "cookies", "cache", "siteData")
ACTION_DELETE = "delete"
ACTION_KEEP = "keep"

# URL prefixes never routed through the pipeline
INTERNAL_URL_PREFIXES = ("about:", "moz-extension:", "chrome-extension:", "chrome:")
