"""
TraceWipe: a rule-driven retention engine for browsing traces.

Users declare URL rules; when a visited URL matches, the engine deletes
the matching history entries and, as configured, cookies, site storage
and the cache. Failed or rate-limited deletions wait in a durable retry
buffer. See :mod:`tracewipe.service` for the event and command surface.
"""

__version__ = "0.1.0"
