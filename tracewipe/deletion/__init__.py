"""
Deletion orchestrator and the URL-equivalence helpers it relies on.
"""

from .engine import DeletionEngine
from .results import CacheResult, ExecutionResult, HistoryResult, SiteDataResult, UrlError
from .urls import (
    are_equivalent_history_urls,
    expand_hostnames,
    extract_hostname,
    is_history_url_in_subtree,
    normalize_pathname,
)

__all__ = [
    'CacheResult',
    'DeletionEngine',
    'ExecutionResult',
    'HistoryResult',
    'SiteDataResult',
    'UrlError',
    'are_equivalent_history_urls',
    'expand_hostnames',
    'extract_hostname',
    'is_history_url_in_subtree',
    'normalize_pathname',
]
