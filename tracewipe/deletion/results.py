"""
Structured results returned by the deletion orchestrator.

Capability failures are captured inside these results instead of being
raised; ``ExecutionResult.success`` drives retry-buffer enqueueing.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from ..rules.schema import CamelModel


class UrlError(CamelModel):
    url: str
    error: str


class HistoryResult(CamelModel):
    success: bool
    partial: bool = False
    deleted_urls: List[str] = Field(default_factory=list)
    errors: List[UrlError] = Field(default_factory=list)
    # First error message when nothing could be deleted
    error: Optional[str] = None
    include_subpages: bool = False


class SiteDataResult(CamelModel):
    success: bool
    skipped: bool = False
    hostnames: List[str] = Field(default_factory=list)
    data_types: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class CacheResult(CamelModel):
    success: bool
    skipped: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None


class ExecutionResult(CamelModel):
    url: str
    timestamp: int
    success: bool = False
    history: Optional[HistoryResult] = None
    site_data: Optional[SiteDataResult] = None
    cache: Optional[CacheResult] = None
