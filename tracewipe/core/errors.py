"""
Error taxonomy and shared error-handling helpers.
"""

from __future__ import annotations

import logging
from typing import Iterable, List


class TraceWipeError(Exception):
    """Base class for all engine errors."""


class RuleValidationError(TraceWipeError):
    """A rule violates one or more invariants and must not be applied."""

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid rule")


class PatternCompileError(TraceWipeError):
    """A URL pattern is not a valid regular expression."""

    def __init__(self, pattern: object, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")


class HistorySearchError(TraceWipeError):
    """The host history search failed. Callers degrade to exact-URL deletion."""


class DeletionCapabilityError(TraceWipeError):
    """A host deletion capability (history, site data, cache) failed."""


class StorageIOError(TraceWipeError):
    """Reading or writing a persistent or volatile store failed."""


def _format_extra(extra: dict | None) -> str:
    if not extra:
        return ""
    parts: list[str] = []
    for key, value in extra.items():
        if value is None:
            continue
        parts.append(f"{key}={value}")
    return f" {' '.join(parts)}" if parts else ""


def log_exception(logger: logging.Logger, msg: str, *, extra: dict | None = None, exc: BaseException | None = None) -> None:
    """
    Log an exception with context. Uses logger.exception for stack traces.
    """
    suffix = _format_extra(extra)
    if exc is not None:
        logger.error(f"{msg}{suffix}: {exc}", exc_info=exc)
        return
    logger.exception(f"{msg}{suffix}")


def error_message(exc: BaseException) -> str:
    """Human-readable message for a captured capability error."""
    text = str(exc)
    return text or exc.__class__.__name__
