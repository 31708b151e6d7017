"""
Rule model, defaults and validation.

Rules are persisted as camelCase JSON documents (``urlRegex``,
``siteData``, ``periodicMinutes`` ...). The Pydantic models below expose
snake_case attributes and serialize back to the persisted shape with
``model_dump(by_alias=True)``.
"""

from __future__ import annotations

import copy
import math
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..constants import ACTION_DELETE, ACTION_KEEP
from ..core.errors import RuleValidationError

DEFAULT_MAX_DELETES_PER_MINUTE = 60
DEFAULT_COOLDOWN_SECONDS = 0

VALID_ACTION_VALUES = (ACTION_DELETE, ACTION_KEEP)

Number = Union[int, float]


def _now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RuleMatch(CamelModel):
    url_regex: List[str] = Field(default_factory=list)
    exclude_regex: List[str] = Field(default_factory=list)

    @field_validator("exclude_regex", mode="before")
    @classmethod
    def _lenient_excludes(cls, value: Any) -> List[str]:
        # A broken exclude never disables the rule, it only stops excluding.
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in value if isinstance(item, str)]


class RuleActions(CamelModel):
    """Per-kind action: ``delete`` or ``keep``."""

    history: str = ACTION_DELETE
    cookies: str = ACTION_KEEP
    cache: str = ACTION_KEEP
    site_data: str = ACTION_KEEP


class RuleTiming(CamelModel):
    asap: bool = True
    on_tab_close: bool = False
    on_browser_close: bool = False
    periodic_minutes: Optional[Number] = None

    @field_validator("asap", "on_tab_close", "on_browser_close", mode="before")
    @classmethod
    def _unset_flag(cls, value: Any) -> Any:
        return False if value is None else value


class RuleSafety(CamelModel):
    max_deletes_per_minute: Number = DEFAULT_MAX_DELETES_PER_MINUTE
    cooldown_seconds: Number = DEFAULT_COOLDOWN_SECONDS


class Rule(CamelModel):
    """A user-declared URL policy."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    enabled: bool = True
    match: RuleMatch = Field(default_factory=RuleMatch)
    actions: RuleActions = Field(default_factory=RuleActions)
    timing: RuleTiming = Field(default_factory=RuleTiming)
    safety: RuleSafety = Field(default_factory=RuleSafety)
    created_at: int = Field(default_factory=_now_ms)
    updated_at: int = Field(default_factory=_now_ms)


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class CompiledPattern:
    regex: Optional[Pattern[str]]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.regex is not None


def compile_pattern(pattern: Any) -> CompiledPattern:
    """Compile one case-insensitive URL pattern. Never raises."""
    if not pattern or not isinstance(pattern, str):
        return CompiledPattern(regex=None, error="Pattern must be a non-empty string")
    try:
        return CompiledPattern(regex=re.compile(pattern, re.IGNORECASE))
    except (re.error, RecursionError, OverflowError) as exc:
        return CompiledPattern(regex=None, error=str(exc))


def _aliased(model_cls: Type[BaseModel], data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rewrite snake_case keys of ``data`` to the model's camelCase aliases."""
    names = {name: info.alias or name for name, info in model_cls.model_fields.items()}
    return {names.get(key, key): value for key, value in data.items()}


def create_rule(overrides: Optional[Mapping[str, Any]] = None, *, max_deletes_per_minute: int = DEFAULT_MAX_DELETES_PER_MINUTE, cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS) -> Rule:
    """
    Build a rule from defaults deep-merged with ``overrides``.

    Match lists replace the defaults wholesale; ``actions``, ``timing`` and
    ``safety`` are merged key by key. A fresh id is generated unless one is
    supplied. Raises :class:`RuleValidationError` when an override has a
    type the model cannot hold (for example a non-numeric rate limit).
    """
    now = _now_ms()
    base = Rule(
        name="",
        safety=RuleSafety(max_deletes_per_minute=max_deletes_per_minute, cooldown_seconds=cooldown_seconds),
        created_at=now,
        updated_at=now,
    ).to_document()
    merged = copy.deepcopy(base)
    data = _aliased(Rule, overrides or {})

    if data.get("id"):
        merged["id"] = data["id"]
    if data.get("name") is not None:
        merged["name"] = data["name"]
    if data.get("enabled") is not None:
        merged["enabled"] = data["enabled"]
    match = data.get("match")
    if isinstance(match, Mapping):
        match = _aliased(RuleMatch, match)
        if match.get("urlRegex"):
            merged["match"]["urlRegex"] = list(match["urlRegex"])
        if match.get("excludeRegex"):
            merged["match"]["excludeRegex"] = list(match["excludeRegex"])
    for section, model_cls in (("actions", RuleActions), ("timing", RuleTiming), ("safety", RuleSafety)):
        value = data.get(section)
        if isinstance(value, Mapping):
            merged[section].update(_aliased(model_cls, value))
    for stamp in ("createdAt", "updatedAt"):
        if data.get(stamp) is not None:
            merged[stamp] = data[stamp]

    try:
        return Rule.model_validate(merged)
    except ValidationError as exc:
        raise RuleValidationError(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ) from exc


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def _rule_document(rule: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(rule, BaseModel):
        return rule.model_dump(by_alias=True)
    if isinstance(rule, Mapping):
        return rule
    return None


def validate_rule(rule: Any) -> ValidationResult:
    """
    Check a rule against every invariant and collect all violations.

    Accepts a :class:`Rule` or a raw persisted document. Never raises.
    """
    doc = _rule_document(rule)
    if doc is None:
        return ValidationResult(valid=False, errors=["Rule must be an object"])
    errors: List[str] = []

    rule_id = doc.get("id")
    if not rule_id or not isinstance(rule_id, str):
        errors.append("Rule must have a string id")
    name = doc.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("Rule must have a non-empty name")

    match = doc.get("match")
    includes = match.get("urlRegex") if isinstance(match, Mapping) else None
    if not isinstance(includes, list) or not includes:
        errors.append("Rule must have at least one URL regex pattern")
    else:
        for pattern in includes:
            result = compile_pattern(pattern)
            if result.error:
                errors.append(f'Invalid URL regex "{pattern}": {result.error}')
    excludes = match.get("excludeRegex") if isinstance(match, Mapping) else None
    if isinstance(excludes, list):
        for pattern in excludes:
            result = compile_pattern(pattern)
            if result.error:
                errors.append(f'Invalid exclude regex "{pattern}": {result.error}')

    actions = doc.get("actions")
    if isinstance(actions, Mapping):
        for key, value in actions.items():
            if value not in VALID_ACTION_VALUES:
                errors.append(f'Invalid action value "{value}" for "{key}". Must be "delete" or "keep".')
    if not isinstance(actions, Mapping) or not any(value == ACTION_DELETE for value in actions.values()):
        errors.append('Rule must have at least one action set to "delete"')

    timing = doc.get("timing")
    if not isinstance(timing, Mapping):
        errors.append("Rule must have at least one timing trigger enabled")
    else:
        periodic = timing.get("periodicMinutes")
        has_trigger = (
            timing.get("asap") is True
            or timing.get("onTabClose") is True
            or timing.get("onBrowserClose") is True
            or (_is_number(periodic) and periodic > 0)
        )
        if not has_trigger:
            errors.append("Rule must have at least one timing trigger enabled")
        if periodic is not None and (not _is_number(periodic) or periodic < 1):
            errors.append("periodicMinutes must be a number >= 1")

    safety = doc.get("safety")
    safety = safety if isinstance(safety, Mapping) else {}
    max_per_minute = safety.get("maxDeletesPerMinute")
    if not _is_number(max_per_minute) or max_per_minute < 1:
        errors.append("maxDeletesPerMinute must be a positive number")
    cooldown = safety.get("cooldownSeconds")
    if not _is_number(cooldown) or cooldown < 0:
        errors.append("cooldownSeconds must be a non-negative number")

    return ValidationResult(valid=not errors, errors=errors)


__all__ = [
    "CompiledPattern",
    "Rule",
    "RuleActions",
    "RuleMatch",
    "RuleSafety",
    "RuleTiming",
    "ValidationResult",
    "compile_pattern",
    "create_rule",
    "validate_rule",
]
