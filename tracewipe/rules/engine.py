"""
Rules engine: compile the persisted rule list and evaluate URLs against it.

Compilation is fail-closed for include patterns (one bad include voids the
whole rule) and fail-open for exclude patterns (a bad exclude is dropped
and simply never excludes). The compiled list is a process-wide cache that
is rebuilt on every :meth:`RulesEngine.load_rules` call and swapped in
with a single assignment once the new list is complete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Pattern

from pydantic import ValidationError

from ..constants import ACTION_DELETE, ACTION_KINDS, ACTION_KEEP, STORAGE_KEY_RULES
from ..core.errors import PatternCompileError
from ..storage.helpers import Storage
from .schema import Rule, RuleActions, RuleSafety, RuleTiming, compile_pattern


@dataclass
class CompiledRule:
    id: str
    name: str
    include: List[Pattern[str]]
    exclude: List[Pattern[str]]
    actions: RuleActions
    timing: RuleTiming
    safety: RuleSafety

    def matches(self, url: str) -> bool:
        if not any(regex.search(url) for regex in self.include):
            return False
        return not any(regex.search(url) for regex in self.exclude)


@dataclass
class Match:
    rule_id: str
    rule_name: str
    actions: RuleActions
    timing: RuleTiming
    safety: RuleSafety = field(default_factory=RuleSafety)

    def to_dict(self) -> dict:
        return {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "actions": self.actions.to_document(),
            "timing": self.timing.to_document(),
            "safety": self.safety.to_document(),
        }


def compile_rule(rule: Rule) -> CompiledRule:
    """Compile one rule; raises :class:`PatternCompileError` on a bad include."""
    include: List[Pattern[str]] = []
    for pattern in rule.match.url_regex:
        result = compile_pattern(pattern)
        if result.regex is None:
            raise PatternCompileError(pattern, result.error or "invalid pattern")
        include.append(result.regex)
    exclude: List[Pattern[str]] = []
    for pattern in rule.match.exclude_regex:
        result = compile_pattern(pattern)
        if result.regex is not None:
            exclude.append(result.regex)
    return CompiledRule(
        id=rule.id,
        name=rule.name,
        include=include,
        exclude=exclude,
        actions=rule.actions,
        timing=rule.timing,
        safety=rule.safety,
    )


def merge_actions(matches: Iterable[Match]) -> RuleActions:
    """Per kind: ``delete`` if any match deletes it, else ``keep``."""
    merged = {kind: ACTION_KEEP for kind in ACTION_KINDS}
    for match in matches:
        requested = match.actions.to_document()
        for kind in ACTION_KINDS:
            if requested.get(kind) == ACTION_DELETE:
                merged[kind] = ACTION_DELETE
    return RuleActions.model_validate(merged)


def merge_timing(matches: Iterable[Match]) -> RuleTiming:
    """OR the boolean triggers; take the smallest non-null period."""
    merged = RuleTiming(asap=False, on_tab_close=False, on_browser_close=False, periodic_minutes=None)
    for match in matches:
        timing = match.timing
        merged.asap = merged.asap or timing.asap
        merged.on_tab_close = merged.on_tab_close or timing.on_tab_close
        merged.on_browser_close = merged.on_browser_close or timing.on_browser_close
        if timing.periodic_minutes is not None:
            if merged.periodic_minutes is None or timing.periodic_minutes < merged.periodic_minutes:
                merged.periodic_minutes = timing.periodic_minutes
    return merged


class RulesEngine:
    def __init__(self, storage: Storage) -> None:
        self.logger = logging.getLogger("rules")
        self.storage = storage
        self._compiled: List[CompiledRule] = []

    @property
    def compiled_rules(self) -> List[CompiledRule]:
        return self._compiled

    async def load_rules(self) -> List[CompiledRule]:
        """Rebuild the compiled cache from the persisted rule list."""
        documents = await self.storage.get_local(STORAGE_KEY_RULES, [])
        compiled: List[CompiledRule] = []
        for document in documents or []:
            rule = self._parse(document)
            if rule is None or not rule.enabled:
                continue
            try:
                compiled.append(compile_rule(rule))
            except PatternCompileError as exc:
                self.logger.warning('Skipping rule "%s": bad regex %r (%s)', rule.name, exc.pattern, exc.reason)
        self._compiled = compiled
        self.logger.info("Loaded %s active rules", len(compiled))
        return compiled

    def _parse(self, document: Any) -> Rule | None:
        if not isinstance(document, Mapping):
            self.logger.warning("Skipping malformed rule entry of type %s", type(document).__name__)
            return None
        try:
            return Rule.model_validate(document)
        except ValidationError as exc:
            self.logger.warning("Skipping malformed rule id=%s: %s", document.get("id"), exc.errors()[0]["msg"])
            return None

    def evaluate_url(self, url: str) -> List[Match]:
        """Return one :class:`Match` per compiled rule matching ``url``, in rule order."""
        return [
            Match(
                rule_id=rule.id,
                rule_name=rule.name,
                actions=rule.actions,
                timing=rule.timing,
                safety=rule.safety,
            )
            for rule in self._compiled
            if rule.matches(url)
        ]

    merge_actions = staticmethod(merge_actions)
    merge_timing = staticmethod(merge_timing)
