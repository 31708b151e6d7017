"""
Rules package for TraceWipe.

This package contains the rule model and validator, the engine that
compiles persisted rules and matches URLs against them, and helpers to
import and export rule documents.
"""

from .schema import (
    CompiledPattern,
    Rule,
    RuleActions,
    RuleMatch,
    RuleSafety,
    RuleTiming,
    ValidationResult,
    compile_pattern,
    create_rule,
    validate_rule,
)
from .engine import CompiledRule, Match, RulesEngine, compile_rule, merge_actions, merge_timing
from .transfer import ImportReport, export_rules, import_rules, load_rules_document

__all__ = [
    'CompiledPattern',
    'CompiledRule',
    'ImportReport',
    'Match',
    'Rule',
    'RuleActions',
    'RuleMatch',
    'RuleSafety',
    'RuleTiming',
    'RulesEngine',
    'ValidationResult',
    'compile_pattern',
    'compile_rule',
    'create_rule',
    'export_rules',
    'import_rules',
    'load_rules_document',
    'merge_actions',
    'merge_timing',
    'validate_rule',
]
