"""
Rule import and export.

An import document is a list of rule objects. Each item is expanded with
:func:`create_rule` defaults and validated; valid rules replace an existing
rule with the same id or are appended, invalid ones are skipped and
reported.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from ..core.config import Settings
from ..core.errors import RuleValidationError
from .schema import create_rule, validate_rule

logger = logging.getLogger("rules.transfer")


@dataclass
class ImportReport:
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def import_rules(
    document: Any,
    existing: Sequence[Dict[str, Any]],
    settings: Optional[Settings] = None,
) -> Tuple[List[Dict[str, Any]], ImportReport]:
    """Merge ``document`` into ``existing`` and return the new rule list."""
    settings = settings or Settings()
    if not isinstance(document, list):
        raise ValueError("Invalid rules document: expected an array of rules")
    rules = [dict(rule) for rule in existing]
    report = ImportReport()
    for index, item in enumerate(document):
        if not isinstance(item, dict):
            report.skipped += 1
            report.errors.append(f"#{index}: Rule must be an object")
            continue
        try:
            rule = create_rule(
                item,
                max_deletes_per_minute=settings.default_max_deletes_per_minute,
                cooldown_seconds=settings.default_cooldown_seconds,
            )
        except RuleValidationError as exc:
            report.skipped += 1
            report.errors.extend(f"#{index}: {err}" for err in exc.errors)
            continue
        validation = validate_rule(rule)
        if not validation.valid:
            report.skipped += 1
            label = rule.name or rule.id
            report.errors.extend(f"#{index} ({label}): {err}" for err in validation.errors)
            continue
        doc = rule.to_document()
        position = next((i for i, current in enumerate(rules) if current.get("id") == doc["id"]), None)
        if position is None:
            rules.append(doc)
        else:
            rules[position] = doc
        report.imported += 1
    logger.info("Imported %s rules, skipped %s", report.imported, report.skipped)
    return rules, report


def export_rules(rules: Sequence[Dict[str, Any]]) -> str:
    return json.dumps(list(rules), indent=2)


def load_rules_document(path: str | Path) -> Any:
    """Read a JSON or YAML rules file (chosen by extension, JSON by default)."""
    target = Path(path)
    with target.open("r", encoding="utf-8") as f:
        if target.suffix.lower() in {".yaml", ".yml"}:
            return yaml.safe_load(f)
        return json.load(f)
