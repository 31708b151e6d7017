from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import make_rule
from tracewipe.rules.transfer import export_rules, import_rules, load_rules_document


def test_import_overwrites_same_id_and_appends_new() -> None:
    existing = [make_rule("Old", ["old"], id="r1"), make_rule("Other", ["other"], id="r2")]
    document = [
        {"id": "r1", "name": "Replaced", "match": {"urlRegex": ["new"]}},
        {"name": "Fresh", "match": {"urlRegex": ["fresh"]}},
    ]
    rules, report = import_rules(document, existing)
    assert report.imported == 2
    assert report.skipped == 0
    assert [r["name"] for r in rules] == ["Replaced", "Other", "Fresh"]
    assert rules[0]["match"]["urlRegex"] == ["new"]
    assert rules[2]["id"]


def test_import_skips_invalid_rules_with_reasons() -> None:
    document = [
        {"name": "", "match": {"urlRegex": ["x"]}},
        {"name": "Bad regex", "match": {"urlRegex": ["("]}},
        {"name": "Wrong type", "match": {"urlRegex": ["x"]}, "safety": {"maxDeletesPerMinute": "many"}},
        "not a rule",
        {"name": "Good", "match": {"urlRegex": ["x"]}},
    ]
    rules, report = import_rules(document, [])
    assert report.imported == 1
    assert report.skipped == 4
    assert [r["name"] for r in rules] == ["Good"]
    assert any("Rule must have a non-empty name" in err for err in report.errors)
    assert any("Invalid URL regex" in err for err in report.errors)
    assert any(err.startswith("#3") for err in report.errors)


def test_import_requires_a_list() -> None:
    with pytest.raises(ValueError):
        import_rules({"rules": []}, [])


def test_export_is_json() -> None:
    rules = [make_rule("A", ["a"], id="a")]
    assert json.loads(export_rules(rules)) == rules


def test_load_rules_document_reads_yaml_and_json(tmp_path: Path) -> None:
    yaml_path = tmp_path / "rules.yaml"
    yaml_path.write_text("- name: Y\n  match:\n    urlRegex: ['y']\n", encoding="utf-8")
    json_path = tmp_path / "rules.json"
    json_path.write_text(json.dumps([{"name": "J"}]), encoding="utf-8")
    assert load_rules_document(yaml_path) == [{"name": "Y", "match": {"urlRegex": ["y"]}}]
    assert load_rules_document(json_path) == [{"name": "J"}]


def test_example_rules_file_imports_cleanly() -> None:
    project_root = Path(__file__).resolve().parents[1]
    document = load_rules_document(project_root / "config" / "rules.example.yaml")
    _, report = import_rules(document, [])
    assert report.skipped == 0, report.errors
    assert report.imported == 2
