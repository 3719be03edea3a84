# rulebuilder/structural_validator.py

from typing import Any

from rulebuilder.rule_json import parse_json_document

REQUIRED_CONDITION_KEYS = ("field", "operator", "value")


def _non_blank_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_structurally_valid(rule_json: str | None) -> bool:
    """
    Deterministic shape check of a rule JSON document.

    True only for an object with non-blank string `action` and `target` and a
    non-empty `conditions` array whose every entry is an object carrying
    non-blank string `field`, `operator` and `value`. Keys match regardless of
    case. Never raises and never mutates its input.
    """
    doc = parse_json_document(rule_json)
    if not isinstance(doc, dict):
        return False

    if not _non_blank_str(doc.get("action")) or not _non_blank_str(doc.get("target")):
        return False

    conditions = doc.get("conditions")
    if not isinstance(conditions, list) or not conditions:
        return False

    for condition in conditions:
        if not isinstance(condition, dict):
            return False
        if not all(_non_blank_str(condition.get(k)) for k in REQUIRED_CONDITION_KEYS):
            return False

    return True
