# rulebuilder/rule_json.py
"""
Reading rule JSON produced by a model.

Model output casing is not reliable ("Action", "TARGET", "timerange"), so every
document is parsed once and all object keys are lower-cased before any lookup.
"""

import json
import math
from typing import Any, List, Optional

from rulebuilder.entities import Condition, Rule


def lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [lower_keys(v) for v in value]
    return value


def parse_json_document(text: str | None) -> Any:
    """
    Strict parse followed by key lower-casing. Returns None on any failure.
    """
    if not text or not text.strip():
        return None
    try:
        return lower_keys(json.loads(text))
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _priority(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 1
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return 1
        return int(parsed) if math.isfinite(parsed) else 1
    return 1


def _logic(value: Any) -> str:
    if isinstance(value, str) and value.strip().upper() == "OR":
        return "OR"
    return "AND"


def _conditions(value: Any) -> List[Condition]:
    if not isinstance(value, list):
        return []
    out: List[Condition] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        cond = Condition(
            field=_text(entry.get("field")),
            operator=_text(entry.get("operator")),
            value=_text(entry.get("value")),
        )
        if not (cond.field or cond.operator or cond.value):
            continue
        out.append(cond)
    return out


def rule_from_value(value: Any) -> Rule:
    """
    Lenient conversion of an already parsed (and key-lowered) JSON value.
    Anything that does not look like a rule becomes an empty Rule.
    """
    if not isinstance(value, dict):
        return Rule()

    rules = value.get("rules")
    if "action" not in value and isinstance(rules, list) and rules:
        return rule_from_value(rules[0])

    action = value.get("action")
    target = value.get("target")
    time_range = value.get("timerange")

    return Rule(
        action=action.strip() if isinstance(action, str) else "",
        target=target.strip() if isinstance(target, str) else "",
        conditions=_conditions(value.get("conditions")),
        time_range=time_range.strip() if isinstance(time_range, str) and time_range.strip() else None,
        priority=_priority(value.get("priority")),
        logic=_logic(value.get("logic")),
    )


def rule_from_json(text: Optional[str]) -> Rule:
    return rule_from_value(parse_json_document(text))
