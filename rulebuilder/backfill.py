# rulebuilder/backfill.py
"""
Deterministic, model-free inference of rule fields from the source sentence.

Used after extraction to fill whatever the model left empty. Present values
are never overwritten.
"""

import logging
import re
from typing import List, Mapping, Sequence, Tuple

from rulebuilder.entities import Condition, Rule

logger = logging.getLogger("rulebuilder.backfill")

DEFAULT_ACTION = "apply_policy"
DEFAULT_TARGET = "subject"

# Ordered: first group with a hit wins.
ACTION_KEYWORDS: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("off",), "grant_time_off"),
    (("notify", "alert", "inform", "email", "message"), "notify"),
    (("deny", "reject", "block", "prevent", "forbid"), "deny"),
    (("schedule", "assign", "book", "arrange", "plan", "reserve"), "schedule"),
    (("call", "contact"), "contact"),
    (("approve", "allow", "grant", "get", "give", "offer"), "grant"),
)

# Ordered: more specific phrases before the generic ones they contain.
TARGET_KEYWORDS: Sequence[Tuple[str, str]] = (
    ("crew member", "crew_member"),
    ("casual pool", "casual_pool"),
    ("senior engineer", "senior_engineer"),
    ("junior engineer", "junior_engineer"),
    ("engineer", "engineer"),
    ("deckhand", "deckhand"),
    ("cook", "cook"),
    ("chef", "chef"),
    ("steward", "steward"),
    ("captain", "captain"),
    ("supervisor", "supervisor"),
    ("manager", "manager"),
    ("employees", "employees"),
    ("employee", "employee"),
    ("staff", "staff"),
    ("workers", "workers"),
    ("worker", "worker"),
    ("crew", "crew"),
    ("team", "team"),
    ("customer", "customer"),
    ("user", "user"),
)

# Words that contain a keyword without meaning it.
KEYWORD_EXCLUSIONS: Mapping[str, Tuple[str, ...]] = {
    "off": ("offic", "offer"),
    "get": ("target", "budget"),
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_WEEKDAY_RE = re.compile(r"\b(" + "|".join(WEEKDAYS) + r")s?\b")
_HOURS_RE = re.compile(
    r"\b(?:over|more than|greater than|above|exceeds?|exceeding|in excess of)\s+"
    r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?)\b"
)


def _mentions(text: str, keyword: str) -> bool:
    for excluded in KEYWORD_EXCLUSIONS.get(keyword, ()):
        text = text.replace(excluded, " ")
    return keyword in text


def infer_action(source_text: str) -> str:
    text = (source_text or "").lower()
    for keywords, action in ACTION_KEYWORDS:
        if any(_mentions(text, k) for k in keywords):
            return action
    return DEFAULT_ACTION


def infer_target(source_text: str) -> str:
    text = (source_text or "").lower()
    for keyword, target in TARGET_KEYWORDS:
        if _mentions(text, keyword):
            return target
    return DEFAULT_TARGET


def infer_conditions(source_text: str) -> List[Condition]:
    """
    Weekday mentions become `day_of_week equals <day>`, hour thresholds become
    `hours_worked greater_than <n>`. Falls back to a single
    `context contains <source text>` condition so the result is never empty.
    """
    text = (source_text or "").lower()
    conditions: List[Condition] = []

    seen_days = set()
    for match in _WEEKDAY_RE.finditer(text):
        day = match.group(1)
        if day in seen_days:
            continue
        seen_days.add(day)
        conditions.append(Condition(field="day_of_week", operator="equals", value=day))

    seen_hours = set()
    for match in _HOURS_RE.finditer(text):
        hours = match.group(1)
        if hours in seen_hours:
            continue
        seen_hours.add(hours)
        conditions.append(Condition(field="hours_worked", operator="greater_than", value=hours))

    if not conditions:
        conditions.append(Condition(field="context", operator="contains", value=(source_text or "").strip()))

    return conditions


def backfill(rule: Rule, source_text: str) -> Rule:
    if rule.is_complete():
        return rule

    update = {}
    if not rule.action.strip():
        update["action"] = infer_action(source_text)
        logger.info(f"backfill: action inferred as '{update['action']}'")
    if not rule.target.strip():
        update["target"] = infer_target(source_text)
        logger.info(f"backfill: target inferred as '{update['target']}'")
    if not rule.has_usable_conditions():
        update["conditions"] = infer_conditions(source_text)
        logger.info(f"backfill: {len(update['conditions'])} condition(s) inferred")

    return rule.model_copy(update=update)
