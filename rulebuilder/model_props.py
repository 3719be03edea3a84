# rulebuilder/model_props.py

from typing import Any, Dict, Optional, Tuple


def is_openai_model(model_name) -> bool:
    prefixes = ("gpt-", "gpt4", "gpt-4", "gpt-5")
    return any((model_name or "").startswith(p) for p in prefixes)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Parse strings like:
        - 'gpt-5.1_low_low'
        - 'gpt-5.1_standard'
        - 'gpt-5.1_fast'
        - 'gpt-5.1_deep_low'
    into (base_model, openai_params).
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed.")

    parts = raw.split("_")
    base = parts[0]
    if len(parts) <= 1:
        return base, {}

    verbosity: Optional[str] = None
    reasoning_effort: Optional[str] = None
    service_tier: Optional[str] = None

    verbosity_tokens = {"low", "medium", "high"}
    reasoning_tokens = {"none", "minimal", "low", "medium", "high", "xhigh"}
    service_tier_tokens = {"auto", "default", "flex", "priority"}

    # (verbosity, reasoning, service tier)
    wildcards: Dict[str, Tuple[Optional[str], Optional[str], Optional[str]]] = {
        "standard": ("low", "low", None),
        "std": ("low", "low", None),
        "medium": ("medium", "medium", None),
        "fast": ("low", "none", None),
        "deep": ("medium", "high", None),
        "standard-flex": ("low", "low", "flex"),
        "fast-flex": ("low", "none", "flex"),
        "standard-priority": ("low", "low", "priority"),
    }

    unknown = []
    for tok in parts[1:]:
        t = tok.strip().lower()
        if not t:
            continue

        if t in wildcards:
            w_verb, w_reason, w_tier = wildcards[t]
            if verbosity is None and w_verb is not None:
                verbosity = w_verb
            if reasoning_effort is None and w_reason is not None:
                reasoning_effort = w_reason
            if service_tier is None and w_tier is not None:
                service_tier = w_tier
            continue

        # Positional tokens: first free slot wins, verbosity before reasoning.
        if verbosity is None and t in verbosity_tokens:
            verbosity = t
            continue
        if reasoning_effort is None and t in reasoning_tokens:
            reasoning_effort = t
            continue
        if service_tier is None and t in service_tier_tokens:
            service_tier = t
            continue

        unknown.append(t)

    if unknown:
        raise ValueError(f"parse_model_name: Unknown model suffix token(s) {unknown} in '{raw}'.")

    params: Dict[str, Any] = {}
    if verbosity is not None:
        params.setdefault("text", {})["verbosity"] = verbosity
    if reasoning_effort is not None:
        params.setdefault("reasoning", {})["effort"] = reasoning_effort
    params["service_tier"] = service_tier or "default"

    return base, params
