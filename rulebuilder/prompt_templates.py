# rulebuilder/prompt_templates.py

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    plugin: str
    version: str
    text: str


RULE_SCHEMA_BLOCK = """
{
  "action": "string",
  "target": "string",
  "conditions": [
    {
      "field": "string",
      "operator": "equals | not_equals | contains | greater_than | less_than",
      "value": "string"
    }
  ],
  "timeRange": "string | null",
  "priority": 1,
  "logic": "AND | OR"
}
"""

SUMMARIZE_PROMPT = """
You are an operations analyst. Summarize the following rule description in one or two
plain sentences. Keep every role, number, day, time window and threshold that appears in it.
Do not add information that is not in the text. Return only the summary.

Text:
```
{input}
```
"""

INTENT_EXTRACTOR_PROMPT = """
You convert a natural-language staffing or operations rule into a single JSON object.

The JSON object MUST follow this schema:
""" + RULE_SCHEMA_BLOCK + """
Guidelines:
- "action" is a short imperative verb phrase in snake_case (e.g. "contact", "notify", "deny", "schedule").
- "target" is who or what the action applies to, in snake_case (e.g. "casual_pool", "deckhand").
- Every condition MUST have a non-empty "field", "operator" and "value"; values are always strings.
- Use "hours_worked", "day_of_week", "role", "certification_status", "shift", "location" as field
  names when they fit.
- "timeRange" is null unless the text names a time window.
- "priority" is an integer, 1 unless the text says otherwise.
- "logic" is "AND" unless the text clearly asks for any-of semantics.

Example:
Input: If a deckhand works over 12 hours, call someone from the casual pool first.
Output:
{
  "action": "contact",
  "target": "casual_pool",
  "conditions": [
    { "field": "role", "operator": "equals", "value": "deckhand" },
    { "field": "hours_worked", "operator": "greater_than", "value": "12" }
  ],
  "timeRange": null,
  "priority": 1,
  "logic": "AND"
}

Return the JSON object only: no Markdown fences, no comments, no prose.

Input:
{input}
"""

REPAIR_FUNCTION_PROMPT = """
The text below was supposed to be a JSON object describing a rule, but it may be malformed:
missing quotes or brackets, trailing commas, comments, Markdown fences, HTML entities such as &quot;,
or surrounding prose.

Repair it so that it is a single valid JSON object. Keep every key and value the text already
contains; do not invent new content. Where the text clearly describes a rule, shape it like this:
""" + RULE_SCHEMA_BLOCK + """
Return the corrected JSON and nothing else, as further comments would break the JSON parsing.
If the JSON is already correct, return it as it is.

Text:
```
{input}
```
"""

SCHEMA_VALIDATOR_PROMPT = """
You are a strict reviewer of rule JSON documents. The expected schema is:
""" + RULE_SCHEMA_BLOCK + """
Check the document below against the schema: required keys present, correct types,
non-empty action and target, at least one condition, every condition with non-empty
field, operator and value, logic either AND or OR.

Answer with a JSON object of exactly this shape and nothing else:
{ "valid": true, "issues": [] }
where "issues" lists one short human-readable sentence per problem found.

Document:
```
{input}
```
"""

REFINE_PROMPT = """
You improve rule JSON documents without changing their meaning. The schema is:
""" + RULE_SCHEMA_BLOCK + """
Refine the rule below:
- use concise snake_case for action, target and condition fields;
- use only the operators equals, not_equals, contains, greater_than, less_than;
- split compound conditions into separate conditions;
- keep every value as a string;
- keep timeRange, priority and logic unless they are clearly wrong.

Return the refined JSON object only.

Rule:
```
{input}
```
"""

RULE_EXPLAINER_PROMPT = """
Explain the following rule to a rostering coordinator in plain English, in two to four sentences.
Say what happens, to whom, and under which conditions. Do not mention JSON or field names.

Rule:
```
{input}
```
"""

RULE_CLUSTERER_PROMPT = """
You are given a set of rules as JSON. Group them into clusters of rules that deal with the
same concern (same target, same kind of action, or overlapping conditions), and point out
rules that conflict or duplicate each other.

Answer with a JSON object shaped like:
{
  "clusters": [
    { "name": "string", "summary": "string", "rules": [0, 2] }
  ],
  "conflicts": [ "string" ]
}
where the numbers are zero-based positions of the rules in the input.

Rules:
```
{input}
```
"""

MULTI_RULE_EXTRACTOR_PROMPT = """
The text below may describe several independent rules. Extract every rule it contains.

Each rule MUST follow this schema:
""" + RULE_SCHEMA_BLOCK + """
Answer with a single JSON object shaped like:
{ "rules": [ ... ] }
keeping the rules in the order they appear in the text.
Return the JSON object only: no Markdown fences, no comments, no prose.

Text:
```
{input}
```
"""

FREEFORM_PROMPT = "{input}"


def _build_registry(*templates: PromptTemplate) -> Mapping[str, PromptTemplate]:
    registry = {}
    for t in templates:
        if t.name in registry:
            raise ValueError(f"Duplicate prompt template name: {t.name}")
        registry[t.name] = t
    return MappingProxyType(registry)


PROMPT_TEMPLATES: Mapping[str, PromptTemplate] = _build_registry(
    PromptTemplate("SummarizePrompt", "UtilityPlugin", "1", SUMMARIZE_PROMPT),
    PromptTemplate("FreeformPrompt", "UtilityPlugin", "1", FREEFORM_PROMPT),
    PromptTemplate("IntentExtractor", "RuleBuilder", "3", INTENT_EXTRACTOR_PROMPT),
    PromptTemplate("RepairFunction", "RuleBuilder", "2", REPAIR_FUNCTION_PROMPT),
    PromptTemplate("SchemaValidator", "RuleBuilder", "2", SCHEMA_VALIDATOR_PROMPT),
    PromptTemplate("RefinePrompt", "RuleBuilder", "1", REFINE_PROMPT),
    PromptTemplate("RuleExplainer", "RuleBuilder", "1", RULE_EXPLAINER_PROMPT),
    PromptTemplate("RuleClusterer", "RuleBuilder", "1", RULE_CLUSTERER_PROMPT),
    PromptTemplate("MultiRuleExtractor", "RuleBuilder", "1", MULTI_RULE_EXTRACTOR_PROMPT),
)
