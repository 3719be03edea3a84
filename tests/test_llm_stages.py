import json

import pytest

from rulebuilder.exceptions import InvalidArgument, PipelineFailure
from rulebuilder.llm_stages import (
    IntentExtractor,
    JsonRepairer,
    RuleExplainer,
    RuleRefiner,
    SchemaCritic,
    Summarizer,
    is_ignorable_issue,
)


def test_summarizer_trims_and_sends_text(make_provider):
    provider = make_provider({"SummarizePrompt": "  Deckhand overtime goes to the casual pool.\n"})
    assert Summarizer(provider).summarize("some text") == "Deckhand overtime goes to the casual pool."
    assert provider.calls == [("SummarizePrompt", {"input": "some text"})]


@pytest.mark.parametrize("stage_cls,method", [
    (Summarizer, "summarize"),
    (IntentExtractor, "extract_intent"),
    (JsonRepairer, "repair"),
    (SchemaCritic, "critique"),
    (RuleRefiner, "refine_raw"),
    (RuleExplainer, "explain"),
])
@pytest.mark.parametrize("blank", ["", "   ", None])
def test_blank_input_is_rejected_before_any_call(make_provider, stage_cls, method, blank):
    provider = make_provider()
    with pytest.raises(InvalidArgument):
        getattr(stage_cls(provider), method)(blank)
    assert provider.calls == []


def test_intent_extractor_returns_output_verbatim(make_provider):
    raw = "```json\n{\"action\": \"call\"}\n```"
    provider = make_provider({"IntentExtractor": raw})
    assert IntentExtractor(provider).extract_intent("call someone") == raw


class TestJsonRepairer:

    def test_decodes_entities_in_provider_output(self, make_provider):
        provider = make_provider({"RepairFunction": "{&quot;action&quot;: &quot;notify&quot;}"})
        repaired = JsonRepairer(provider).repair("{'action': 'notify'}")
        assert json.loads(repaired) == {"action": "notify"}

    def test_strips_code_fences(self, make_provider):
        provider = make_provider({"RepairFunction": "```json\n{\"action\": \"deny\"}\n```"})
        assert json.loads(JsonRepairer(provider).repair("x")) == {"action": "deny"}

    def test_echo_of_valid_json_is_kept(self, make_provider, good_rule_json):
        provider = make_provider()
        assert JsonRepairer(provider).repair(good_rule_json) == good_rule_json

    def test_blank_provider_output_falls_back_to_normalized_input(self, make_provider):
        provider = make_provider({"RepairFunction": "   "})
        repaired = JsonRepairer(provider).repair("  {&quot;action&quot;: &quot;call&quot;}  ")
        assert json.loads(repaired) == {"action": "call"}

    def test_blank_provider_output_and_blank_fallback(self, make_provider):
        provider = make_provider({"RepairFunction": ""})
        assert JsonRepairer(provider).repair("&#32;") == ""

    def test_to_json_text(self, make_provider):
        repairer = JsonRepairer(make_provider())
        assert repairer.to_json_text("") is None
        assert repairer.to_json_text("[1, 2]") == "[1, 2]"
        assert json.loads(repairer.to_json_text("{\"a\": 1,}")) == {"a": 1}


class TestSchemaCritic:

    def test_valid_verdict(self, make_provider, good_rule_json):
        provider = make_provider({"SchemaValidator": '{"valid": true, "issues": []}'})
        result = SchemaCritic(provider).critique(good_rule_json)
        assert result.is_valid is True
        assert result.issues == []

    def test_invalid_verdict_keeps_issues(self, make_provider, good_rule_json):
        provider = make_provider({
            "SchemaValidator": '{"valid": false, "issues": ["Target is ambiguous.", "", 4, " Missing priority. "]}'
        })
        result = SchemaCritic(provider).critique(good_rule_json)
        assert result.is_valid is False
        assert result.issues == ["Target is ambiguous.", "Missing priority."]

    def test_valid_must_be_a_real_boolean(self, make_provider, good_rule_json):
        provider = make_provider({"SchemaValidator": '{"valid": "true", "issues": []}'})
        assert SchemaCritic(provider).critique(good_rule_json).is_valid is False

    def test_fenced_verdict_is_read(self, make_provider, good_rule_json):
        provider = make_provider({"SchemaValidator": '```json\n{"valid": true}\n```'})
        assert SchemaCritic(provider).critique(good_rule_json).is_valid is True

    @pytest.mark.parametrize("payload,issue", [
        ("", "Validator returned an empty response."),
        ("   ", "Validator returned an empty response."),
        ("looks fine to me", "Validator returned unparseable output."),
        ("[true]", "Validator returned unparseable output."),
    ])
    def test_bad_verdict_payloads(self, make_provider, good_rule_json, payload, issue):
        provider = make_provider({"SchemaValidator": payload})
        result = SchemaCritic(provider).critique(good_rule_json)
        assert result.is_valid is False
        assert result.issues == [issue]

    def test_formatting_only_issues_are_promoted_to_valid(self, make_provider, good_rule_json):
        verdict = json.dumps({
            "valid": False,
            "issues": ["Value contains HTML entities like &quot;", "The JSON is not properly formatted"],
        })
        provider = make_provider({"SchemaValidator": verdict})
        result = SchemaCritic(provider, ignore_formatting_issues=True).critique(good_rule_json)
        assert result.is_valid is True
        assert result.issues == []

    def test_formatting_issues_kept_when_filter_disabled(self, make_provider, good_rule_json):
        verdict = json.dumps({"valid": False, "issues": ["Contains invalid characters"]})
        provider = make_provider({"SchemaValidator": verdict})
        result = SchemaCritic(provider, ignore_formatting_issues=False).critique(good_rule_json)
        assert result.is_valid is False
        assert result.issues == ["Contains invalid characters"]

    def test_mixed_issues_are_not_promoted(self, make_provider, good_rule_json):
        verdict = json.dumps({"valid": False, "issues": ["Contains invalid characters", "Action is vague"]})
        provider = make_provider({"SchemaValidator": verdict})
        result = SchemaCritic(provider).critique(good_rule_json)
        assert result.is_valid is False
        assert result.issues == ["Contains invalid characters", "Action is vague"]

    def test_invalid_without_issues_stays_invalid(self, make_provider, good_rule_json):
        provider = make_provider({"SchemaValidator": '{"valid": false, "issues": []}'})
        result = SchemaCritic(provider).critique(good_rule_json)
        assert result.is_valid is False
        assert result.issues == []


@pytest.mark.parametrize("issue,expected", [
    ("Uses HTML Entities", True),
    ("value has &quot; in it", True),
    ("INVALID CHARACTERS found", True),
    ("Output not properly formatted", True),
    ("Target is missing", False),
    ("", False),
    ("   ", False),
])
def test_is_ignorable_issue(issue, expected):
    assert is_ignorable_issue(issue) is expected


def test_refiner_returns_raw_output(make_provider, good_rule_json):
    provider = make_provider({"RefinePrompt": "  {&quot;action&quot;: 1}  "})
    assert RuleRefiner(provider).refine_raw(good_rule_json) == "  {&quot;action&quot;: 1}  "


def test_refiner_rejects_empty_output(make_provider, good_rule_json):
    provider = make_provider({"RefinePrompt": "  "})
    with pytest.raises(PipelineFailure, match="Refinement returned empty JSON."):
        RuleRefiner(provider).refine_raw(good_rule_json)


def test_explainer(make_provider, good_rule_json):
    provider = make_provider({"RuleExplainer": "\nCall the casual pool when a deckhand passes 12 hours.\n"})
    assert RuleExplainer(provider).explain(good_rule_json) == "Call the casual pool when a deckhand passes 12 hours."


def test_explainer_rejects_empty_output(make_provider, good_rule_json):
    provider = make_provider({"RuleExplainer": ""})
    with pytest.raises(PipelineFailure, match="Rule explanation returned no content."):
        RuleExplainer(provider).explain(good_rule_json)
