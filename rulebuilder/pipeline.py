# rulebuilder/pipeline.py

import logging
from typing import List, Optional, Sequence

from rulebuilder import settings
from rulebuilder.backfill import backfill
from rulebuilder.batch import BatchRuleExtractor, RuleClusterer, rules_payload
from rulebuilder.completion_provider import CancellationToken, CompletionProvider, LlmCompletionProvider
from rulebuilder.entities import Rule, ValidationResult
from rulebuilder.exceptions import PipelineFailure, ProviderCancelled, ProviderFailure
from rulebuilder.llm_client import build_llm_for_model
from rulebuilder.llm_stages import (
    IntentExtractor,
    JsonRepairer,
    RuleExplainer,
    RuleRefiner,
    SchemaCritic,
    Summarizer,
    require_text,
)
from rulebuilder.rule_json import rule_from_json
from rulebuilder.structural_validator import is_structurally_valid
from rulebuilder.text_normalizer import normalize

logger = logging.getLogger("rulebuilder.pipeline")


class RulePipeline:
    """
    Sentence in, validated Rule out.

    extract_rule_pipeline:
        summarize -> extract intent (text + summary) -> repair
        -> [nothing usable?] extract intent again from the bare text -> repair
        -> heuristic backfill -> structural validation

    Holds no per-request state: one instance serves concurrent requests.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        ignore_formatting_issues: bool = settings.IGNORE_FORMATTING_ISSUES,
    ):
        self.provider = provider
        self.summarizer = Summarizer(provider)
        self.intent_extractor = IntentExtractor(provider)
        self.repairer = JsonRepairer(provider)
        self.critic = SchemaCritic(provider, ignore_formatting_issues=ignore_formatting_issues)
        self.refiner = RuleRefiner(provider)
        self.explainer = RuleExplainer(provider)
        self.batch_extractor = BatchRuleExtractor(provider, self.repairer)
        self.clusterer = RuleClusterer(provider)

    # -----------------------
    # Helpers
    # -----------------------

    def _extract_and_repair(self, text: str, cancel: Optional[CancellationToken]) -> str:
        intent_json = self.intent_extractor.extract_intent(text, cancel)
        if not intent_json.strip():
            logger.warning("extract: intent extractor returned an empty response")
            return ""
        return self.repairer.repair(intent_json, cancel)

    def _fail_validation(self, rule_json: str, cancel: Optional[CancellationToken]) -> PipelineFailure:
        """
        Builds the failure for a rule that did not pass structural validation,
        asking the critic to explain what is wrong with it.
        """
        issues: List[str] = []
        if rule_json.strip():
            try:
                issues = list(self.critic.critique(rule_json, cancel).issues)
            except ProviderCancelled:
                raise
            except ProviderFailure as e:
                logger.warning(f"critic unavailable, failing without issues: {e}")
        failure = PipelineFailure("Rule JSON failed validation", issues)
        logger.warning(f"pipeline failure: {failure}")
        return failure

    # -----------------------
    # Operations
    # -----------------------

    def extract_rule_pipeline(self, text: str, cancel: Optional[CancellationToken] = None) -> Rule:
        require_text(text, "Text for the rule pipeline")

        summary = self.summarizer.summarize(text, cancel)

        # Original text plus summary gives the extractor better grounding.
        combined = f"Original:\n{text}\n\nSummary:\n{summary}"
        rule = rule_from_json(self._extract_and_repair(combined, cancel))

        if rule.has_empty_core_fields():
            logger.info("extract: candidate has no usable fields, retrying with the original text only")
            rule = rule_from_json(self._extract_and_repair(text, cancel))

        rule = backfill(rule, text)
        if not rule.is_complete():
            failure = PipelineFailure("Rule JSON missing required fields after repair")
            logger.warning(f"pipeline failure: {failure}")
            raise failure

        rule_json = rule.to_json()
        if not is_structurally_valid(rule_json):
            raise self._fail_validation(rule_json, cancel)

        return rule

    def refine(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> Rule:
        require_text(rule_json, "JSON for refinement")

        repaired = self.repairer.repair(rule_json, cancel)
        refined_raw = normalize(self.refiner.refine_raw(repaired, cancel))
        refined = self.repairer.to_json_text(refined_raw) or refined_raw

        if not is_structurally_valid(refined):
            raise self._fail_validation(refined, cancel)

        return rule_from_json(refined)

    def validate(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> ValidationResult:
        """
        Structural check AND the model's critique. The critique is always
        requested so its issues can explain a structural failure too.
        """
        require_text(rule_json, "JSON for validation")

        structural = is_structurally_valid(rule_json)
        critique = self.critic.critique(rule_json, cancel)

        issues: List[str] = []
        if not structural:
            issues.append("Rule JSON failed structural validation.")
        issues.extend(critique.issues)
        return ValidationResult(is_valid=structural and critique.is_valid, issues=issues)

    def explain(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> str:
        return self.explainer.explain(rule_json, cancel)

    def extract_multiple_rules(self, text: str, cancel: Optional[CancellationToken] = None) -> List[Rule]:
        return self.batch_extractor.extract(text, cancel)

    def cluster_rules(
        self,
        rules: str | Sequence[Rule | dict],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        rules_json = rules if isinstance(rules, str) else rules_payload(rules)
        return self.clusterer.cluster(rules_json, cancel)

    def summarize(self, text: str, cancel: Optional[CancellationToken] = None) -> str:
        summary = self.summarizer.summarize(text, cancel)
        if not summary:
            raise PipelineFailure("Summarization returned no content.")
        return summary

    def ask(self, prompt: str, cancel: Optional[CancellationToken] = None) -> str:
        require_text(prompt, "A prompt")
        answer = self.provider.invoke("FreeformPrompt", {"input": prompt}, cancel) or ""
        if not answer.strip():
            raise PipelineFailure("The model returned an empty response.")
        return answer.strip()


def build_pipeline(model_name: str | None = None, timeout: float | None = None) -> RulePipeline:
    llm = build_llm_for_model(model_name, timeout=timeout)
    return RulePipeline(LlmCompletionProvider(llm))
