# rulebuilder/batch.py

import json
import logging
from typing import Any, List, Optional, Sequence

from rulebuilder.completion_provider import CancellationToken, CompletionProvider
from rulebuilder.entities import Rule
from rulebuilder.exceptions import BatchPartialFailure, PipelineFailure
from rulebuilder.llm_stages import JsonRepairer, ProviderStage, require_text
from rulebuilder.rule_json import rule_from_json
from rulebuilder.structural_validator import is_structurally_valid
from rulebuilder.text_normalizer import normalize

logger = logging.getLogger("rulebuilder.batch")


class BatchRuleExtractor(ProviderStage):
    """
    Extracts every rule described in a text with one provider call, then
    repairs and validates the rules one by one. A single bad rule fails the
    whole batch: rules are never silently dropped.
    """

    template_name = "MultiRuleExtractor"

    def __init__(self, provider: CompletionProvider, repairer: Optional[JsonRepairer] = None):
        super().__init__(provider)
        self.repairer = repairer or JsonRepairer(provider)

    def _rule_elements(self, raw: str) -> List[Any]:
        text = self.clean_triple_backticks(normalize(raw)).strip()
        try:
            doc = json.loads(text)
        except ValueError:
            try:
                doc = self.load_fault_tolerant_json(text)
            except ValueError as e:
                raise PipelineFailure("Multi-rule extraction returned unparseable output.") from e

        if isinstance(doc, list):
            return doc
        if isinstance(doc, dict):
            for key, value in doc.items():
                if str(key).lower() == "rules" and isinstance(value, list):
                    return value
            if any(str(k).lower() == "action" for k in doc):
                return [doc]
        raise PipelineFailure("Multi-rule extraction did not return a rules array.")

    def extract(self, text: str, cancel: Optional[CancellationToken] = None) -> List[Rule]:
        require_text(text, "Text for multi-rule extraction")

        raw = self._call(text, cancel)
        if not raw.strip():
            raise PipelineFailure("Multi-rule extraction returned no content.")

        elements = self._rule_elements(raw)
        if not elements:
            raise PipelineFailure("Multi-rule extraction returned no rules.")

        rules: List[Rule] = []
        for index, element in enumerate(elements):
            element_json = element if isinstance(element, str) else json.dumps(element)
            if not element_json.strip():
                raise BatchPartialFailure(index, "rule is empty")
            repaired = self.repairer.repair(element_json, cancel)
            if not is_structurally_valid(repaired):
                logger.warning(f"extract: rule {index + 1}/{len(elements)} failed validation, aborting batch")
                raise BatchPartialFailure(index, "rule JSON failed validation")
            rules.append(rule_from_json(repaired))

        logger.info(f"extract: {len(rules)} rule(s) extracted")
        return rules


class RuleClusterer(ProviderStage):
    template_name = "RuleClusterer"

    def cluster(self, rules_json: str, cancel: Optional[CancellationToken] = None) -> str:
        require_text(rules_json, "Rules JSON for clustering")
        clustered = self._call(rules_json, cancel)
        if not clustered.strip():
            raise PipelineFailure("Rule clustering returned no content.")
        return clustered.strip()


def rules_payload(rules: Sequence[Rule | dict]) -> str:
    return json.dumps({"rules": [r.to_dict() if isinstance(r, Rule) else r for r in rules]})
