# rulebuilder/llm_stages.py
"""
Thin stages around the completion provider. Each stage owns one prompt
template and the local clean-up of what comes back from it.
"""

import json
import logging
from typing import List, Optional

from rulebuilder.base_utils import BaseUtils
from rulebuilder.completion_provider import CancellationToken, CompletionProvider
from rulebuilder.entities import ValidationResult
from rulebuilder.exceptions import InvalidArgument, PipelineFailure
from rulebuilder.text_normalizer import normalize

logger = logging.getLogger("rulebuilder.llm_stages")

IGNORABLE_ISSUE_MARKERS = (
    "html entities",
    "&quot;",
    "invalid characters",
    "not properly formatted",
)


def require_text(value: str | None, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{what} is required.")


def is_ignorable_issue(issue: str) -> bool:
    """
    Issues about entity encoding or formatting describe artifacts the text
    normalizer already removes.
    """
    if not issue or not issue.strip():
        return False
    lowered = issue.lower()
    return any(marker in lowered for marker in IGNORABLE_ISSUE_MARKERS)


class ProviderStage(BaseUtils):
    template_name = ""

    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def _call(self, text: str, cancel: Optional[CancellationToken]) -> str:
        return self.provider.invoke(self.template_name, {"input": text}, cancel) or ""


class Summarizer(ProviderStage):
    template_name = "SummarizePrompt"

    def summarize(self, text: str, cancel: Optional[CancellationToken] = None) -> str:
        require_text(text, "Text for summarization")
        return self._call(text, cancel).strip()


class IntentExtractor(ProviderStage):
    template_name = "IntentExtractor"

    def extract_intent(self, text: str, cancel: Optional[CancellationToken] = None) -> str:
        """Raw model output, possibly not JSON at all."""
        require_text(text, "Natural language text")
        return self._call(text, cancel)


class JsonRepairer(ProviderStage):
    template_name = "RepairFunction"

    def to_json_text(self, candidate: str) -> Optional[str]:
        """
        Returns parseable JSON text for the candidate, or None when neither a
        strict parse nor the fault tolerant loader can make sense of it.
        """
        if not candidate:
            return None
        stripped = self.clean_triple_backticks(candidate).strip()
        try:
            parsed = json.loads(stripped)
            if isinstance(parsed, (dict, list)):
                return stripped
        except ValueError:
            pass
        try:
            return json.dumps(self.load_fault_tolerant_json(stripped))
        except ValueError:
            return None

    def repair(self, raw_json: str, cancel: Optional[CancellationToken] = None) -> str:
        """
        Best-effort repair. Never fails on bad content: the result may still
        be unparseable, and it is up to validation to reject it.
        """
        require_text(raw_json, "JSON for repair")

        repaired = normalize(self._call(raw_json, cancel))
        repaired_json = self.to_json_text(repaired)
        if repaired_json is not None:
            return repaired_json

        fallback = normalize(raw_json)
        fallback_json = self.to_json_text(fallback)
        if fallback_json is not None or not repaired:
            logger.warning(
                f"repair: {self.template_name} produced nothing usable, falling back to the normalized input"
            )
            return fallback_json if fallback_json is not None else fallback

        return repaired


class SchemaCritic(ProviderStage):
    template_name = "SchemaValidator"

    def __init__(self, provider: CompletionProvider, ignore_formatting_issues: bool = True):
        super().__init__(provider)
        self.ignore_formatting_issues = ignore_formatting_issues

    def critique(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> ValidationResult:
        require_text(rule_json, "JSON for validation")

        payload = self._call(rule_json, cancel)
        if not payload.strip():
            return ValidationResult(is_valid=False, issues=["Validator returned an empty response."])

        try:
            verdict = json.loads(self.clean_triple_backticks(payload).strip())
        except ValueError:
            verdict = None
        if not isinstance(verdict, dict):
            return ValidationResult(is_valid=False, issues=["Validator returned unparseable output."])

        valid = verdict.get("valid") is True
        issues: List[str] = []
        raw_issues = verdict.get("issues")
        if isinstance(raw_issues, list):
            issues = [i.strip() for i in raw_issues if isinstance(i, str) and i.strip()]

        if (
            not valid
            and issues
            and self.ignore_formatting_issues
            and all(is_ignorable_issue(i) for i in issues)
        ):
            logger.info(f"critique: promoting to valid, only formatting issues reported: {issues}")
            return ValidationResult(is_valid=True, issues=[])

        return ValidationResult(is_valid=valid, issues=issues)


class RuleRefiner(ProviderStage):
    template_name = "RefinePrompt"

    def refine_raw(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> str:
        require_text(rule_json, "JSON for refinement")
        refined = self._call(rule_json, cancel)
        if not refined.strip():
            raise PipelineFailure("Refinement returned empty JSON.")
        return refined


class RuleExplainer(ProviderStage):
    template_name = "RuleExplainer"

    def explain(self, rule_json: str, cancel: Optional[CancellationToken] = None) -> str:
        require_text(rule_json, "JSON for explanation")
        explanation = self._call(rule_json, cancel)
        if not explanation.strip():
            raise PipelineFailure("Rule explanation returned no content.")
        return explanation.strip()
