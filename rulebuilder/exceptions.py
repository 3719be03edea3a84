# rulebuilder/exceptions.py

from typing import List, Optional


class RuleBuilderError(Exception):
    pass


class InvalidArgument(RuleBuilderError, ValueError):
    """
    Blank or missing input handed to a stage. Caller's fault, never retried.
    """


class ProviderFailure(RuleBuilderError):
    """
    Transport or provider-side error raised by a completion provider.
    """


class ProviderCancelled(ProviderFailure):
    pass


class PipelineFailure(RuleBuilderError):
    """
    The pipeline could not produce a structurally valid rule.

    `issues` carries the aggregated issue strings when something (usually the
    schema critic) was able to explain the failure.
    """

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        self.message = message
        self.issues: List[str] = [i for i in (issues or []) if i]
        super().__init__(message)

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        return f"{self.message}: " + "; ".join(self.issues)


class BatchPartialFailure(PipelineFailure):
    def __init__(self, index: int, message: str, issues: Optional[List[str]] = None):
        self.index = index
        super().__init__(f"Rule {index + 1}: {message}", issues)
