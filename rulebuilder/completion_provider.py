# rulebuilder/completion_provider.py

import abc
import logging
import threading
from typing import Mapping, Optional

from rulebuilder.base_utils import BaseUtils
from rulebuilder.exceptions import InvalidArgument, ProviderCancelled, ProviderFailure
from rulebuilder.prompt_templates import PROMPT_TEMPLATES, PromptTemplate

logger = logging.getLogger("rulebuilder.completion_provider")


class CancellationToken:
    """
    Cooperative cancel flag shared between a request and the pipeline run
    serving it. Checked at every provider call boundary.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProviderCancelled("Request was cancelled.")


def raise_if_cancelled(cancel: Optional[CancellationToken]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


class CompletionProvider(abc.ABC):
    """
    Turns a named prompt template plus string inputs into generated text.

    Implementations must be safe to share between concurrent requests and
    must not retry on their own.
    """

    @abc.abstractmethod
    def invoke(
        self,
        template_name: str,
        inputs: Mapping[str, str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Returns the generated text or raises ProviderFailure."""


class LlmCompletionProvider(CompletionProvider, BaseUtils):
    """
    Renders templates from the in-process registry and sends them to an
    LlmClient-like object (anything with `invoke(prompt) -> str`).
    """

    def __init__(self, llm, templates: Mapping[str, PromptTemplate] = PROMPT_TEMPLATES):
        if llm is None:
            raise InvalidArgument("An LLM client is required.")
        self.llm = llm
        self.templates = templates

    def render(self, template_name: str, inputs: Mapping[str, str]) -> str:
        template = self.templates.get(template_name)
        if template is None:
            raise InvalidArgument(f"Unknown prompt template: {template_name}")
        return self.unsafe_string_format(template.text, **dict(inputs))

    def invoke(
        self,
        template_name: str,
        inputs: Mapping[str, str],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        prompt = self.render(template_name, inputs)
        raise_if_cancelled(cancel)

        logger.debug(f"invoke: template={template_name} prompt_chars={len(prompt)}")
        try:
            result = self.llm.invoke(prompt)
        except ProviderFailure:
            raise
        except Exception as e:
            raise ProviderFailure(f"{template_name}: {e}") from e

        # A request cancelled while the call was in flight never sees its result.
        raise_if_cancelled(cancel)
        return "" if result is None else str(result)
