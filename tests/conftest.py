"""
PyTest fixtures for the rule pipeline tests.

Provides a scripted completion provider so every stage and the orchestrator
can be driven without a model backend.
"""

import json
import threading
from typing import Any, Dict, List, Mapping, Optional

import pytest

from rulebuilder.completion_provider import CancellationToken, CompletionProvider, raise_if_cancelled


GOOD_RULE = {
    "action": "contact",
    "target": "casual_pool",
    "conditions": [
        {"field": "hours_worked", "operator": "greater_than", "value": "12"},
    ],
    "timeRange": None,
    "priority": 1,
    "logic": "AND",
}


class FakeProvider(CompletionProvider):
    """
    Scripted provider.

    responses maps a template name to:
      - a string: returned on every call
      - a list: consumed one item per call
      - a callable(inputs) -> str
      - an Exception instance: raised
    RepairFunction echoes its input unless scripted otherwise.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, echo_repair: bool = True):
        self.responses = {
            k: (list(v) if isinstance(v, list) else v) for k, v in (responses or {}).items()
        }
        self.echo_repair = echo_repair
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def invoke(self, template_name: str, inputs: Mapping[str, str], cancel: Optional[CancellationToken] = None) -> str:
        raise_if_cancelled(cancel)
        with self._lock:
            self.calls.append((template_name, dict(inputs)))
            scripted = self.responses.get(template_name)
            if isinstance(scripted, list):
                item = scripted.pop(0) if scripted else None
            else:
                item = scripted

        if item is None:
            if template_name == "RepairFunction" and self.echo_repair:
                return inputs["input"]
            raise AssertionError(f"No scripted response for {template_name}")
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(inputs)
        return item

    def calls_for(self, template_name: str) -> List[Dict[str, str]]:
        return [inputs for name, inputs in self.calls if name == template_name]

    @property
    def template_names(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def good_rule_json():
    return json.dumps(GOOD_RULE)
