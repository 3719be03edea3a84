# rulebuilder/entities.py

import json
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = ""
    operator: str = ""
    value: str = ""

    def is_complete(self) -> bool:
        return bool(self.field.strip() and self.operator.strip() and self.value.strip())


class Rule(BaseModel):
    """
    Canonical output of the extraction pipeline.

    Rules are plain values: two rules with the same content are the same rule.
    Serialisation always uses camelCase keys (`timeRange`).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: str = ""
    target: str = ""
    conditions: List[Condition] = Field(default_factory=list)
    time_range: Optional[str] = Field(default=None, alias="timeRange")
    priority: int = 1
    logic: Literal["AND", "OR"] = "AND"

    def has_usable_conditions(self) -> bool:
        return any(c.is_complete() for c in self.conditions)

    def is_complete(self) -> bool:
        return bool(self.action.strip() and self.target.strip() and self.has_usable_conditions())

    def has_empty_core_fields(self) -> bool:
        """True only when action, target and usable conditions are all missing."""
        return not (self.action.strip() or self.target.strip() or self.has_usable_conditions())

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    issues: List[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)
