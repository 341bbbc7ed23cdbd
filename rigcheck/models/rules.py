"""Compatibility rule, rule config, and issue models.

A rule's `rule_config` is a tagged union on `type`. Stored rules keep the
raw mapping so a malformed config can be skipped at evaluation time;
authoring payloads (RuleCreate / RuleUpdate) validate it strictly.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class Severity(str, Enum):
    """How the surrounding app treats an issue."""

    ERROR = "error"
    """Blocks publishing the build."""

    WARNING = "warning"
    """Advisory only."""


# ──────────────────────────────────────────────
# Rule Config Variants
# ──────────────────────────────────────────────


class _PairedFieldsConfig(BaseModel):
    """Shared shape: one field on part A compared against one on part B."""

    part_a: str = Field(min_length=1)
    field_a: str = Field(min_length=1)
    part_b: str = Field(min_length=1)
    field_b: str = Field(min_length=1)

    @property
    def parts(self) -> List[str]:
        return [self.part_a, self.part_b]


class FieldMatchConfig(_PairedFieldsConfig):
    """part_a.field_a must equal part_b.field_b."""

    type: Literal["field_match"] = "field_match"


class FieldLteConfig(_PairedFieldsConfig):
    """part_a.field_a must be <= part_b.field_b (numeric)."""

    type: Literal["field_lte"] = "field_lte"


class ArrayContainsConfig(_PairedFieldsConfig):
    """part_b.field_b (a list) must contain part_a.field_a."""

    type: Literal["array_contains"] = "array_contains"


class ArrayContainsFormattedConfig(_PairedFieldsConfig):
    """Like array_contains, but part_a's value is formatted first.

    `format` uses a `{value}` placeholder, e.g. "{value}mm".
    """

    type: Literal["array_contains_formatted"] = "array_contains_formatted"
    format: str

    @field_validator("format")
    @classmethod
    def _require_value_placeholder(cls, v: str) -> str:
        if "{value}" not in v:
            raise ValueError("format must contain a {value} placeholder")
        return v


class SumField(BaseModel):
    part: str = Field(min_length=1)
    field: str = Field(min_length=1)


class SumGteConfig(BaseModel):
    """Sum of sum_fields must reach target_part.target_field × multiplier."""

    type: Literal["sum_gte"] = "sum_gte"
    target_part: str = Field(min_length=1)
    target_field: str = Field(min_length=1)
    multiplier: float = 1.0
    sum_fields: List[SumField] = Field(min_length=1)

    @property
    def parts(self) -> List[str]:
        return [self.target_part] + [f.part for f in self.sum_fields]


class ForbiddenPair(BaseModel):
    """A (part_a value, part_b value) combination that is not allowed.

    When `msg` is non-empty it replaces the rule's message template.
    """

    a: Union[bool, int, float, str]
    b: Union[bool, int, float, str]
    msg: str = ""


class PairMismatchConfig(_PairedFieldsConfig):
    """Flags builds whose two values match one of the forbidden pairs."""

    type: Literal["pair_mismatch"] = "pair_mismatch"
    pairs: List[ForbiddenPair] = Field(default_factory=list)


RuleConfig = Annotated[
    Union[
        FieldMatchConfig,
        FieldLteConfig,
        ArrayContainsConfig,
        ArrayContainsFormattedConfig,
        SumGteConfig,
        PairMismatchConfig,
    ],
    Field(discriminator="type"),
]

RULE_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(RuleConfig)

RULE_TYPES: List[str] = [
    "field_match",
    "field_lte",
    "array_contains",
    "array_contains_formatted",
    "sum_gte",
    "pair_mismatch",
]


# ──────────────────────────────────────────────
# Rules
# ──────────────────────────────────────────────


class CompatibilityRule(BaseModel):
    """A persisted compatibility rule.

    `rule_number` only orders rules for humans and for deterministic
    evaluation; `id` is the storage key.
    """

    id: str = ""
    rule_number: int = Field(ge=1)
    name: str
    description: str = ""
    severity: Severity = Severity.ERROR
    message_template: str = ""
    is_active: bool = True
    rule_config: Dict[str, Any] = Field(default_factory=dict)


class RuleCreate(BaseModel):
    """Payload for authoring a new rule. The config is validated strictly."""

    rule_number: int = Field(ge=1)
    name: str = Field(min_length=1)
    description: str = ""
    severity: Severity = Severity.ERROR
    message_template: str = Field(min_length=1)
    is_active: bool = True
    rule_config: RuleConfig

    def to_rule(self, rule_id: str) -> CompatibilityRule:
        data = self.model_dump(mode="json")
        return CompatibilityRule(id=rule_id, **data)


class RuleUpdate(BaseModel):
    """Partial update: only fields that are set get applied."""

    rule_number: Optional[int] = Field(default=None, ge=1)
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    severity: Optional[Severity] = None
    message_template: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None
    rule_config: Optional[RuleConfig] = None

    def apply(self, rule: CompatibilityRule) -> CompatibilityRule:
        changes = self.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        return CompatibilityRule.model_validate(
            {**rule.model_dump(mode="json"), **changes}
        )


# ──────────────────────────────────────────────
# Issues
# ──────────────────────────────────────────────


class Issue(BaseModel):
    """One compatibility problem found in a selection."""

    severity: Severity
    message: str
