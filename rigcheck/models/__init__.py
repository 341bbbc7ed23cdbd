"""Pydantic models for parts, selections, rules, and issues."""

from rigcheck.models.parts import (
    PART_FIELDS,
    Part,
    PartCategory,
    Selection,
    category_slug,
)
from rigcheck.models.rules import (
    RULE_CONFIG_ADAPTER,
    RULE_TYPES,
    ArrayContainsConfig,
    ArrayContainsFormattedConfig,
    CompatibilityRule,
    FieldLteConfig,
    FieldMatchConfig,
    ForbiddenPair,
    Issue,
    PairMismatchConfig,
    RuleConfig,
    RuleCreate,
    RuleUpdate,
    Severity,
    SumField,
    SumGteConfig,
)

__all__ = [
    # Parts
    "PART_FIELDS",
    "Part",
    "PartCategory",
    "Selection",
    "category_slug",
    # Rules & configs
    "RULE_CONFIG_ADAPTER",
    "RULE_TYPES",
    "ArrayContainsConfig",
    "ArrayContainsFormattedConfig",
    "CompatibilityRule",
    "FieldLteConfig",
    "FieldMatchConfig",
    "ForbiddenPair",
    "PairMismatchConfig",
    "RuleConfig",
    "RuleCreate",
    "RuleUpdate",
    "Severity",
    "SumField",
    "SumGteConfig",
    # Output
    "Issue",
]
