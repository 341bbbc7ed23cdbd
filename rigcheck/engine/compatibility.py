"""Data-driven compatibility rule evaluation for PC builds.

`evaluate()` takes the parts a user has selected (keyed by category slug)
and the admin-authored rule set, and returns the issues the build has.
It is pure: no I/O, no shared state, inputs are never mutated.

Rules only fire when every part they reference is present. Builds are
assembled incrementally, so a missing part is never a failure.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
    get_args,
)

from pydantic import BaseModel, ValidationError

from rigcheck.models.parts import Part
from rigcheck.models.rules import (
    RULE_CONFIG_ADAPTER,
    ArrayContainsConfig,
    ArrayContainsFormattedConfig,
    CompatibilityRule,
    FieldLteConfig,
    FieldMatchConfig,
    Issue,
    PairMismatchConfig,
    RuleConfig,
    Severity,
    SumGteConfig,
)

logger = logging.getLogger(__name__)

SpecsByPart = Dict[str, Mapping[str, Any]]


# ──────────────────────────────────────────────
# Exceptions
# ──────────────────────────────────────────────


class CompatibilityError(Exception):
    """Base exception for compatibility evaluation errors."""


class SelectionError(CompatibilityError, TypeError):
    """Raised when the selection is not a mapping of slug → part."""


class RuleConfigError(CompatibilityError):
    """Raised when a rule's config is unknown or incomplete."""


# ──────────────────────────────────────────────
# Result Types
# ──────────────────────────────────────────────


@dataclass
class Violation:
    """Values a fired rule reports through its `{a}` / `{b}` slots.

    `message_template` replaces the rule's own template when set.
    """

    a: Any
    b: Any
    message_template: Optional[str] = None


# ──────────────────────────────────────────────
# Selection & Field Resolution
# ──────────────────────────────────────────────


def _specs_of(slug: str, value: Any) -> Mapping[str, Any]:
    if isinstance(value, Part):
        return value.specifications
    if isinstance(value, Mapping) and "specifications" in value:
        specs = value["specifications"]
        if specs is None:
            return {}
        if isinstance(specs, Mapping):
            return specs
    raise SelectionError(
        f"Selection entry '{slug}' must be a Part or a mapping with a "
        f"'specifications' mapping, got {type(value).__name__}"
    )


def normalize_selection(selection: Any) -> SpecsByPart:
    """Reduce a selection to slug → specifications, dropping unset slots.

    Raises SelectionError for anything that is not a slug → part mapping.
    Part ids must be resolved by the caller before evaluation.
    """
    if not isinstance(selection, Mapping):
        raise SelectionError(
            f"Selection must be a mapping of category slug to part, "
            f"got {type(selection).__name__}"
        )

    specs_by_part: SpecsByPart = {}
    for slug, value in selection.items():
        if not isinstance(slug, str):
            raise SelectionError(f"Selection keys must be slugs, got {slug!r}")
        if value is None:
            continue
        specs_by_part[slug] = _specs_of(slug, value)
    return specs_by_part


def _get_field(specs_by_part: SpecsByPart, part: str, field: str) -> Any:
    """Value of part.field, or None when the part has no such field."""
    return specs_by_part[part].get(field)


def _to_number(value: Any) -> Optional[float]:
    """Coerce to float; None for missing, boolean, or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _plain_text(value: Any) -> str:
    """Unrounded text of a scalar: 240.0 → "240", 5.004 → "5.004"."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _match_key(value: Any) -> Any:
    """Equality key for membership and pair checks.

    Numbers and strings compare by their unrounded text, so 240, 240.0 and
    "240" are equal while 5.004 and "5" are not. Booleans only equal
    booleans.
    """
    if isinstance(value, bool):
        return (bool, value)
    if isinstance(value, (int, float, str)):
        return _plain_text(value)
    return value


def _as_collection(value: Any) -> List[Any]:
    """Array side of a membership check. Missing is empty; a scalar is one item."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


# ──────────────────────────────────────────────
# Message Rendering
# ──────────────────────────────────────────────

_SLOT_PATTERN = re.compile(r"\{([ab])\}")


def format_value(value: Any) -> str:
    """Render a spec value for a user-facing message.

    Whole floats drop the ".0" (600.0 → "600"), other floats keep at most
    two decimals, booleans are lowercase, lists are comma-joined.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if not math.isfinite(value):
            return str(value)
        if value.is_integer():
            return str(int(value))
        return f"{round(value, 2):.2f}".rstrip("0").rstrip(".")
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(format_value(v) for v in value)
    return str(value)


def render_message(template: str, a: Any, b: Any) -> str:
    """Substitute the `{a}` and `{b}` slots in a single pass."""
    slots = {"a": format_value(a), "b": format_value(b)}
    return _SLOT_PATTERN.sub(lambda m: slots[m.group(1)], template)


# ──────────────────────────────────────────────
# Individual Rule Checkers
# ──────────────────────────────────────────────


def check_field_match(
    config: FieldMatchConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """FIELD MATCH: part_a.field_a == part_b.field_b"""
    value_a = _get_field(specs_by_part, config.part_a, config.field_a)
    value_b = _get_field(specs_by_part, config.part_b, config.field_b)

    if value_a is None or value_b is None:
        return None  # Can't compare if data is missing

    if value_a != value_b:
        return Violation(a=value_a, b=value_b)
    return None


def check_field_lte(
    config: FieldLteConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """FIELD ≤: part_a.field_a <= part_b.field_b (numeric)"""
    value_a = _get_field(specs_by_part, config.part_a, config.field_a)
    value_b = _get_field(specs_by_part, config.part_b, config.field_b)
    number_a = _to_number(value_a)
    number_b = _to_number(value_b)

    if number_a is None or number_b is None:
        return None

    if number_a > number_b:
        return Violation(a=value_a, b=value_b)
    return None


def _missing_from(needle: Any, haystack: List[Any]) -> bool:
    wanted = _match_key(needle)
    return all(_match_key(item) != wanted for item in haystack)


def check_array_contains(
    config: ArrayContainsConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """ARRAY CONTAINS: part_a.field_a IN part_b.field_b"""
    value_a = _get_field(specs_by_part, config.part_a, config.field_a)
    if value_a is None:
        return None

    # Both parts are present, so a missing list is an empty one
    supported = _as_collection(
        _get_field(specs_by_part, config.part_b, config.field_b)
    )

    if _missing_from(value_a, supported):
        return Violation(a=value_a, b=supported)
    return None


def check_array_contains_formatted(
    config: ArrayContainsFormattedConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """ARRAY CONTAINS (FORMATTED): format(part_a.field_a) IN part_b.field_b"""
    value_a = _get_field(specs_by_part, config.part_a, config.field_a)
    if value_a is None:
        return None

    formatted = config.format.replace("{value}", _plain_text(value_a))
    supported = _as_collection(
        _get_field(specs_by_part, config.part_b, config.field_b)
    )

    if _missing_from(formatted, supported):
        return Violation(a=formatted, b=supported)
    return None


def check_sum_gte(
    config: SumGteConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """SUM ≥: sum(sum_fields) >= target_part.target_field × multiplier"""
    target_value = _to_number(
        _get_field(specs_by_part, config.target_part, config.target_field)
    )
    if target_value is None:
        return None

    total = 0.0
    for item in config.sum_fields:
        number = _to_number(_get_field(specs_by_part, item.part, item.field))
        if number is None:
            return None
        total += number

    # 700 × 1.1 is 770.0000000000001; a sum of 770 still reaches it
    target = target_value * config.multiplier
    if total < target and not math.isclose(total, target):
        return Violation(a=total, b=target)
    return None


def check_pair_mismatch(
    config: PairMismatchConfig, specs_by_part: SpecsByPart
) -> Optional[Violation]:
    """PAIR MISMATCH: (part_a.field_a, part_b.field_b) NOT IN pairs"""
    value_a = _get_field(specs_by_part, config.part_a, config.field_a)
    value_b = _get_field(specs_by_part, config.part_b, config.field_b)

    if value_a is None or value_b is None:
        return None

    key_a = _match_key(value_a)
    key_b = _match_key(value_b)
    for pair in config.pairs:
        if _match_key(pair.a) == key_a and _match_key(pair.b) == key_b:
            return Violation(a=value_a, b=value_b, message_template=pair.msg or None)
    return None


# ──────────────────────────────────────────────
# Rule Type Dispatch
# ──────────────────────────────────────────────

Checker = Callable[[Any, SpecsByPart], Optional[Violation]]

_CHECKERS: Dict[type, Checker] = {
    FieldMatchConfig: check_field_match,
    FieldLteConfig: check_field_lte,
    ArrayContainsConfig: check_array_contains,
    ArrayContainsFormattedConfig: check_array_contains_formatted,
    SumGteConfig: check_sum_gte,
    PairMismatchConfig: check_pair_mismatch,
}

_CONFIG_TYPES = get_args(get_args(RuleConfig)[0])
_unhandled = [t.__name__ for t in _CONFIG_TYPES if t not in _CHECKERS]
if _unhandled:
    raise RuntimeError(f"No checker registered for rule configs: {_unhandled}")


def parse_rule_config(raw: Union[Mapping[str, Any], BaseModel]) -> Any:
    """Validate a stored rule config into its typed variant.

    Raises RuleConfigError for unknown types or missing/invalid keys.
    """
    if isinstance(raw, _CONFIG_TYPES):
        return raw
    if not isinstance(raw, Mapping):
        raise RuleConfigError(
            f"rule_config must be a mapping, got {type(raw).__name__}"
        )
    try:
        return RULE_CONFIG_ADAPTER.validate_python(dict(raw))
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'type'}: {err['msg']}"
            for err in e.errors()
        )
        raise RuleConfigError(
            f"invalid {raw.get('type', '<missing type>')!r} config ({details})"
        ) from e


def _coerce_rules(
    rules: Iterable[Union[CompatibilityRule, Mapping[str, Any]]],
) -> List[CompatibilityRule]:
    coerced: List[CompatibilityRule] = []
    for rule in rules:
        if isinstance(rule, CompatibilityRule):
            coerced.append(rule)
            continue
        try:
            coerced.append(CompatibilityRule.model_validate(rule))
        except ValidationError as e:
            logger.warning(
                "Skipping unreadable rule: %d validation errors", e.error_count()
            )
    return coerced


# ──────────────────────────────────────────────
# Main Evaluation
# ──────────────────────────────────────────────


def evaluate(
    selection: Any,
    rules: Iterable[Union[CompatibilityRule, Mapping[str, Any]]],
) -> List[Issue]:
    """Run every active rule against a selection and collect the issues.

    Rules are applied in ascending `rule_number` so the issue list is
    deterministic. Inactive rules, rules referencing absent parts, and
    malformed rules (logged) contribute nothing. Raises SelectionError when
    `selection` is not a slug → part mapping.
    """
    specs_by_part = normalize_selection(selection)
    if len(specs_by_part) < 2:
        return []

    active = sorted(
        (r for r in _coerce_rules(rules) if r.is_active),
        key=lambda r: r.rule_number,
    )

    issues: List[Issue] = []
    for rule in active:
        try:
            config = parse_rule_config(rule.rule_config)
        except RuleConfigError as e:
            logger.warning(
                "Skipping malformed rule #%d (%s): %s",
                rule.rule_number, rule.name, e,
            )
            continue

        if any(part not in specs_by_part for part in config.parts):
            continue

        violation = _CHECKERS[type(config)](config, specs_by_part)
        if violation is None:
            continue

        template = violation.message_template or rule.message_template
        issues.append(
            Issue(
                severity=rule.severity,
                message=render_message(template, violation.a, violation.b),
            )
        )

    return issues


def has_blocking_issues(issues: Iterable[Issue]) -> bool:
    """True when any issue is error-severity (the build cannot be published)."""
    return any(issue.severity == Severity.ERROR for issue in issues)
