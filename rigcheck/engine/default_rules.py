"""Stock compatibility rules shipped with a fresh marketplace.

Each rule is plain data evaluated by `rigcheck.engine.compatibility`.
Admins can edit, disable, or delete any of them after seeding.
"""

from __future__ import annotations

from typing import Any, Dict, List

from rigcheck.models.rules import CompatibilityRule, Severity

# ──────────────────────────────────────────────
# Rule Definitions
# ──────────────────────────────────────────────

_DEFAULT_RULE_DATA: List[Dict[str, Any]] = [
    {
        "rule_number": 1,
        "name": "CPU socket matches motherboard",
        "severity": Severity.ERROR,
        "message_template": "CPU socket ({a}) does not match motherboard socket ({b})",
        "rule_config": {
            "type": "field_match",
            "part_a": "cpu", "field_a": "socket",
            "part_b": "motherboard", "field_b": "socket",
        },
    },
    {
        "rule_number": 2,
        "name": "RAM type matches motherboard",
        "severity": Severity.ERROR,
        "message_template": "RAM type ({a}) does not match motherboard RAM type ({b})",
        "rule_config": {
            "type": "field_match",
            "part_a": "ram", "field_a": "type",
            "part_b": "motherboard", "field_b": "ram_type",
        },
    },
    {
        "rule_number": 3,
        "name": "GPU fits in case",
        "severity": Severity.ERROR,
        "message_template": "GPU length ({a}mm) exceeds case clearance ({b}mm)",
        "rule_config": {
            "type": "field_lte",
            "part_a": "gpu", "field_a": "length_mm",
            "part_b": "case", "field_b": "max_gpu_length_mm",
        },
    },
    {
        "rule_number": 4,
        "name": "Case supports motherboard form factor",
        "severity": Severity.ERROR,
        "message_template": "Motherboard form factor ({a}) is not supported by case (supports: {b})",
        "rule_config": {
            "type": "array_contains",
            "part_a": "motherboard", "field_a": "form_factor",
            "part_b": "case", "field_b": "supported_motherboards",
        },
    },
    {
        "rule_number": 5,
        "name": "Cooler supports CPU socket",
        "severity": Severity.ERROR,
        "message_template": "CPU socket ({a}) is not supported by cooler (supports: {b})",
        "rule_config": {
            "type": "array_contains",
            "part_a": "cpu", "field_a": "socket",
            "part_b": "cooling", "field_b": "socket_compatibility",
        },
    },
    {
        "rule_number": 6,
        "name": "Cooler handles CPU TDP",
        "severity": Severity.WARNING,
        "message_template": "CPU TDP ({a}W) exceeds cooler rating ({b}W)",
        "rule_config": {
            "type": "field_lte",
            "part_a": "cpu", "field_a": "tdp_watts",
            "part_b": "cooling", "field_b": "tdp_rating_watts",
        },
    },
    {
        "rule_number": 7,
        "name": "RAM modules fit motherboard slots",
        "severity": Severity.ERROR,
        "message_template": "RAM modules ({a}) exceed motherboard RAM slots ({b})",
        "rule_config": {
            "type": "field_lte",
            "part_a": "ram", "field_a": "modules",
            "part_b": "motherboard", "field_b": "ram_slots",
        },
    },
    {
        "rule_number": 8,
        "name": "RAM capacity within motherboard maximum",
        "severity": Severity.ERROR,
        "message_template": "Total RAM ({a}GB) exceeds motherboard maximum ({b}GB)",
        "rule_config": {
            "type": "field_lte",
            "part_a": "ram", "field_a": "total_capacity_gb",
            "part_b": "motherboard", "field_b": "max_ram_gb",
        },
    },
    {
        "rule_number": 9,
        "name": "PSU meets GPU recommendation",
        "severity": Severity.ERROR,
        "message_template": "GPU recommends a {a}W PSU but the PSU provides {b}W",
        "rule_config": {
            "type": "field_lte",
            "part_a": "gpu", "field_a": "recommended_psu_watts",
            "part_b": "psu", "field_b": "wattage",
        },
    },
    {
        "rule_number": 10,
        "name": "PSU headroom over GPU draw",
        "severity": Severity.WARNING,
        "message_template": "PSU wattage ({a}W) leaves little headroom; {b}W or more is advised",
        "rule_config": {
            "type": "sum_gte",
            "target_part": "gpu", "target_field": "tdp_watts",
            "multiplier": 1.5,
            "sum_fields": [{"part": "psu", "field": "wattage"}],
        },
    },
    {
        "rule_number": 11,
        "name": "Case mounts cooler radiator",
        "severity": Severity.ERROR,
        "message_template": "Cooler radiator ({a}) is not supported by case (supports: {b})",
        "rule_config": {
            "type": "array_contains_formatted",
            "part_a": "cooling", "field_a": "radiator_size_mm",
            "part_b": "case", "field_b": "radiator_support",
            "format": "{value}mm",
        },
    },
    {
        "rule_number": 12,
        "name": "PSU form factor suits case",
        "severity": Severity.WARNING,
        "message_template": "{a} PSU may not fit a {b} case",
        "rule_config": {
            "type": "pair_mismatch",
            "part_a": "psu", "field_a": "form_factor",
            "part_b": "case", "field_b": "form_factor",
            "pairs": [
                {"a": "ATX", "b": "Mini-ITX", "msg": "ATX PSU may not fit a Mini-ITX case; an SFX unit is recommended"},
                {"a": "ATX", "b": "SFF", "msg": ""},
            ],
        },
    },
]


def default_rules() -> List[CompatibilityRule]:
    """Fresh copies of the stock rules (ids assigned by the store)."""
    return [CompatibilityRule.model_validate(data) for data in _DEFAULT_RULE_DATA]
