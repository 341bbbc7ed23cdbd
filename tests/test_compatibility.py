"""Tests for data-driven compatibility rule evaluation."""

import logging

import pytest

from rigcheck.engine.compatibility import (
    RuleConfigError,
    SelectionError,
    evaluate,
    format_value,
    has_blocking_issues,
    normalize_selection,
    parse_rule_config,
    render_message,
)
from rigcheck.engine.default_rules import default_rules
from rigcheck.models.parts import Part, category_slug
from rigcheck.models.rules import (
    CompatibilityRule,
    FieldLteConfig,
    Issue,
    Severity,
)


# ──────────────────────────────────────────────
# Test Fixtures — Helper builders
# ──────────────────────────────────────────────


def _make(category: str, specs: dict | None = None, **kw) -> Part:
    """Quick Part factory."""
    return Part(
        id=kw.get("id", f"{category}-1"),
        category=category,
        name=kw.get("name", f"Test {category}"),
        price=kw.get("price", 100.0),
        specifications=specs or {},
    )


def _rule(
    number: int,
    config: dict,
    template: str = "{a} vs {b}",
    severity: Severity = Severity.ERROR,
    active: bool = True,
) -> CompatibilityRule:
    return CompatibilityRule(
        id=f"rule-{number}",
        rule_number=number,
        name=f"Rule {number}",
        severity=severity,
        message_template=template,
        is_active=active,
        rule_config=config,
    )


SOCKET_MATCH = {
    "type": "field_match",
    "part_a": "cpu", "field_a": "socket",
    "part_b": "motherboard", "field_b": "socket",
}

GPU_CLEARANCE = {
    "type": "field_lte",
    "part_a": "gpu", "field_a": "length_mm",
    "part_b": "case", "field_b": "max_gpu_length_mm",
}

FORM_FACTOR_SUPPORT = {
    "type": "array_contains",
    "part_a": "motherboard", "field_a": "form_factor",
    "part_b": "case", "field_b": "supported_motherboards",
}

PSU_BUDGET = {
    "type": "sum_gte",
    "target_part": "psu", "target_field": "wattage",
    "multiplier": 1.2,
    "sum_fields": [
        {"part": "cpu", "field": "tdp_watts"},
        {"part": "gpu", "field": "tdp_watts"},
    ],
}

RADIATOR_SUPPORT = {
    "type": "array_contains_formatted",
    "part_a": "cooling", "field_a": "radiator_size_mm",
    "part_b": "case", "field_b": "radiator_support",
    "format": "{value}mm",
}

PSU_CASE_PAIRS = {
    "type": "pair_mismatch",
    "part_a": "psu", "field_a": "form_factor",
    "part_b": "case", "field_b": "form_factor",
    "pairs": [
        {"a": "ATX", "b": "Mini-ITX", "msg": "ATX PSU ({a}) won't fit a {b} case"},
        {"a": "ATX", "b": "SFF"},
    ],
}


# ──────────────────────────────────────────────
# field_match
# ──────────────────────────────────────────────


class TestFieldMatch:
    def test_matching_socket_passes(self):
        selection = {
            "cpu": _make("cpu", {"socket": "AM5"}),
            "motherboard": _make("motherboard", {"socket": "AM5"}),
        }
        assert evaluate(selection, [_rule(1, SOCKET_MATCH)]) == []

    def test_mismatched_socket_fails(self):
        selection = {
            "cpu": _make("cpu", {"socket": "AM5"}),
            "motherboard": _make("motherboard", {"socket": "LGA1700"}),
        }
        rule = _rule(
            1, SOCKET_MATCH,
            template="CPU socket ({a}) does not match motherboard socket ({b})",
            severity=Severity.WARNING,
        )
        issues = evaluate(selection, [rule])
        assert issues == [
            Issue(
                severity=Severity.WARNING,
                message="CPU socket (AM5) does not match motherboard socket (LGA1700)",
            )
        ]

    def test_missing_field_skipped(self):
        selection = {
            "cpu": _make("cpu", {}),
            "motherboard": _make("motherboard", {"socket": "AM5"}),
        }
        assert evaluate(selection, [_rule(1, SOCKET_MATCH)]) == []

    def test_missing_part_skipped(self):
        selection = {
            "cpu": _make("cpu", {"socket": "AM5"}),
            "gpu": _make("gpu", {"length_mm": 300}),
        }
        assert evaluate(selection, [_rule(1, SOCKET_MATCH)]) == []


# ──────────────────────────────────────────────
# field_lte
# ──────────────────────────────────────────────


class TestFieldLte:
    def test_gpu_too_long_fails(self):
        selection = {
            "gpu": _make("gpu", {"length_mm": 340}),
            "case": _make("case", {"max_gpu_length_mm": 320}),
        }
        issues = evaluate(selection, [_rule(1, GPU_CLEARANCE, "{a}mm > {b}mm")])
        assert len(issues) == 1
        assert issues[0].message == "340mm > 320mm"

    def test_gpu_fits_passes(self):
        selection = {
            "gpu": _make("gpu", {"length_mm": 340}),
            "case": _make("case", {"max_gpu_length_mm": 360}),
        }
        assert evaluate(selection, [_rule(1, GPU_CLEARANCE)]) == []

    def test_equal_values_pass(self):
        selection = {
            "gpu": _make("gpu", {"length_mm": 320}),
            "case": _make("case", {"max_gpu_length_mm": 320.0}),
        }
        assert evaluate(selection, [_rule(1, GPU_CLEARANCE)]) == []

    def test_numeric_strings_are_coerced(self):
        selection = {
            "gpu": _make("gpu", {"length_mm": "340"}),
            "case": _make("case", {"max_gpu_length_mm": "320"}),
        }
        assert len(evaluate(selection, [_rule(1, GPU_CLEARANCE)])) == 1

    @pytest.mark.parametrize("bad", ["long", None, True, ["340"]])
    def test_non_numeric_skipped(self, bad):
        selection = {
            "gpu": _make("gpu", {"length_mm": bad}),
            "case": _make("case", {"max_gpu_length_mm": 100}),
        }
        assert evaluate(selection, [_rule(1, GPU_CLEARANCE)]) == []


# ──────────────────────────────────────────────
# array_contains / array_contains_formatted
# ──────────────────────────────────────────────


class TestArrayContains:
    def test_unsupported_form_factor_fails(self):
        selection = {
            "motherboard": _make("motherboard", {"form_factor": "ITX"}),
            "case": _make("case", {"supported_motherboards": ["ATX", "mATX"]}),
        }
        issues = evaluate(
            selection,
            [_rule(1, FORM_FACTOR_SUPPORT, "{a} not in ({b})")],
        )
        assert [i.message for i in issues] == ["ITX not in (ATX, mATX)"]

    def test_supported_form_factor_passes(self):
        selection = {
            "motherboard": _make("motherboard", {"form_factor": "mATX"}),
            "case": _make("case", {"supported_motherboards": ["ATX", "mATX"]}),
        }
        assert evaluate(selection, [_rule(1, FORM_FACTOR_SUPPORT)]) == []

    def test_missing_array_is_empty(self):
        selection = {
            "motherboard": _make("motherboard", {"form_factor": "ATX"}),
            "case": _make("case", {}),
        }
        issues = evaluate(selection, [_rule(1, FORM_FACTOR_SUPPORT, "{a}|{b}")])
        assert [i.message for i in issues] == ["ATX|"]

    def test_missing_scalar_skipped(self):
        selection = {
            "motherboard": _make("motherboard", {}),
            "case": _make("case", {"supported_motherboards": ["ATX"]}),
        }
        assert evaluate(selection, [_rule(1, FORM_FACTOR_SUPPORT)]) == []

    def test_formatted_value_found(self):
        selection = {
            "cooling": _make("cooling", {"radiator_size_mm": 240}),
            "case": _make("case", {"radiator_support": ["240mm", "360mm"]}),
        }
        assert evaluate(selection, [_rule(1, RADIATOR_SUPPORT)]) == []

    def test_formatted_value_missing_fails(self):
        selection = {
            "cooling": _make("cooling", {"radiator_size_mm": 420}),
            "case": _make("case", {"radiator_support": ["240mm", "360mm"]}),
        }
        issues = evaluate(selection, [_rule(1, RADIATOR_SUPPORT, "{a} / {b}")])
        assert [i.message for i in issues] == ["420mm / 240mm, 360mm"]

    def test_close_float_is_not_a_member(self):
        config = {
            "type": "array_contains",
            "part_a": "cpu", "field_a": "boost_clock_ghz",
            "part_b": "motherboard", "field_b": "supported_clocks",
        }
        selection = {
            "cpu": _make("cpu", {"boost_clock_ghz": 5.004}),
            "motherboard": _make("motherboard", {"supported_clocks": ["5"]}),
        }
        assert len(evaluate(selection, [_rule(1, config)])) == 1

    def test_whole_float_matches_numeric_string(self):
        selection = {
            "motherboard": _make("motherboard", {"form_factor": 240.0}),
            "case": _make("case", {"supported_motherboards": ["240"]}),
        }
        assert evaluate(selection, [_rule(1, FORM_FACTOR_SUPPORT)]) == []

    def test_formatted_value_keeps_full_precision(self):
        selection = {
            "cooling": _make("cooling", {"radiator_size_mm": 240.5}),
            "case": _make("case", {"radiator_support": ["240.5mm"]}),
        }
        assert evaluate(selection, [_rule(1, RADIATOR_SUPPORT)]) == []


# ──────────────────────────────────────────────
# sum_gte
# ──────────────────────────────────────────────


class TestSumGte:
    def test_sum_below_target_fails(self):
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 125}),
            "gpu": _make("gpu", {"tdp_watts": 320}),
            "psu": _make("psu", {"wattage": 500}),
        }
        issues = evaluate(selection, [_rule(1, PSU_BUDGET, "sum {a} < target {b}")])
        assert [i.message for i in issues] == ["sum 445 < target 600"]

    def test_sum_reaching_target_passes(self):
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 125}),
            "gpu": _make("gpu", {"tdp_watts": 320}),
            "psu": _make("psu", {"wattage": 300}),
        }
        assert evaluate(selection, [_rule(1, PSU_BUDGET)]) == []

    def test_missing_sum_part_skipped(self):
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 125}),
            "psu": _make("psu", {"wattage": 500}),
        }
        assert evaluate(selection, [_rule(1, PSU_BUDGET)]) == []

    def test_missing_sum_field_skipped(self):
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 125}),
            "gpu": _make("gpu", {}),
            "psu": _make("psu", {"wattage": 500}),
        }
        assert evaluate(selection, [_rule(1, PSU_BUDGET)]) == []

    def test_multiplier_defaults_to_one(self):
        config = {k: v for k, v in PSU_BUDGET.items() if k != "multiplier"}
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 100}),
            "gpu": _make("gpu", {"tdp_watts": 350}),
            "psu": _make("psu", {"wattage": 450}),
        }
        assert evaluate(selection, [_rule(1, config)]) == []

    def test_float_product_reached_exactly(self):
        config = {**PSU_BUDGET, "multiplier": 1.1}
        selection = {
            "cpu": _make("cpu", {"tdp_watts": 370}),
            "gpu": _make("gpu", {"tdp_watts": 400}),
            "psu": _make("psu", {"wattage": 700}),
        }
        assert evaluate(selection, [_rule(1, config)]) == []


# ──────────────────────────────────────────────
# pair_mismatch
# ──────────────────────────────────────────────


class TestPairMismatch:
    def test_pair_msg_overrides_template(self):
        selection = {
            "psu": _make("psu", {"form_factor": "ATX"}),
            "case": _make("case", {"form_factor": "Mini-ITX"}),
        }
        issues = evaluate(selection, [_rule(1, PSU_CASE_PAIRS, "template {a}/{b}")])
        assert [i.message for i in issues] == ["ATX PSU (ATX) won't fit a Mini-ITX case"]

    def test_pair_without_msg_uses_template(self):
        selection = {
            "psu": _make("psu", {"form_factor": "ATX"}),
            "case": _make("case", {"form_factor": "SFF"}),
        }
        issues = evaluate(selection, [_rule(1, PSU_CASE_PAIRS, "template {a}/{b}")])
        assert [i.message for i in issues] == ["template ATX/SFF"]

    def test_unlisted_pair_passes(self):
        selection = {
            "psu": _make("psu", {"form_factor": "SFX"}),
            "case": _make("case", {"form_factor": "Mini-ITX"}),
        }
        assert evaluate(selection, [_rule(1, PSU_CASE_PAIRS)]) == []

    def test_pair_matches_both_sides_only(self):
        selection = {
            "psu": _make("psu", {"form_factor": "ATX"}),
            "case": _make("case", {"form_factor": "Mid Tower"}),
        }
        assert evaluate(selection, [_rule(1, PSU_CASE_PAIRS)]) == []

    def test_pair_values_compared_unrounded(self):
        config = {**PSU_CASE_PAIRS, "pairs": [{"a": 1.23, "b": "B650"}]}
        selection = {
            "psu": _make("psu", {"form_factor": 1.234}),
            "case": _make("case", {"form_factor": "B650"}),
        }
        assert evaluate(selection, [_rule(1, config)]) == []

        selection["psu"] = _make("psu", {"form_factor": 1.23})
        issues = evaluate(selection, [_rule(1, config, "{a}|{b}")])
        assert [i.message for i in issues] == ["1.23|B650"]

    def test_bool_pair_does_not_match_string(self):
        config = {**PSU_CASE_PAIRS, "pairs": [{"a": True, "b": "SFF"}]}
        selection = {
            "psu": _make("psu", {"form_factor": "true"}),
            "case": _make("case", {"form_factor": "SFF"}),
        }
        assert evaluate(selection, [_rule(1, config)]) == []

        selection["psu"] = _make("psu", {"form_factor": True})
        assert len(evaluate(selection, [_rule(1, config)])) == 1


# ──────────────────────────────────────────────
# Evaluation-wide behaviour
# ──────────────────────────────────────────────


def _mismatched_selection():
    return {
        "cpu": _make("cpu", {"socket": "AM5", "tdp_watts": 125}),
        "motherboard": _make("motherboard", {"socket": "LGA1700", "form_factor": "ITX"}),
        "case": _make("case", {"supported_motherboards": ["ATX"], "max_gpu_length_mm": 300}),
        "gpu": _make("gpu", {"length_mm": 340}),
    }


class TestEvaluate:
    def test_fewer_than_two_parts_returns_empty(self):
        rules = [_rule(1, SOCKET_MATCH)]
        assert evaluate({}, rules) == []
        assert evaluate({"cpu": _make("cpu", {"socket": "AM5"})}, rules) == []

    def test_unset_slots_do_not_count(self):
        selection = {"cpu": _make("cpu", {"socket": "AM5"}), "motherboard": None}
        assert evaluate(selection, [_rule(1, SOCKET_MATCH)]) == []

    def test_inactive_rules_never_fire(self):
        rules = [
            _rule(1, SOCKET_MATCH, active=False),
            _rule(2, GPU_CLEARANCE, active=False),
        ]
        assert evaluate(_mismatched_selection(), rules) == []

    def test_issues_follow_rule_number_order(self):
        rules = [
            _rule(30, GPU_CLEARANCE, "gpu"),
            _rule(10, SOCKET_MATCH, "socket"),
            _rule(20, FORM_FACTOR_SUPPORT, "form factor"),
        ]
        messages = [i.message for i in evaluate(_mismatched_selection(), rules)]
        assert messages == ["socket", "form factor", "gpu"]

    def test_idempotent(self):
        rules = [_rule(2, GPU_CLEARANCE), _rule(1, SOCKET_MATCH)]
        selection = _mismatched_selection()
        assert evaluate(selection, rules) == evaluate(selection, rules)

    def test_inputs_not_mutated(self):
        rules = [_rule(1, SOCKET_MATCH), _rule(2, PSU_CASE_PAIRS)]
        selection = _mismatched_selection()
        rules_before = [r.model_dump() for r in rules]
        parts_before = {k: v.model_dump() for k, v in selection.items()}

        evaluate(selection, rules)

        assert [r.model_dump() for r in rules] == rules_before
        assert {k: v.model_dump() for k, v in selection.items()} == parts_before

    def test_malformed_rules_skipped_and_logged(self, caplog):
        broken_lte = {k: v for k, v in GPU_CLEARANCE.items() if k != "field_b"}
        rules = [
            _rule(1, {"type": "voltage_check", "part_a": "psu"}),
            _rule(2, broken_lte),
            _rule(3, SOCKET_MATCH, "socket {a}/{b}"),
            _rule(4, {}),
        ]
        with caplog.at_level(logging.WARNING, logger="rigcheck.engine.compatibility"):
            issues = evaluate(_mismatched_selection(), rules)

        assert [i.message for i in issues] == ["socket AM5/LGA1700"]
        skipped = [
            r for r in caplog.records if "Skipping malformed rule" in r.getMessage()
        ]
        assert len(skipped) == 3

    def test_rules_given_as_mappings(self):
        rules = [
            {
                "rule_number": 1, "name": "Socket", "severity": "warning",
                "message_template": "{a}≠{b}", "rule_config": SOCKET_MATCH,
            },
            {"name": "no number"},
        ]
        issues = evaluate(_mismatched_selection(), rules)
        assert issues == [Issue(severity=Severity.WARNING, message="AM5≠LGA1700")]

    def test_part_like_mappings_accepted(self):
        selection = {
            "cpu": {"id": "c1", "specifications": {"socket": "AM4"}},
            "motherboard": {"specifications": {"socket": "AM5"}},
        }
        assert len(evaluate(selection, [_rule(1, SOCKET_MATCH)])) == 1

    def test_non_mapping_selection_rejected(self):
        with pytest.raises(SelectionError):
            evaluate([_make("cpu")], [_rule(1, SOCKET_MATCH)])

    def test_unresolved_part_id_rejected(self):
        with pytest.raises(SelectionError, match="motherboard"):
            evaluate(
                {"cpu": _make("cpu"), "motherboard": "mobo-42"},
                [_rule(1, SOCKET_MATCH)],
            )

    def test_selection_error_is_type_error(self):
        with pytest.raises(TypeError):
            normalize_selection("cpu=AM5")

    @pytest.mark.parametrize("name, slug", [
        ("CPU", "cpu"),
        ("CPU Cooler", "cpu-cooler"),
        ("  Case  ", "case"),
        ("Power   Supply", "power-supply"),
    ])
    def test_category_slug(self, name, slug):
        assert category_slug(name) == slug

    def test_has_blocking_issues(self):
        warning = Issue(severity=Severity.WARNING, message="w")
        error = Issue(severity=Severity.ERROR, message="e")
        assert has_blocking_issues([]) is False
        assert has_blocking_issues([warning]) is False
        assert has_blocking_issues([warning, error]) is True


# ──────────────────────────────────────────────
# Config parsing & message rendering
# ──────────────────────────────────────────────


class TestParseRuleConfig:
    def test_known_type_parsed(self):
        config = parse_rule_config(GPU_CLEARANCE)
        assert isinstance(config, FieldLteConfig)
        assert config.parts == ["gpu", "case"]

    def test_unknown_type_rejected(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config({"type": "voltage_check"})

    def test_format_requires_placeholder(self):
        bad = dict(RADIATOR_SUPPORT, format="mm")
        with pytest.raises(RuleConfigError):
            parse_rule_config(bad)

    def test_sum_gte_requires_fields(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config(dict(PSU_BUDGET, sum_fields=[]))

    def test_non_mapping_rejected(self):
        with pytest.raises(RuleConfigError):
            parse_rule_config("field_match")


class TestRenderMessage:
    @pytest.mark.parametrize("value, expected", [
        (600.0, "600"),
        (445, "445"),
        (1.25, "1.25"),
        (0.1 + 0.2, "0.3"),
        (True, "true"),
        (None, ""),
        (["ATX", "mATX"], "ATX, mATX"),
    ])
    def test_format_value(self, value, expected):
        assert format_value(value) == expected

    def test_repeated_slots(self):
        assert render_message("{a}-{a}-{b}", "x", "y") == "x-x-y"

    def test_single_pass_substitution(self):
        assert render_message("{a} vs {b}", "{b}", "ok") == "{b} vs ok"

    def test_other_braces_untouched(self):
        assert render_message("{value} {a}", 1, 2) == "{value} 1"


# ──────────────────────────────────────────────
# Default rule set
# ──────────────────────────────────────────────


def _full_build(**overrides):
    specs = {
        "cpu": {"socket": "AM5", "tdp_watts": 105},
        "motherboard": {
            "socket": "AM5", "form_factor": "ATX", "ram_type": "DDR5",
            "ram_slots": 4, "max_ram_gb": 192,
        },
        "ram": {"type": "DDR5", "modules": 2, "total_capacity_gb": 32},
        "gpu": {"length_mm": 304, "tdp_watts": 220, "recommended_psu_watts": 650},
        "psu": {"wattage": 750, "form_factor": "ATX"},
        "case": {
            "form_factor": "Mid Tower",
            "supported_motherboards": ["ATX", "mATX", "ITX"],
            "max_gpu_length_mm": 365,
            "radiator_support": ["240mm", "280mm", "360mm"],
        },
        "cooling": {
            "socket_compatibility": ["AM5", "AM4", "LGA1700"],
            "tdp_rating_watts": 250,
            "radiator_size_mm": 360,
        },
    }
    for category, changes in overrides.items():
        specs[category] = {**specs[category], **changes}
    return {category: _make(category, s) for category, s in specs.items()}


class TestDefaultRules:
    def test_every_default_rule_parses(self):
        rules = default_rules()
        assert [r.rule_number for r in rules] == list(range(1, len(rules) + 1))
        for rule in rules:
            parse_rule_config(rule.rule_config)

    def test_compatible_build_has_no_issues(self):
        assert evaluate(_full_build(), default_rules()) == []

    def test_incompatible_build_detects_violations(self):
        selection = _full_build(
            motherboard={"socket": "LGA1700"},
            ram={"type": "DDR4"},
            psu={"wattage": 500},
        )
        issues = evaluate(selection, default_rules())
        assert [i.message for i in issues] == [
            "CPU socket (AM5) does not match motherboard socket (LGA1700)",
            "RAM type (DDR4) does not match motherboard RAM type (DDR5)",
            "GPU recommends a 650W PSU but the PSU provides 500W",
        ]
        assert has_blocking_issues(issues) is True

    def test_warnings_do_not_block(self):
        selection = _full_build(cpu={"tdp_watts": 280})
        issues = evaluate(selection, default_rules())
        assert issues == [
            Issue(severity=Severity.WARNING, message="CPU TDP (280W) exceeds cooler rating (250W)")
        ]
        assert has_blocking_issues(issues) is False

    def test_build_without_optional_parts(self):
        selection = _full_build()
        del selection["cooling"]
        del selection["gpu"]
        assert evaluate(selection, default_rules()) == []
